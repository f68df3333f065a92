"""
Runtime settings: the `settings` table overrides the environment.

Lookups go database -> Redis cache -> environment variable -> default. The
cache lets requests without a session (and other instances) see recent
database values; it expires after CACHE_TTL_SECONDS and is cleared when an
admin writes a setting.
"""

import logging
import os
import time
from typing import Optional

from dotenv import load_dotenv
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.services import data_service

load_dotenv()

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CACHE_TTL_SECONDS = 60
CACHE_PREFIX = "padelxp:settings:"
RECONNECT_DELAY_SECONDS = 30

# Settings the application reads, with the environment variable each falls back to
SETTING_ENV_VARS = {
    "enable_email": "ENABLE_EMAIL",
    "log_level": "LOG_LEVEL",
    "system_admin_emails": "SYSTEM_ADMIN_EMAILS",
}

TRUE_VALUES = ("true", "1", "yes")

_redis_client: Optional[Redis] = None
_reconnect_after = 0.0


def get_bool_env(key: str, default: bool = True) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in TRUE_VALUES


async def get_redis_client() -> Optional[Redis]:
    """
    Shared Redis client, or None while Redis is unreachable.

    After a failed connection the next attempt waits RECONNECT_DELAY_SECONDS.
    """
    global _redis_client, _reconnect_after

    if _redis_client is not None:
        return _redis_client
    if time.monotonic() < _reconnect_after:
        return None

    client = Redis.from_url(
        REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unavailable at {REDIS_URL}, settings cache disabled: {e}")
        _reconnect_after = time.monotonic() + RECONNECT_DELAY_SECONDS
        await client.aclose()
        return None

    logger.info(f"Connected to Redis at {REDIS_URL}")
    _redis_client = client
    return _redis_client


async def _cache_get(key: str) -> Optional[str]:
    client = await get_redis_client()
    if client is None:
        return None
    try:
        return await client.get(CACHE_PREFIX + key)
    except (RedisError, OSError) as e:
        logger.warning(f"Could not read cached setting {key}: {e}")
        return None


async def _cache_set(key: str, value: str) -> None:
    client = await get_redis_client()
    if client is None:
        return
    try:
        await client.setex(CACHE_PREFIX + key, CACHE_TTL_SECONDS, value)
    except (RedisError, OSError) as e:
        logger.warning(f"Could not cache setting {key}: {e}")


async def get_setting_value(
    session: Optional[AsyncSession], key: str, default: Optional[str] = None
) -> Optional[str]:
    """
    Resolve a setting: database, then cache, then its environment variable.

    Args:
        session: Database session, or None to skip the database
        key: Setting key (see SETTING_ENV_VARS)
        default: Returned when no source has a value
    """
    if session is not None:
        try:
            value = await data_service.get_setting(session, key)
        except Exception as e:
            logger.warning(f"Could not read setting {key} from the database: {e}")
            value = None
        if value is not None:
            await _cache_set(key, value)
            return value

    cached = await _cache_get(key)
    if cached is not None:
        return cached

    env_var = SETTING_ENV_VARS.get(key)
    if env_var and os.getenv(env_var) is not None:
        return os.getenv(env_var)
    return default


async def get_bool_setting(session: Optional[AsyncSession], key: str, default: bool = True) -> bool:
    value = await get_setting_value(session, key)
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


async def invalidate_settings_cache(key: Optional[str] = None) -> None:
    """Drop one cached setting, or all of them when key is None."""
    client = await get_redis_client()
    if client is None:
        return
    try:
        if key is not None:
            await client.delete(CACHE_PREFIX + key)
            return
        keys = [k async for k in client.scan_iter(match=f"{CACHE_PREFIX}*")]
        if keys:
            await client.delete(*keys)
            logger.info(f"Cleared {len(keys)} cached settings")
    except (RedisError, OSError) as e:
        logger.warning(f"Could not clear the settings cache: {e}")


async def close_redis_connection() -> None:
    global _redis_client
    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
        logger.info("Closed Redis connection")
    finally:
        _redis_client = None
