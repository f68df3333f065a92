"""
User service layer for user accounts and refresh tokens.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import User, RefreshToken
from padelxp.utils.datetime_utils import utcnow, ensure_utc

logger = logging.getLogger(__name__)


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "email": user.email,
        "password_hash": user.password_hash,
        "login_count": user.login_count or 0,
    }


async def create_user(session: AsyncSession, email: str, password_hash: str) -> int:
    """
    Create a new user account.

    Args:
        session: Database session
        email: Normalized email
        password_hash: Hashed password

    Returns:
        User ID of the created user

    Raises:
        ValueError: If a user with this email already exists
    """
    result = await session.execute(select(User.id).where(User.email == email))
    if result.scalar_one_or_none():
        raise ValueError(f"Email {email} is already registered")

    new_user = User(email=email, password_hash=password_hash)
    session.add(new_user)
    await session.flush()
    return new_user.id


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """Get a user by ID."""
    user = await session.get(User, user_id)
    return _user_to_dict(user) if user else None


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """Get a user by (normalized) email."""
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def check_email_exists(session: AsyncSession, email: str) -> bool:
    result = await session.execute(select(User.id).where(User.email == email))
    return result.scalar_one_or_none() is not None


async def record_login(session: AsyncSession, user_id: int) -> None:
    """Count a successful login (used for trial engagement)."""
    user = await session.get(User, user_id)
    if user is None:
        return
    user.login_count = (user.login_count or 0) + 1
    user.last_login_at = utcnow()
    await session.flush()


async def create_refresh_token(
    session: AsyncSession, user_id: int, token: str, expires_at: datetime
) -> bool:
    """
    Store a refresh token, replacing the user's previous ones.

    Returns:
        True if successful
    """
    try:
        await session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        session.add(RefreshToken(user_id=user_id, token=token, expires_at=expires_at))
        await session.flush()
        return True
    except Exception as e:
        logger.error(f"Error creating refresh token for user {user_id}: {e}")
        return False


async def get_valid_refresh_token(session: AsyncSession, token: str) -> Optional[Dict]:
    """
    Get a refresh token if it exists and has not expired.

    Returns:
        Dict with user_id and expires_at, or None
    """
    result = await session.execute(select(RefreshToken).where(RefreshToken.token == token))
    refresh_token = result.scalar_one_or_none()
    if refresh_token is None:
        return None
    expires_at = ensure_utc(refresh_token.expires_at)
    if expires_at <= utcnow():
        return None
    return {"user_id": refresh_token.user_id, "expires_at": expires_at}


async def delete_user_refresh_tokens(session: AsyncSession, user_id: int) -> None:
    await session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    await session.flush()
