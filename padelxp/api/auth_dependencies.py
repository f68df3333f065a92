"""
Authentication and authorization dependencies.

Roles: any signed-in user, a player (user with a profile), a club admin
(row in club_admins, checked per club) and a system admin (email listed in
the system_admin_emails setting). Scheduled jobs authenticate with
CRON_SECRET instead of a user token.
"""

import hmac
import logging
import os

from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from padelxp.services import auth_service, user_service, data_service
from padelxp.database.db import get_db_session

load_dotenv()

logger = logging.getLogger(__name__)

security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    User of the bearer access token.

    Raises:
        HTTPException 401: Invalid or expired token, or deleted user
    """
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid authentication token")
    if payload.get("user_id") is None:
        raise _unauthorized("Invalid token payload")

    user = await user_service.get_user_by_id(session, payload["user_id"])
    if user is None:
        raise _unauthorized("User not found")
    return user


async def require_player(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    """
    Require an authenticated user with a player profile.

    Returns the user dict with its profile under "profile".
    """
    profile = await data_service.get_profile_by_user_id(session, user["id"])
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Player profile required",
        )
    return {**user, "profile": profile}


async def _is_system_admin(session: AsyncSession, user: dict) -> bool:
    """
    Determine if the user is a system admin.

    Reads 'system_admin_emails': comma-separated email addresses.
    """
    try:
        email_setting = await data_service.get_setting(session, "system_admin_emails")
    except Exception as e:
        logger.error(f"Could not read system_admin_emails: {e}")
        return False
    if not email_setting or not user.get("email"):
        return False
    emails = {e.strip().lower() for e in email_setting.split(",") if e.strip()}
    return user["email"].strip().lower() in emails


async def require_system_admin(
    user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_db_session)
) -> dict:
    """Require platform-wide admin."""
    if not await _is_system_admin(session, user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


async def ensure_club_admin(session: AsyncSession, user: dict, club_id: int) -> None:
    """Raise 403 unless the user administers the club (system admins always pass)."""
    if await _is_system_admin(session, user):
        return
    if not await data_service.is_club_admin(session, user["id"], club_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Club admin access required"
        )


async def resolve_admin_club_id(
    session: AsyncSession, user: dict, club_id: Optional[int] = None
) -> int:
    """
    Club an admin acts on: the requested club when they administer it,
    else the first club they administer.

    Raises:
        HTTPException 403 if the user administers no matching club
    """
    admin_club_ids = await data_service.get_admin_club_ids(session, user["id"])
    if club_id is not None:
        if club_id in admin_club_ids or await _is_system_admin(session, user):
            return club_id
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Club admin access required"
        )
    if not admin_club_ids:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Club admin access required"
        )
    return admin_club_ids[0]


async def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require `Authorization: Bearer $CRON_SECRET` for scheduled jobs."""
    secret = os.getenv("CRON_SECRET")
    if not secret:
        logger.error("CRON_SECRET is not configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Cron not configured")
    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
