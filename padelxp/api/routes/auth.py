"""Authentication route handlers."""

import logging
from datetime import timedelta
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.routes import limiter, INVALID_CREDENTIALS_RESPONSE
from padelxp.database.db import get_db_session
from padelxp.services import auth_service, user_service, data_service
from padelxp.api.auth_dependencies import get_current_user
from padelxp.models.schemas import (
    SignupRequest,
    LoginRequest,
    AuthResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
)
from padelxp.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


async def _issue_tokens(session: AsyncSession, user: Dict) -> AuthResponse:
    access_token = auth_service.create_access_token(data={"user_id": user["id"], "email": user["email"]})
    refresh_token = auth_service.generate_refresh_token()
    expires_at = utcnow() + timedelta(days=auth_service.REFRESH_TOKEN_EXPIRATION_DAYS)
    if not await user_service.create_refresh_token(session, user["id"], refresh_token, expires_at):
        raise HTTPException(status_code=500, detail="Failed to create refresh token")
    return AuthResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        user_id=user["id"],
        email=user["email"],
    )


@router.post("/api/auth/signup", response_model=AuthResponse)
@limiter.limit("10/minute")
async def signup(request: Request, payload: SignupRequest, session: AsyncSession = Depends(get_db_session)):
    """Create an account and its (club-less) player profile."""
    try:
        email = auth_service.normalize_email(payload.email)
        if await user_service.check_email_exists(session, email):
            raise HTTPException(status_code=400, detail="Email is already registered")
        auth_service.validate_password(payload.password)
        if not payload.first_name or not payload.first_name.strip():
            raise HTTPException(status_code=400, detail="First name is required")

        user_id = await user_service.create_user(
            session, email=email, password_hash=auth_service.hash_password(payload.password)
        )
        await data_service.create_profile(
            session,
            user_id=user_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            postal_code=payload.postal_code,
        )
        user = await user_service.get_user_by_id(session, user_id)
        logger.info(f"New user {user_id} signed up")
        return await _issue_tokens(session, user)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error during signup: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error during signup: {str(e)}")


@router.post("/api/auth/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)):
    """Login with email and password."""
    try:
        try:
            email = auth_service.normalize_email(payload.email)
        except ValueError:
            raise INVALID_CREDENTIALS_RESPONSE
        user = await user_service.get_user_by_email(session, email)
        if not user or not auth_service.verify_password(payload.password, user["password_hash"]):
            raise INVALID_CREDENTIALS_RESPONSE

        await user_service.record_login(session, user["id"])
        return await _issue_tokens(session, user)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error during login: {str(e)}")


@router.post("/api/auth/refresh", response_model=RefreshTokenResponse)
async def refresh_token(
    request: RefreshTokenRequest, session: AsyncSession = Depends(get_db_session)
):
    """Refresh access token using refresh token."""
    try:
        refresh_token_record = await user_service.get_valid_refresh_token(session, request.refresh_token)
        if not refresh_token_record:
            raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

        user = await user_service.get_user_by_id(session, refresh_token_record["user_id"])
        if not user:
            raise HTTPException(status_code=401, detail="User not found")

        access_token = auth_service.create_access_token(data={"user_id": user["id"], "email": user["email"]})
        return RefreshTokenResponse(access_token=access_token, token_type="bearer")
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error refreshing token: {str(e)}")


@router.post("/api/auth/logout")
async def logout(
    current_user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_db_session)
):
    """Logout the current user by invalidating all refresh tokens."""
    try:
        await user_service.delete_user_refresh_tokens(session, current_user["id"])
        return {"status": "success", "message": "Logged out successfully"}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error during logout: {str(e)}")


@router.get("/api/auth/me", response_model=Dict[str, Any])
async def get_current_user_info(
    current_user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_db_session)
):
    """Get current authenticated user information with profile and administered clubs."""
    try:
        profile = await data_service.get_profile_by_user_id(session, current_user["id"])
        return {
            "id": current_user["id"],
            "email": current_user["email"],
            "profile": profile,
            "admin_club_ids": await data_service.get_admin_club_ids(session, current_user["id"]),
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting user: {str(e)}")
