"""Leaderboard route handlers."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import get_current_user, require_player
from padelxp.database.db import get_db_session
from padelxp.services import leaderboard_service, support_service

logger = logging.getLogger(__name__)
router = APIRouter()


async def _resolve_club_id(session: AsyncSession, user: dict, club_id: Optional[int]) -> int:
    if club_id is not None:
        return club_id
    resolved = await support_service.resolve_user_club_id(session, user["id"])
    if resolved is None:
        raise HTTPException(status_code=400, detail="Join a club to see its leaderboard")
    return resolved


@router.get("/api/leaderboard", response_model=List[Dict[str, Any]])
async def get_leaderboard(
    club_id: Optional[int] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Club leaderboard (the caller's club by default)."""
    try:
        resolved = await _resolve_club_id(session, user, club_id)
        return await leaderboard_service.get_club_leaderboard(session, resolved, limit)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting leaderboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting leaderboard: {str(e)}")


@router.get("/api/leaderboard/top3", response_model=List[Dict[str, Any]])
async def get_top3(
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Podium of the club."""
    try:
        resolved = await _resolve_club_id(session, user, club_id)
        return await leaderboard_service.get_top3(session, resolved)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting podium: {str(e)}")


@router.get("/api/leaderboard/geo", response_model=List[Dict[str, Any]])
async def get_geo_leaderboard(
    scope: str = Query("national"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Leaderboard of the caller's department, region or the whole country."""
    try:
        return await leaderboard_service.get_geo_leaderboard(session, scope, user["profile"], limit)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting leaderboard: {str(e)}")
