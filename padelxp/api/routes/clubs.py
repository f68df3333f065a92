"""Club and player profile route handlers."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import get_current_user, require_player
from padelxp.api.routes import limiter
from padelxp.database.db import get_db_session
from padelxp.models.schemas import ClubRegisterRequest, JoinClubRequest, ProfileUpdate
from padelxp.services import badge_service, data_service, leaderboard_service, subscription_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/clubs/register", response_model=Dict[str, Any])
@limiter.limit("5/minute")
async def register_club(
    request: Request,
    payload: ClubRegisterRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Register a club owned by the caller and start its free trial."""
    try:
        club = await data_service.create_club(
            session,
            name=payload.name,
            owner_user_id=user["id"],
            postal_code=payload.postal_code,
            city=payload.city,
        )
        subscription = await subscription_service.initialize_subscription(session, club["id"])
        return {
            "club": club,
            "subscription": subscription_service.serialize_subscription(
                subscription_service.subscription_to_dict(subscription)
            ),
        }
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error registering club: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error registering club: {str(e)}")


@router.get("/api/clubs/{club_id}", response_model=Dict[str, Any])
async def get_club(club_id: int, session: AsyncSession = Depends(get_db_session)):
    """Public club information."""
    try:
        club = await data_service.get_club(session, club_id)
        if not club:
            raise HTTPException(status_code=404, detail="Club not found")
        club["player_count"] = await data_service.count_club_players(session, club_id)
        return club
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting club: {str(e)}")


@router.post("/api/player/join-club", response_model=Dict[str, Any])
async def join_club(
    payload: JoinClubRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Attach the caller's profile to the club with this slug."""
    try:
        club = await data_service.get_club_by_slug(session, payload.slug.strip().lower())
        if not club:
            raise HTTPException(status_code=404, detail="Club not found")
        profile = await data_service.join_club(session, user["profile"]["id"], club["id"])
        return {"profile": profile, "club": club}
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error joining club: {str(e)}")


@router.patch("/api/player/profile", response_model=Dict[str, Any])
async def update_profile(
    payload: ProfileUpdate,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the caller's names or postal code."""
    try:
        if payload.first_name is not None and not payload.first_name.strip():
            raise HTTPException(status_code=400, detail="First name cannot be empty")
        return await data_service.update_profile(
            session,
            user["profile"]["id"],
            first_name=payload.first_name,
            last_name=payload.last_name,
            postal_code=payload.postal_code,
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating profile: {str(e)}")


@router.get("/api/player/stats", response_model=Dict[str, Any])
async def get_player_stats(
    user: dict = Depends(require_player), session: AsyncSession = Depends(get_db_session)
):
    """Wins, losses, streak and points of the caller."""
    try:
        return await leaderboard_service.get_player_stats(session, user["profile"]["id"])
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting player stats: {str(e)}")


@router.get("/api/player/badges", response_model=Dict[str, Any])
async def get_player_badges(
    user: dict = Depends(require_player), session: AsyncSession = Depends(get_db_session)
):
    """Badges earned by the caller plus the full catalogue."""
    try:
        profile_id = user["profile"]["id"]
        stats = await leaderboard_service.get_player_stats(session, profile_id)
        earned = badge_service.get_badges(
            wins=stats["wins"],
            losses=stats["losses"],
            matches=stats["matches"],
            points=stats["points"],
            streak=stats["streak"],
            has_review=stats["has_review"],
        )
        custom = await badge_service.get_custom_badges(session, profile_id)
        return {
            "badges": earned + custom,
            "catalogue": badge_service.ALL_BADGES,
            "stats": {k: stats[k] for k in ("wins", "losses", "matches", "points", "streak")},
        }
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting badges: {str(e)}")
