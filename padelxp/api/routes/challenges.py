"""Challenge and reward route handlers."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import (
    get_current_user,
    require_player,
    require_system_admin,
    resolve_admin_club_id,
)
from padelxp.database.db import get_db_session
from padelxp.models.schemas import ChallengeCreate, ClaimRewardRequest
from padelxp.services import challenge_service
from padelxp.services.challenge_service import RewardAlreadyClaimedError

logger = logging.getLogger(__name__)
router = APIRouter()


async def _create(session: AsyncSession, club_id: Optional[int], payload: ChallengeCreate) -> Dict:
    return await challenge_service.create_challenge(
        session,
        club_id=club_id,
        title=payload.title,
        objective=payload.objective,
        reward_type=payload.reward_type,
        reward_label=payload.reward_label,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )


# Club challenges


@router.post("/api/clubs/challenges", response_model=Dict[str, Any])
async def create_club_challenge(
    payload: ChallengeCreate,
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a challenge for one of the caller's clubs."""
    try:
        resolved = await resolve_admin_club_id(session, user, club_id)
        return await _create(session, resolved, payload)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating challenge: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating challenge: {str(e)}")


@router.get("/api/clubs/challenges", response_model=List[Dict[str, Any]])
async def list_club_challenges(
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Challenges of one of the caller's clubs."""
    try:
        resolved = await resolve_admin_club_id(session, user, club_id)
        return await challenge_service.list_club_challenges(session, resolved)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error listing challenges: {str(e)}")


@router.delete("/api/clubs/challenges/{challenge_id}")
async def delete_club_challenge(
    challenge_id: int,
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a challenge of one of the caller's clubs."""
    try:
        resolved = await resolve_admin_club_id(session, user, club_id)
        if not await challenge_service.delete_challenge(session, challenge_id, resolved):
            raise HTTPException(status_code=404, detail="Challenge not found")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting challenge: {str(e)}")


# Global challenges


@router.post("/api/admin/challenges", response_model=Dict[str, Any])
async def create_global_challenge(
    payload: ChallengeCreate,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a challenge visible to every club."""
    try:
        return await _create(session, None, payload)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating challenge: {str(e)}")


@router.get("/api/admin/challenges", response_model=List[Dict[str, Any]])
async def list_global_challenges(
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.list_global_challenges(session)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error listing challenges: {str(e)}")


@router.delete("/api/admin/challenges/{challenge_id}")
async def delete_global_challenge(
    challenge_id: int,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        if not await challenge_service.delete_challenge(session, challenge_id, None):
            raise HTTPException(status_code=404, detail="Challenge not found")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting challenge: {str(e)}")


# Player side


@router.get("/api/player/challenges", response_model=List[Dict[str, Any]])
async def get_player_challenges(
    user: dict = Depends(require_player), session: AsyncSession = Depends(get_db_session)
):
    """Club and global challenges with the caller's progress."""
    try:
        return await challenge_service.get_player_challenges(session, user["profile"])
    except Exception as e:
        logger.error(f"Error getting player challenges: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting challenges: {str(e)}")


@router.post("/api/challenges/claim-reward", response_model=Dict[str, Any])
async def claim_reward(
    payload: ClaimRewardRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Claim the reward of a completed challenge."""
    try:
        result = await challenge_service.claim_reward(session, user["profile"], payload.challenge_id)
        if result is None:
            raise HTTPException(status_code=404, detail="Challenge not found")
        return result
    except HTTPException:
        raise
    except RewardAlreadyClaimedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error claiming reward: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error claiming reward: {str(e)}")
