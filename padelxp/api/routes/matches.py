"""Match submission, confirmation and level route handlers."""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import require_player
from padelxp.api.routes import limiter
from padelxp.database.db import get_db_session
from padelxp.models.schemas import (
    CancelMatchRequest,
    MatchTokenRequest,
    SubmitMatchRequest,
    WinProbabilityRequest,
)
from padelxp.services import email_service, level_service, match_service
from padelxp.services.match_service import MatchPermissionError
from padelxp.utils.datetime_utils import parse_datetime

logger = logging.getLogger(__name__)
router = APIRouter()


async def _notify_participants(session: AsyncSession, match_id: int, submitted_by: str) -> int:
    """Email every participant who still has to confirm. Returns the number of emails sent."""
    sent = 0
    for participant in await match_service.get_participant_emails(session, match_id):
        if participant["confirmed"] or not participant["confirmation_token"]:
            continue
        result = await email_service.send_match_confirmation_email(
            to_email=participant["email"],
            player_name=participant["name"],
            submitted_by=submitted_by,
            confirmation_token=participant["confirmation_token"],
            session=session,
        )
        if result["sent"]:
            sent += 1
    return sent


@router.post("/api/matches/submit", response_model=Dict[str, Any])
@limiter.limit("20/minute")
async def submit_match(
    request: Request,
    payload: SubmitMatchRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Record a match; the other players receive a confirmation link."""
    try:
        profile = user["profile"]
        match = await match_service.submit_match(
            session,
            submitter_profile=profile,
            players=[p.model_dump() for p in payload.players],
            sets=[s.model_dump() for s in payload.sets],
            tie_break=payload.tie_break.model_dump() if payload.tie_break else None,
            played_at=parse_datetime(payload.played_at),
        )
        match["emails_sent"] = await _notify_participants(
            session, match["id"], profile["display_name"] or profile["first_name"]
        )
        # Tokens go by email only
        for participant in match["participants"]:
            if participant["profile_id"] != profile["id"]:
                participant.pop("confirmation_token", None)
        return match
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error submitting match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error submitting match: {str(e)}")


@router.post("/api/matches/confirm", response_model=Dict[str, Any])
async def confirm_match(
    payload: MatchTokenRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Confirm a match with the token received by email."""
    try:
        result = await match_service.confirm_match(session, payload.token, user["profile"]["id"])
        if result is None:
            raise HTTPException(status_code=404, detail="Confirmation not found")
        return result
    except HTTPException:
        raise
    except MatchPermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error confirming match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error confirming match: {str(e)}")


@router.post("/api/matches/reject", response_model=Dict[str, Any])
async def reject_match(
    payload: MatchTokenRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Reject a pending match."""
    try:
        result = await match_service.reject_match(session, payload.token, user["profile"]["id"])
        if result is None:
            raise HTTPException(status_code=404, detail="Confirmation not found")
        return result
    except HTTPException:
        raise
    except MatchPermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error rejecting match: {str(e)}")


@router.post("/api/matches/cancel", response_model=Dict[str, Any])
async def cancel_match(
    payload: CancelMatchRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a pending match recorded by the caller."""
    try:
        result = await match_service.cancel_match(session, payload.match_id, user["profile"]["id"])
        if result is None:
            raise HTTPException(status_code=404, detail="Match not found")
        return result
    except HTTPException:
        raise
    except MatchPermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error cancelling match: {str(e)}")


@router.get("/api/matches/pending", response_model=List[Dict[str, Any]])
async def get_pending_matches(
    user: dict = Depends(require_player), session: AsyncSession = Depends(get_db_session)
):
    """Pending matches waiting for the caller's confirmation."""
    try:
        return await match_service.get_pending_matches(session, user["profile"]["id"])
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting pending matches: {str(e)}")


@router.post("/api/level/win-probability", response_model=Dict[str, Any])
async def win_probability(payload: WinProbabilityRequest):
    """Win probability of team 1 and its level change on a win or a loss."""
    try:
        return level_service.estimate_match(
            payload.team1_levels, payload.team2_levels, payload.matches_played
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error computing win probability: {str(e)}")
