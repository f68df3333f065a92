"""Tournament route handlers: setup, registrations, draws, scores and rankings."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import ensure_club_admin, get_current_user
from padelxp.database.db import get_db_session
from padelxp.database.models import TournamentRegistrationStatus
from padelxp.models.schemas import (
    RegistrationStatusUpdate,
    TournamentCreate,
    TournamentMatchScore,
    TournamentRegisterRequest,
    TournamentUpdate,
)
from padelxp.services import data_service, tournament_service

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_tournament_or_404(session: AsyncSession, tournament_id: int) -> Dict:
    tournament = await tournament_service.get_tournament(session, tournament_id)
    if tournament is None:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


async def _require_tournament_admin(session: AsyncSession, user: dict, tournament_id: int) -> Dict:
    """Load the tournament and check the caller administers its club."""
    tournament = await _get_tournament_or_404(session, tournament_id)
    await ensure_club_admin(session, user, tournament["club_id"])
    return tournament


def _or_404(result, detail: str = "Tournament not found"):
    if result is None:
        raise HTTPException(status_code=404, detail=detail)
    return result


@router.post("/api/tournaments", response_model=Dict[str, Any])
async def create_tournament(
    payload: TournamentCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a tournament for a club (club admin)."""
    try:
        await ensure_club_admin(session, user, payload.club_id)
        return await tournament_service.create_tournament(
            session,
            club_id=payload.club_id,
            name=payload.name,
            tournament_type=payload.tournament_type,
            start_date=payload.start_date,
            match_duration_minutes=payload.match_duration_minutes,
            available_courts=payload.available_courts,
            pool_size=payload.pool_size,
            max_teams=payload.max_teams,
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating tournament: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating tournament: {str(e)}")


@router.get("/api/tournaments", response_model=List[Dict[str, Any]])
async def list_tournaments(
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await tournament_service.list_tournaments(session, club_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error listing tournaments: {str(e)}")


@router.get("/api/tournaments/{tournament_id}", response_model=Dict[str, Any])
async def get_tournament(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await _get_tournament_or_404(session, tournament_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting tournament: {str(e)}")


@router.patch("/api/tournaments/{tournament_id}", response_model=Dict[str, Any])
async def update_tournament(
    tournament_id: int,
    payload: TournamentUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Change the status or settings of a tournament (club admin)."""
    try:
        await _require_tournament_admin(session, user, tournament_id)
        updated = await tournament_service.update_tournament(
            session, tournament_id, payload.model_dump(exclude_unset=True)
        )
        return _or_404(updated)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating tournament: {str(e)}")


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------


@router.post("/api/tournaments/{tournament_id}/register", response_model=Dict[str, Any])
async def register_pair(
    tournament_id: int,
    payload: TournamentRegisterRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Register a pair.

    Either player of the pair may register it; a club admin may register any pair.
    """
    try:
        tournament = await _get_tournament_or_404(session, tournament_id)
        profile = await data_service.get_profile_by_user_id(session, user["id"])
        own_pair = profile is not None and profile["id"] in (payload.player1_id, payload.player2_id)
        if not own_pair:
            await ensure_club_admin(session, user, tournament["club_id"])
        registration = await tournament_service.register_pair(
            session, tournament_id, payload.player1_id, payload.player2_id
        )
        return _or_404(registration)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error registering pair: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error registering pair: {str(e)}")


@router.get("/api/tournaments/{tournament_id}/registrations", response_model=List[Dict[str, Any]])
async def list_registrations(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _get_tournament_or_404(session, tournament_id)
        return await tournament_service.list_registrations(session, tournament_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error listing registrations: {str(e)}")


async def _get_registration_or_404(session: AsyncSession, tournament_id: int, registration_id: int) -> Dict:
    registration = await tournament_service.get_registration(session, tournament_id, registration_id)
    if registration is None:
        raise HTTPException(status_code=404, detail="Registration not found")
    return registration


async def _is_pair_player(session: AsyncSession, user: dict, registration: Dict) -> bool:
    profile = await data_service.get_profile_by_user_id(session, user["id"])
    return profile is not None and profile["id"] in (registration["player1_id"], registration["player2_id"])


@router.delete("/api/tournaments/{tournament_id}/register/{registration_id}", response_model=Dict[str, Any])
async def cancel_registration(
    tournament_id: int,
    registration_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a registration before the tournament starts (a player of the pair or a club admin)."""
    try:
        tournament = await _get_tournament_or_404(session, tournament_id)
        registration = await _get_registration_or_404(session, tournament_id, registration_id)
        if not await _is_pair_player(session, user, registration):
            await ensure_club_admin(session, user, tournament["club_id"])
        return _or_404(
            await tournament_service.cancel_registration(session, tournament_id, registration_id),
            "Registration not found",
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error cancelling registration {registration_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error cancelling registration: {str(e)}")


@router.patch("/api/tournaments/{tournament_id}/registrations/{registration_id}", response_model=Dict[str, Any])
async def update_registration_status(
    tournament_id: int,
    registration_id: int,
    payload: RegistrationStatusUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Change a registration status.

    Club admins may set any status; a player of the pair may only withdraw.
    """
    try:
        tournament = await _get_tournament_or_404(session, tournament_id)
        registration = await _get_registration_or_404(session, tournament_id, registration_id)
        try:
            await ensure_club_admin(session, user, tournament["club_id"])
        except HTTPException:
            if not await _is_pair_player(session, user, registration):
                raise
            if payload.status != TournamentRegistrationStatus.WITHDRAWN.value:
                raise HTTPException(status_code=403, detail="Players can only withdraw from tournaments")
        return _or_404(
            await tournament_service.update_registration_status(
                session, tournament_id, registration_id, payload.status
            ),
            "Registration not found",
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating registration {registration_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating registration: {str(e)}")


# ---------------------------------------------------------------------------
# Draw and schedule
# ---------------------------------------------------------------------------


@router.post("/api/tournaments/{tournament_id}/generate", response_model=Dict[str, Any])
async def generate_draw(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Seed the pairs and create the first matches (club admin)."""
    try:
        await _require_tournament_admin(session, user, tournament_id)
        return _or_404(await tournament_service.generate_draw(session, tournament_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error generating draw for tournament {tournament_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generating draw: {str(e)}")


@router.post("/api/tournaments/{tournament_id}/schedule", response_model=Dict[str, Any])
async def schedule_tournament(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Assign courts and start times to the pending matches (club admin)."""
    try:
        await _require_tournament_admin(session, user, tournament_id)
        return _or_404(await tournament_service.schedule_tournament(session, tournament_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error scheduling matches: {str(e)}")


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


@router.get("/api/tournaments/{tournament_id}/matches", response_model=List[Dict[str, Any]])
async def list_matches(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _get_tournament_or_404(session, tournament_id)
        return await tournament_service.list_matches(session, tournament_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error listing matches: {str(e)}")


@router.patch("/api/tournaments/{tournament_id}/matches/{match_id}", response_model=Dict[str, Any])
async def update_match_score(
    tournament_id: int,
    match_id: int,
    payload: TournamentMatchScore,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Record a match score (club admin)."""
    try:
        await _require_tournament_admin(session, user, tournament_id)
        score = payload.model_dump()
        match = await tournament_service.update_match_score(
            session, tournament_id, match_id, score["sets"], score["super_tiebreak"]
        )
        return _or_404(match, "Match not found")
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating score of match {match_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating score: {str(e)}")


# ---------------------------------------------------------------------------
# Progression and rankings
# ---------------------------------------------------------------------------


@router.post("/api/tournaments/{tournament_id}/advance/final-next-round", response_model=Dict[str, Any])
async def advance_final_next_round(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _require_tournament_admin(session, user, tournament_id)
        return _or_404(await tournament_service.advance_final_next_round(session, tournament_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error advancing round: {str(e)}")


@router.post("/api/tournaments/{tournament_id}/advance/tmc-next-round", response_model=Dict[str, Any])
async def advance_tmc_next_round(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _require_tournament_admin(session, user, tournament_id)
        return _or_404(await tournament_service.advance_tmc_next_round(session, tournament_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error advancing round: {str(e)}")


@router.post("/api/tournaments/{tournament_id}/advance/pools-final", response_model=Dict[str, Any])
async def advance_pools_final(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _require_tournament_admin(session, user, tournament_id)
        return _or_404(await tournament_service.advance_pools_final(session, tournament_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating final bracket: {str(e)}")


@router.post("/api/tournaments/{tournament_id}/calculate-final-ranking", response_model=Dict[str, Any])
async def calculate_final_ranking(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Store the final places and complete the tournament (club admin)."""
    try:
        await _require_tournament_admin(session, user, tournament_id)
        return _or_404(await tournament_service.calculate_final_ranking(session, tournament_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error calculating rankings of tournament {tournament_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error calculating rankings: {str(e)}")


@router.get("/api/tournaments/{tournament_id}/final-rankings", response_model=List[Dict[str, Any]])
async def get_final_rankings(
    tournament_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _get_tournament_or_404(session, tournament_id)
        return await tournament_service.get_final_rankings(session, tournament_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting rankings: {str(e)}")
