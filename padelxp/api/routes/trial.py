"""Trial extension and scheduled trial check route handlers."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import (
    get_current_user,
    require_cron_secret,
    require_system_admin,
    resolve_admin_club_id,
)
from padelxp.database.db import get_db_session
from padelxp.models.schemas import ClubIdRequest, ManualExtensionRequest
from padelxp.services import trial_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/trial/check-and-extend", response_model=Dict[str, Any])
async def check_and_extend(
    payload: ClubIdRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Engagement of the caller's club; grants or proposes a trial extension when earned."""
    try:
        club_id = await resolve_admin_club_id(session, user, payload.club_id)
        return await trial_service.check_and_extend(session, club_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error checking trial extension: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error checking trial extension: {str(e)}")


@router.post("/api/trial/accept-extension", response_model=Dict[str, Any])
async def accept_extension(
    payload: ClubIdRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept the proposed trial extension."""
    try:
        club_id = await resolve_admin_club_id(session, user, payload.club_id)
        return await trial_service.accept_proposed_extension(session, club_id, user["id"])
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error accepting extension: {str(e)}")


@router.post("/api/trial/manual-extension", response_model=Dict[str, Any])
async def manual_extension(
    payload: ManualExtensionRequest,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Extend a club's trial by a number of days."""
    try:
        return await trial_service.grant_manual_extension(session, payload.club_id, payload.days, user["id"])
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error extending trial: {str(e)}")


@router.post("/api/cron/trial-check", response_model=Dict[str, Any], dependencies=[Depends(require_cron_secret)])
async def trial_check(session: AsyncSession = Depends(get_db_session)):
    """End expired trials and send trial-end reminders."""
    try:
        return await trial_service.run_trial_check(session)
    except Exception as e:
        logger.error(f"Error running trial check: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error running trial check: {str(e)}")
