"""Platform admin and settings route handlers."""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import require_system_admin
from padelxp.database.db import get_db_session
from padelxp.models.schemas import AdminSubscriptionAction, SettingUpdate
from padelxp.services import admin_service, data_service, settings_service
from padelxp.services.admin_service import ClubNotFoundError

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Club subscriptions
# ---------------------------------------------------------------------------


@router.patch("/api/admin/clubs/{club_id}/subscription", response_model=Dict[str, Any])
async def update_club_subscription(
    club_id: int,
    payload: AdminSubscriptionAction,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Extend a trial, add a paid period or cancel a club's subscription (system_admin)."""
    try:
        return await admin_service.update_club_subscription(session, club_id, payload.action, user["id"])
    except ClubNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating subscription of club {club_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating subscription: {str(e)}")


@router.get("/api/admin/clubs/{club_id}/actions", response_model=List[Dict[str, Any]])
async def get_club_actions(
    club_id: int,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Admin action history of a club (system_admin)."""
    try:
        return await admin_service.list_club_actions(session, club_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting admin actions: {str(e)}")


# ---------------------------------------------------------------------------
# Settings endpoints
# ---------------------------------------------------------------------------


@router.get("/api/settings/{key}")
async def get_setting_value(
    key: str,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a setting value (system_admin)."""
    try:
        value = await data_service.get_setting(session, key)
        return {"key": key, "value": value}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting setting: {str(e)}")


@router.put("/api/settings/{key}")
async def set_setting_value(
    key: str,
    payload: SettingUpdate,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Set a setting value (system_admin)."""
    try:
        await data_service.set_setting(session, key, payload.value, updated_by=user["id"])
        await settings_service.invalidate_settings_cache(key)
        return {"success": True}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error setting value: {str(e)}")
