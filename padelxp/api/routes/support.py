"""Support contact route handlers."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import get_current_user
from padelxp.api.routes import limiter
from padelxp.database.db import get_db_session
from padelxp.models.schemas import ContactRequest
from padelxp.services import support_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/contact", response_model=Dict[str, Any])
@limiter.limit("5/minute")
async def contact_support(
    request: Request,
    payload: ContactRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Send a message to the support team from the caller's club."""
    try:
        return await support_service.send_contact_message(session, user, payload.message, payload.subject)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending contact message: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending message: {str(e)}")


@router.get("/api/support/conversation", response_model=Optional[Dict[str, Any]])
async def get_conversation(
    user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_db_session)
):
    """The caller's open support conversation, or null."""
    try:
        return await support_service.get_open_conversation(session, user["id"])
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting conversation: {str(e)}")
