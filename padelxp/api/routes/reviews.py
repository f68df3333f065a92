"""Review route handlers."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import require_player
from padelxp.api.routes import limiter
from padelxp.database.db import get_db_session
from padelxp.models.schemas import ReviewCreate
from padelxp.services import review_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/reviews", response_model=Dict[str, Any])
async def list_reviews(
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    session: AsyncSession = Depends(get_db_session),
):
    """Public list of the latest reviews with the average rating."""
    try:
        return await review_service.list_reviews(session, min_rating)
    except Exception as e:
        logger.error(f"Error listing reviews: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing reviews: {str(e)}")


@router.post("/api/reviews", response_model=Dict[str, Any])
@limiter.limit("5/minute")
async def create_review(
    request: Request,
    payload: ReviewCreate,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a review as the calling player."""
    try:
        return await review_service.create_review(
            session, user["profile"]["id"], payload.rating, payload.comment
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating review: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating review: {str(e)}")
