"""Subscription, billing and Stripe webhook route handlers."""

import logging
from typing import Any, Dict, Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.auth_dependencies import ensure_club_admin, get_current_user, resolve_admin_club_id
from padelxp.database.db import get_db_session
from padelxp.models.schemas import CreateSubscriptionRequest
from padelxp.services import stripe_service, subscription_service, support_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/subscription", response_model=Dict[str, Any])
async def get_subscription(
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Subscription of the caller's club with trial days remaining and access flags."""
    try:
        if club_id is not None:
            await ensure_club_admin(session, user, club_id)
        else:
            club_id = await support_service.resolve_user_club_id(session, user["id"])
            if club_id is None:
                raise HTTPException(status_code=404, detail="No club found for this account")
        subscription = await subscription_service.get_club_subscription(session, club_id)
        return subscription_service.serialize_subscription(subscription)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting subscription: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting subscription: {str(e)}")


@router.get("/api/subscription/plans", response_model=Dict[str, Any])
async def get_plans():
    """Prices of the plans and their savings compared to the monthly plan."""
    return {
        plan: {
            "total_price": subscription_service.get_total_price(plan),
            "monthly_price": subscription_service.get_monthly_price(plan),
            "cycle_days": subscription_service.get_cycle_days(plan),
            "savings": subscription_service.calculate_savings(plan),
        }
        for plan in subscription_service.PLANS
    }


@router.post("/api/subscription/create", response_model=Dict[str, Any])
async def create_subscription(
    payload: CreateSubscriptionRequest,
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Choose a plan during the trial; billing starts at the trial end."""
    try:
        resolved = await resolve_admin_club_id(session, user, club_id)
        return await subscription_service.create_subscription(session, resolved, payload.plan, user)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating subscription: {e}")
        raise HTTPException(status_code=502, detail=f"Payment provider error: {str(e)}")
    except Exception as e:
        logger.error(f"Error creating subscription: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating subscription: {str(e)}")


@router.post("/api/subscription/cancel", response_model=Dict[str, Any])
async def cancel_subscription(
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel the subscription at the end of the current period."""
    try:
        resolved = await resolve_admin_club_id(session, user, club_id)
        subscription = await subscription_service.cancel_subscription(session, resolved, user["id"])
        return subscription_service.serialize_subscription(subscription)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError as e:
        raise HTTPException(status_code=502, detail=f"Payment provider error: {str(e)}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error cancelling subscription: {str(e)}")


@router.post("/api/subscription/reactivate", response_model=Dict[str, Any])
async def reactivate_subscription(
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Undo a scheduled cancellation."""
    try:
        resolved = await resolve_admin_club_id(session, user, club_id)
        subscription = await subscription_service.reactivate_subscription(session, resolved, user["id"])
        return subscription_service.serialize_subscription(subscription)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError as e:
        raise HTTPException(status_code=502, detail=f"Payment provider error: {str(e)}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error reactivating subscription: {str(e)}")


@router.post("/api/subscriptions/resume", response_model=Dict[str, Any])
async def resume_subscription(
    club_id: Optional[int] = Query(None),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Resume a paused subscription."""
    try:
        resolved = await resolve_admin_club_id(session, user, club_id)
        subscription = await subscription_service.resume_subscription(session, resolved, user["id"])
        return subscription_service.serialize_subscription(subscription)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error resuming subscription: {str(e)}")


@router.post("/api/stripe/webhook", response_model=Dict[str, Any])
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    session: AsyncSession = Depends(get_db_session),
):
    """Receive Stripe events. The payload signature is verified first."""
    payload = await request.body()
    try:
        event = stripe_service.construct_event(payload, stripe_signature)
    except ValueError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return await subscription_service.handle_stripe_event(session, event)
    except Exception as e:
        logger.error(f"Error handling Stripe event {event['type']}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error handling webhook: {str(e)}")
