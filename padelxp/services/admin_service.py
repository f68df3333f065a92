"""
Platform admin actions on a club subscription, with an audit trail.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, List, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import AdminClubAction, Club, Subscription, SubscriptionStatus
from padelxp.services import data_service, stripe_service, subscription_service
from padelxp.utils.datetime_utils import add_months, ensure_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

PERIOD_ACTIONS = {
    "add_1_month": ("monthly", 1, "Ajout d'1 mois d'abonnement"),
    "add_3_months": ("quarterly", 3, "Ajout de 3 mois d'abonnement"),
    "add_1_year": ("annual", 12, "Ajout d'1 an d'abonnement"),
}
ADMIN_ACTIONS = ("extend_trial_14d", "cancel") + tuple(PERIOD_ACTIONS)
TRIAL_EXTENSION_DAYS = 14


class ClubNotFoundError(Exception):
    """Raised when an admin action targets an unknown club."""


def _snapshot(subscription: Optional[Subscription]) -> Optional[Dict]:
    if subscription is None:
        return None
    return {
        "status": subscription.status,
        "plan_cycle": subscription.plan_cycle,
        "trial_end_at": isoformat(subscription.trial_end_at),
        "current_period_start": isoformat(subscription.current_period_start),
        "current_period_end": isoformat(subscription.current_period_end),
        "stripe_subscription_id": subscription.stripe_subscription_id,
    }


def action_to_dict(action: AdminClubAction) -> Dict:
    return {
        "id": action.id,
        "club_id": action.club_id,
        "admin_user_id": action.admin_user_id,
        "action_type": action.action_type,
        "action_description": action.action_description,
        "previous_value": action.previous_value,
        "new_value": action.new_value,
        "created_at": isoformat(action.created_at),
    }


def _extend_trial(subscription: Subscription) -> str:
    now = utcnow()
    current_end = ensure_utc(subscription.trial_end_at)
    base = current_end if current_end and current_end > now else now
    subscription.trial_end_at = base + timedelta(days=TRIAL_EXTENSION_DAYS)
    subscription.status = SubscriptionStatus.TRIALING.value
    return f"Prolongation de l'essai gratuit de {TRIAL_EXTENSION_DAYS} jours"


async def _add_period(session: AsyncSession, club: Club, subscription: Subscription, action: str) -> str:
    plan, months, description = PERIOD_ACTIONS[action]

    email = await data_service.get_club_owner_email(session, club.id)
    if not email:
        raise ValueError("The club has no admin email for billing")
    customer_id = await asyncio.to_thread(
        stripe_service.get_or_create_customer, subscription.stripe_customer_id, email, club.id
    )
    stripe_result = await asyncio.to_thread(
        stripe_service.create_or_update_admin_subscription,
        customer_id,
        subscription.stripe_subscription_id,
        plan,
    )

    now = utcnow()
    current_end = ensure_utc(subscription.current_period_end)
    base = current_end if current_end else now
    new_end = add_months(base, months)

    subscription.stripe_customer_id = customer_id
    subscription.stripe_subscription_id = stripe_result["subscription_id"]
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.plan_cycle = plan
    subscription.selected_plan = plan
    subscription.current_period_start = subscription.current_period_start or now
    subscription.current_period_end = new_end
    subscription.next_renewal_at = new_end
    subscription.cancel_at_period_end = False
    return description


async def _cancel(subscription: Subscription) -> str:
    if subscription.stripe_subscription_id:
        try:
            await asyncio.to_thread(stripe_service.cancel_subscription, subscription.stripe_subscription_id)
        except (stripe.StripeError, ValueError) as e:
            logger.error(
                f"Stripe cancellation failed for subscription {subscription.stripe_subscription_id}: {e}"
            )
    subscription.status = SubscriptionStatus.CANCELED.value
    subscription.cancel_at_period_end = False
    return "Annulation de l'abonnement"


async def update_club_subscription(
    session: AsyncSession, club_id: int, action: str, admin_user_id: Optional[int] = None
) -> Dict:
    """
    Apply an admin action to a club subscription.

    Actions: extend_trial_14d, add_1_month, add_3_months, add_1_year, cancel.

    Returns:
        {"success": True, "action", "subscription"}

    Raises:
        ClubNotFoundError: If the club does not exist
        ValueError: On an invalid action
    """
    if action not in ADMIN_ACTIONS:
        raise ValueError("Invalid action")
    club = await session.get(Club, club_id)
    if club is None:
        raise ClubNotFoundError(f"Club {club_id} not found")

    subscription = await subscription_service.get_subscription_row(session, club_id)
    previous_value = _snapshot(subscription)
    if subscription is None:
        subscription = await subscription_service.initialize_subscription(session, club_id)

    old_status = subscription.status
    if action == "extend_trial_14d":
        description = _extend_trial(subscription)
    elif action == "cancel":
        description = await _cancel(subscription)
    else:
        description = await _add_period(session, club, subscription, action)

    if subscription.status != old_status:
        await subscription_service.log_subscription_event(
            session,
            subscription,
            "status_changed",
            {"from": old_status, "to": subscription.status, "admin_action": action},
            "admin",
            admin_user_id,
        )

    new_value = _snapshot(subscription)
    session.add(AdminClubAction(
        club_id=club_id,
        admin_user_id=admin_user_id,
        action_type=action,
        action_description=description,
        previous_value=previous_value,
        new_value=new_value,
    ))
    await session.flush()
    logger.info(f"Admin {admin_user_id} applied {action} to club {club_id}: {old_status} -> {subscription.status}")

    return {
        "success": True,
        "action": action,
        "subscription": subscription_service.serialize_subscription(
            subscription_service.subscription_to_dict(subscription)
        ),
    }


async def list_club_actions(session: AsyncSession, club_id: int) -> List[Dict]:
    """Admin action history of a club, newest first."""
    result = await session.execute(
        select(AdminClubAction)
        .where(AdminClubAction.club_id == club_id)
        .order_by(AdminClubAction.created_at.desc(), AdminClubAction.id.desc())
    )
    return [action_to_dict(a) for a in result.scalars().all()]
