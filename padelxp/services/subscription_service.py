"""
Subscription service: trial and billing lifecycle of a club.

Statuses:
    trialing -> trialing_with_plan (plan chosen during the trial)
             -> scheduled_activation -> active
             -> paused (trial ended without payment method)
    active -> past_due / canceled
    paused -> active (resume)

Every status change is recorded as a SubscriptionEvent.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Dict, Optional

import pytz
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import (
    Club,
    PlanCycle,
    Subscription,
    SubscriptionEvent,
    SubscriptionStatus,
)
from padelxp.services import stripe_service
from padelxp.utils.constants import (
    PRICE_ANNUAL_PER_MONTH,
    PRICE_ANNUAL_TOTAL,
    PRICE_MONTHLY,
    PRICE_QUARTERLY,
    TRIAL_DAYS,
)
from padelxp.utils.datetime_utils import add_months, ensure_utc, isoformat, start_of_day, utcnow

logger = logging.getLogger(__name__)

PLANS = tuple(cycle.value for cycle in PlanCycle)

FULL_ACCESS_STATUSES = {
    SubscriptionStatus.TRIALING.value,
    SubscriptionStatus.TRIALING_WITH_PLAN.value,
    SubscriptionStatus.SCHEDULED_ACTIVATION.value,
    SubscriptionStatus.ACTIVE.value,
}

# Statuses that end when the trial period is over
TRIAL_STATUSES = (
    SubscriptionStatus.TRIALING.value,
    SubscriptionStatus.TRIALING_WITH_PLAN.value,
    SubscriptionStatus.SCHEDULED_ACTIVATION.value,
)

FEATURES = ("matches", "dashboard", "public_page")


# ============================================================================
# Pure helpers
# ============================================================================


def calculate_trial_days_remaining(
    trial_end_at: Optional[datetime], now: Optional[datetime] = None
) -> Optional[int]:
    """
    Whole days left before the trial ends, counted between UTC midnights.

    Returns:
        Days remaining (never negative), or None without an end date
    """
    if trial_end_at is None:
        return None
    now = now or utcnow()
    diff = start_of_day(trial_end_at) - start_of_day(now)
    return max(0, math.ceil(diff.total_seconds() / 86400))


def is_trial_active(subscription: Optional[Dict], now: Optional[datetime] = None) -> bool:
    if not subscription or subscription.get("status") != SubscriptionStatus.TRIALING.value:
        return False
    days = calculate_trial_days_remaining(subscription.get("trial_end_at"), now)
    return days is not None and days > 0


def is_trial_expired(subscription: Optional[Dict], now: Optional[datetime] = None) -> bool:
    if not subscription or not subscription.get("trial_end_at"):
        return False
    now = now or utcnow()
    return (
        subscription.get("status") == SubscriptionStatus.TRIALING.value
        and now >= ensure_utc(subscription["trial_end_at"])
    )


def should_send_trial_reminder(
    subscription: Optional[Dict], days_before: int, now: Optional[datetime] = None
) -> bool:
    """True when a trialing club is exactly days_before days from the trial end."""
    if not subscription or not subscription.get("trial_end_at"):
        return False
    if subscription.get("status") != SubscriptionStatus.TRIALING.value:
        return False
    return calculate_trial_days_remaining(subscription["trial_end_at"], now) == days_before


def _validate_plan(plan: str) -> None:
    if plan not in PLANS:
        raise ValueError(f"Invalid plan: {plan}. Expected one of {', '.join(PLANS)}")


def get_monthly_price(plan: str) -> float:
    _validate_plan(plan)
    if plan == PlanCycle.MONTHLY.value:
        return PRICE_MONTHLY
    if plan == PlanCycle.QUARTERLY.value:
        return round(PRICE_QUARTERLY / 3, 2)
    return PRICE_ANNUAL_PER_MONTH


def get_total_price(plan: str) -> int:
    _validate_plan(plan)
    return {
        PlanCycle.MONTHLY.value: PRICE_MONTHLY,
        PlanCycle.QUARTERLY.value: PRICE_QUARTERLY,
        PlanCycle.ANNUAL.value: PRICE_ANNUAL_TOTAL,
    }[plan]


def calculate_savings(plan: str) -> Dict:
    """Savings per month compared to the monthly plan."""
    monthly = get_monthly_price(plan)
    amount = round(PRICE_MONTHLY - monthly, 2)
    return {"percentage": round(amount / PRICE_MONTHLY * 100), "amount": amount}


def get_cycle_months(plan: str) -> int:
    _validate_plan(plan)
    return {PlanCycle.MONTHLY.value: 1, PlanCycle.QUARTERLY.value: 3, PlanCycle.ANNUAL.value: 12}[plan]


def get_cycle_days(plan: str) -> int:
    _validate_plan(plan)
    return {PlanCycle.MONTHLY.value: 30, PlanCycle.QUARTERLY.value: 90, PlanCycle.ANNUAL.value: 365}[plan]


def calculate_next_renewal_at(start: datetime, plan: str) -> datetime:
    return add_months(ensure_utc(start), get_cycle_months(plan))


def calculate_first_payment_date(trial_end_at: Optional[datetime]) -> Optional[datetime]:
    """First charge happens the day after the trial ends, at midnight UTC."""
    if trial_end_at is None:
        return None
    return start_of_day(trial_end_at) + timedelta(days=1)


def can_access_feature(subscription: Optional[Dict], feature: str) -> bool:
    """
    Access rules by status.

    Full access while trialing or active. A paused club keeps its read-only
    dashboard and public page. Canceled or past-due clubs keep the public
    page only.
    """
    if not subscription:
        return False
    status = subscription.get("status")
    if status in FULL_ACCESS_STATUSES:
        return True
    if status == SubscriptionStatus.PAUSED.value:
        return feature in ("dashboard", "public_page")
    if status in (SubscriptionStatus.CANCELED.value, SubscriptionStatus.PAST_DUE.value):
        return feature == "public_page"
    return False


# ============================================================================
# Persistence
# ============================================================================


def subscription_to_dict(subscription: Subscription) -> Dict:
    return {
        "id": subscription.id,
        "club_id": subscription.club_id,
        "status": subscription.status,
        "trial_start_at": ensure_utc(subscription.trial_start_at),
        "trial_end_at": ensure_utc(subscription.trial_end_at),
        "plan_cycle": subscription.plan_cycle,
        "selected_plan": subscription.selected_plan,
        "current_period_start": ensure_utc(subscription.current_period_start),
        "current_period_end": ensure_utc(subscription.current_period_end),
        "next_renewal_at": ensure_utc(subscription.next_renewal_at),
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "has_payment_method": subscription.has_payment_method,
        "auto_activate_at_trial_end": subscription.auto_activate_at_trial_end,
        "stripe_customer_id": subscription.stripe_customer_id,
        "stripe_subscription_id": subscription.stripe_subscription_id,
        "auto_extension_used": subscription.auto_extension_used,
        "proposed_extension_sent": subscription.proposed_extension_sent,
        "manual_extension_days": subscription.manual_extension_days or 0,
    }


def serialize_subscription(subscription: Dict) -> Dict:
    """JSON view of a subscription with computed trial and access fields."""
    data = {
        key: (isoformat(value) if isinstance(value, datetime) else value)
        for key, value in subscription.items()
    }
    data["trial_days_remaining"] = calculate_trial_days_remaining(subscription.get("trial_end_at"))
    data["is_trial_active"] = is_trial_active(subscription)
    data["is_trial_expired"] = is_trial_expired(subscription)
    data["first_payment_date"] = isoformat(calculate_first_payment_date(subscription.get("trial_end_at")))
    data["access"] = {feature: can_access_feature(subscription, feature) for feature in FEATURES}
    return data


async def get_subscription_row(session: AsyncSession, club_id: int) -> Optional[Subscription]:
    result = await session.execute(select(Subscription).where(Subscription.club_id == club_id))
    return result.scalar_one_or_none()


async def get_subscription_by_stripe_id(
    session: AsyncSession, stripe_subscription_id: str
) -> Optional[Subscription]:
    result = await session.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    return result.scalar_one_or_none()


async def log_subscription_event(
    session: AsyncSession,
    subscription: Subscription,
    event_type: str,
    metadata: Optional[Dict] = None,
    triggered_by: str = "system",
    user_id: Optional[int] = None,
) -> None:
    session.add(SubscriptionEvent(
        subscription_id=subscription.id,
        event_type=event_type,
        triggered_by=triggered_by,
        triggered_by_user_id=user_id,
        event_metadata=metadata or {},
    ))
    await session.flush()


async def transition_subscription_status(
    session: AsyncSession,
    subscription: Subscription,
    new_status: str,
    triggered_by: str = "user",
    user_id: Optional[int] = None,
    metadata: Optional[Dict] = None,
) -> None:
    """Set a new status and record the transition."""
    old_status = subscription.status
    subscription.status = new_status
    await log_subscription_event(
        session,
        subscription,
        "status_changed",
        {"from": old_status, "to": new_status, **(metadata or {})},
        triggered_by,
        user_id,
    )
    logger.info(
        f"Subscription {subscription.id} (club {subscription.club_id}): {old_status} -> {new_status} "
        f"[{triggered_by}]"
    )


async def initialize_subscription(
    session: AsyncSession, club_id: int, now: Optional[datetime] = None
) -> Subscription:
    """Start the free trial of a club. Returns the existing subscription if any."""
    existing = await get_subscription_row(session, club_id)
    if existing is not None:
        return existing
    now = now or utcnow()
    subscription = Subscription(
        club_id=club_id,
        status=SubscriptionStatus.TRIALING.value,
        trial_start_at=now,
        trial_end_at=now + timedelta(days=TRIAL_DAYS),
        cancel_at_period_end=False,
        has_payment_method=False,
        auto_activate_at_trial_end=False,
        auto_extension_used=False,
        proposed_extension_sent=False,
        manual_extension_days=0,
    )
    session.add(subscription)
    await session.flush()
    await log_subscription_event(session, subscription, "trial_started", {"trial_days": TRIAL_DAYS})
    return subscription


async def get_club_subscription(session: AsyncSession, club_id: int) -> Dict:
    """Subscription of a club as a dict, starting the trial if none exists."""
    subscription = await initialize_subscription(session, club_id)
    return subscription_to_dict(subscription)


async def activate_subscription(
    session: AsyncSession,
    subscription: Subscription,
    plan: str,
    triggered_by: str = "user",
    user_id: Optional[int] = None,
) -> None:
    """Start a paid period now."""
    now = utcnow()
    renewal = calculate_next_renewal_at(now, plan)
    subscription.plan_cycle = plan
    subscription.current_period_start = now
    subscription.current_period_end = renewal
    subscription.next_renewal_at = renewal
    if subscription.trial_end_at is None:
        subscription.trial_end_at = now
    await transition_subscription_status(
        session, subscription, SubscriptionStatus.ACTIVE.value, triggered_by, user_id,
        {"plan_cycle": plan, "activated_at": now.isoformat()},
    )


async def schedule_activation(
    session: AsyncSession,
    subscription: Subscription,
    plan: str,
    triggered_by: str = "user",
    user_id: Optional[int] = None,
) -> None:
    """Activate the plan automatically when the trial ends."""
    _validate_plan(plan)
    if subscription.trial_end_at is None:
        raise ValueError("No trial to schedule an activation after")
    trial_end = ensure_utc(subscription.trial_end_at)
    renewal = calculate_next_renewal_at(trial_end, plan)
    subscription.plan_cycle = plan
    subscription.current_period_start = trial_end
    subscription.current_period_end = renewal
    subscription.next_renewal_at = renewal
    await transition_subscription_status(
        session, subscription, SubscriptionStatus.SCHEDULED_ACTIVATION.value, triggered_by, user_id,
        {"plan_cycle": plan},
    )


# ============================================================================
# Club-facing operations
# ============================================================================


async def create_subscription(
    session: AsyncSession, club_id: int, plan: str, user: Dict, now: Optional[datetime] = None
) -> Dict:
    """
    Choose a plan during the trial. Billing starts when the trial ends.

    Args:
        session: Database session
        club_id: Club of the calling admin
        plan: monthly, quarterly or annual
        user: Calling user dict (its email becomes the Stripe customer email)

    Returns:
        {"subscription_id", "client_secret", "is_setup_intent", "trial_end_date",
         "first_payment_date", "status"}

    Raises:
        ValueError: Invalid plan, no running trial, or a plan already set up
    """
    _validate_plan(plan)
    subscription = await get_subscription_row(session, club_id)
    if subscription is None or subscription.trial_end_at is None:
        raise ValueError("No trial period found")

    now = now or utcnow()
    trial_end = ensure_utc(subscription.trial_end_at)
    if now >= trial_end:
        raise ValueError("The trial period has already ended")
    if subscription.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING_WITH_PLAN.value):
        raise ValueError("A subscription is already active or being set up")

    customer_id = await asyncio.to_thread(
        stripe_service.get_or_create_customer, subscription.stripe_customer_id, user["email"], club_id
    )
    trial_end_ts = max(int(trial_end.timestamp()), int(now.timestamp()) + 3600)
    created = await asyncio.to_thread(
        stripe_service.create_trial_subscription, customer_id, plan, club_id, trial_end_ts
    )

    subscription.stripe_customer_id = customer_id
    subscription.stripe_subscription_id = created["subscription_id"]
    subscription.selected_plan = plan
    subscription.plan_cycle = plan
    subscription.auto_activate_at_trial_end = True
    await transition_subscription_status(
        session, subscription, SubscriptionStatus.TRIALING_WITH_PLAN.value, "user", user.get("id"),
        {"plan": plan, "stripe_subscription_id": created["subscription_id"]},
    )

    return {
        "subscription_id": created["subscription_id"],
        "client_secret": created["client_secret"],
        "is_setup_intent": created["is_setup_intent"],
        "status": subscription.status,
        "trial_end_date": isoformat(trial_end),
        "first_payment_date": isoformat(calculate_first_payment_date(trial_end)),
    }


async def cancel_subscription(session: AsyncSession, club_id: int, user_id: Optional[int] = None) -> Dict:
    """Cancel at the end of the current period."""
    subscription = await get_subscription_row(session, club_id)
    if subscription is None:
        raise ValueError("No subscription found")
    if subscription.status == SubscriptionStatus.CANCELED.value:
        raise ValueError("Subscription is already canceled")
    if subscription.cancel_at_period_end:
        raise ValueError("Cancellation is already scheduled")

    if subscription.stripe_subscription_id:
        await asyncio.to_thread(
            stripe_service.set_cancel_at_period_end, subscription.stripe_subscription_id, True
        )
    subscription.cancel_at_period_end = True
    await log_subscription_event(
        session, subscription, "subscription_cancel_scheduled", {"cancel_at_period_end": True}, "user", user_id
    )
    return subscription_to_dict(subscription)


async def reactivate_subscription(session: AsyncSession, club_id: int, user_id: Optional[int] = None) -> Dict:
    """Undo a scheduled cancellation."""
    subscription = await get_subscription_row(session, club_id)
    if subscription is None:
        raise ValueError("No subscription found")
    if not subscription.cancel_at_period_end:
        raise ValueError("No cancellation is scheduled")

    if subscription.stripe_subscription_id:
        await asyncio.to_thread(
            stripe_service.set_cancel_at_period_end, subscription.stripe_subscription_id, False
        )
    subscription.cancel_at_period_end = False
    await log_subscription_event(
        session, subscription, "subscription_reactivated", {"cancel_at_period_end": False}, "user", user_id
    )
    return subscription_to_dict(subscription)


async def resume_subscription(session: AsyncSession, club_id: int, user_id: Optional[int] = None) -> Dict:
    """Resume a paused subscription."""
    subscription = await get_subscription_row(session, club_id)
    if subscription is None:
        raise ValueError("No subscription found")
    if subscription.status != SubscriptionStatus.PAUSED.value:
        raise ValueError(f"Only paused subscriptions can be resumed (current: {subscription.status})")
    await transition_subscription_status(
        session, subscription, SubscriptionStatus.ACTIVE.value, "user", user_id
    )
    return subscription_to_dict(subscription)


async def handle_trial_end(
    session: AsyncSession, subscription: Subscription, now: Optional[datetime] = None
) -> Optional[str]:
    """
    End a finished trial.

    Returns:
        "activated", "paused", or None when the trial is still running
    """
    now = now or utcnow()
    if subscription.status not in TRIAL_STATUSES or subscription.trial_end_at is None:
        return None
    if now < ensure_utc(subscription.trial_end_at):
        return None

    if (
        subscription.has_payment_method
        and subscription.auto_activate_at_trial_end
        and subscription.plan_cycle
    ):
        await activate_subscription(session, subscription, subscription.plan_cycle, "system")
        await log_subscription_event(
            session, subscription, "trial_ended_auto_activated", {"plan_cycle": subscription.plan_cycle}
        )
        return "activated"

    await transition_subscription_status(
        session, subscription, SubscriptionStatus.PAUSED.value, "system", None,
        {"reason": "trial_ended_no_payment_method"},
    )
    await log_subscription_event(
        session,
        subscription,
        "trial_ended_paused",
        {
            "has_payment_method": subscription.has_payment_method,
            "auto_activate_at_trial_end": subscription.auto_activate_at_trial_end,
        },
    )
    return "paused"


# ============================================================================
# Stripe webhooks
# ============================================================================


def _timestamp_to_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=pytz.UTC)


def _period_bounds(stripe_subscription) -> tuple:
    """Period dates from the subscription, or from its first item on newer API versions."""
    start = stripe_subscription.get("current_period_start")
    end = stripe_subscription.get("current_period_end")
    if start is None or end is None:
        items = (stripe_subscription.get("items") or {}).get("data") or []
        if items:
            start = start or items[0].get("current_period_start")
            end = end or items[0].get("current_period_end")
    return _timestamp_to_datetime(start), _timestamp_to_datetime(end)


def _invoice_subscription_id(invoice) -> Optional[str]:
    subscription_id = invoice.get("subscription")
    if subscription_id:
        return subscription_id if isinstance(subscription_id, str) else subscription_id.get("id")
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


async def _find_subscription_for_stripe_object(
    session: AsyncSession, stripe_subscription_id: Optional[str], metadata: Optional[Dict]
) -> Optional[Subscription]:
    if stripe_subscription_id:
        subscription = await get_subscription_by_stripe_id(session, stripe_subscription_id)
        if subscription is not None:
            return subscription
    club_id = (metadata or {}).get("club_id")
    if club_id:
        try:
            return await get_subscription_row(session, int(club_id))
        except (TypeError, ValueError):
            return None
    return None


async def _sync_from_stripe_subscription(session: AsyncSession, stripe_subscription) -> Optional[Dict]:
    subscription = await _find_subscription_for_stripe_object(
        session, stripe_subscription.get("id"), stripe_subscription.get("metadata")
    )
    if subscription is None:
        logger.warning(f"No local subscription for Stripe subscription {stripe_subscription.get('id')}")
        return None

    subscription.stripe_subscription_id = stripe_subscription.get("id")
    if stripe_subscription.get("customer") and isinstance(stripe_subscription.get("customer"), str):
        subscription.stripe_customer_id = stripe_subscription["customer"]
    period_start, period_end = _period_bounds(stripe_subscription)
    if period_start:
        subscription.current_period_start = period_start
    if period_end:
        subscription.current_period_end = period_end
        subscription.next_renewal_at = period_end
    subscription.cancel_at_period_end = bool(stripe_subscription.get("cancel_at_period_end"))
    if stripe_subscription.get("default_payment_method"):
        subscription.has_payment_method = True
    plan = (stripe_subscription.get("metadata") or {}).get("plan")
    if plan in PLANS:
        subscription.plan_cycle = plan
        subscription.selected_plan = plan

    stripe_status = stripe_subscription.get("status")
    if stripe_status == "trialing":
        new_status = SubscriptionStatus.TRIALING_WITH_PLAN.value
    elif stripe_status in ("past_due", "unpaid"):
        new_status = SubscriptionStatus.PAST_DUE.value
    elif stripe_status == "canceled":
        new_status = SubscriptionStatus.CANCELED.value
    elif stripe_status in ("incomplete", "incomplete_expired"):
        new_status = None
    else:
        new_status = SubscriptionStatus.ACTIVE.value

    if new_status and new_status != subscription.status:
        await transition_subscription_status(
            session, subscription, new_status, "webhook", None, {"stripe_status": stripe_status}
        )
    await session.flush()
    return subscription_to_dict(subscription)


async def handle_stripe_event(session: AsyncSession, event) -> Dict:
    """
    Apply a verified Stripe event.

    Returns:
        {"received": True, "handled": bool, "type": str}
    """
    event_type = event["type"]
    obj = event["data"]["object"]
    handled = False

    if event_type in ("customer.subscription.created", "customer.subscription.updated"):
        handled = await _sync_from_stripe_subscription(session, obj) is not None

    elif event_type == "customer.subscription.deleted":
        subscription = await _find_subscription_for_stripe_object(session, obj.get("id"), obj.get("metadata"))
        if subscription is not None:
            subscription.cancel_at_period_end = False
            if subscription.status != SubscriptionStatus.CANCELED.value:
                await transition_subscription_status(
                    session, subscription, SubscriptionStatus.CANCELED.value, "webhook"
                )
            handled = True

    elif event_type in ("invoice.payment_succeeded", "invoice.payment_failed"):
        subscription = await _find_subscription_for_stripe_object(
            session, _invoice_subscription_id(obj), obj.get("metadata")
        )
        if subscription is not None:
            new_status = SubscriptionStatus.PAST_DUE.value
            if event_type == "invoice.payment_succeeded":
                # Stripe issues a paid 0 invoice when a trial subscription is created
                if not obj.get("amount_paid"):
                    new_status = None
                    logger.info(
                        f"Ignoring zero-amount invoice {obj.get('id')} "
                        f"({obj.get('billing_reason')}) for subscription {subscription.id}"
                    )
                else:
                    subscription.has_payment_method = True
                    new_status = SubscriptionStatus.ACTIVE.value
            if new_status and subscription.status != new_status:
                await transition_subscription_status(
                    session, subscription, new_status, "webhook", None, {"invoice_id": obj.get("id")}
                )
            handled = True

    elif event_type == "setup_intent.succeeded":
        subscription = await _find_subscription_for_stripe_object(
            session, (obj.get("metadata") or {}).get("subscription_id"), obj.get("metadata")
        )
        if subscription is not None:
            subscription.has_payment_method = True
            subscription.auto_activate_at_trial_end = True
            await log_subscription_event(
                session, subscription, "payment_method_added", {"setup_intent_id": obj.get("id")}, "webhook"
            )
            if subscription.status == SubscriptionStatus.TRIALING_WITH_PLAN.value and subscription.plan_cycle:
                await schedule_activation(session, subscription, subscription.plan_cycle, "webhook")
            handled = True

    else:
        logger.info(f"Unhandled Stripe event type: {event_type}")

    await session.flush()
    return {"received": True, "handled": handled, "type": event_type}


async def list_expired_trials(session: AsyncSession, now: Optional[datetime] = None):
    """Subscriptions still in a trial status whose trial end has passed."""
    now = now or utcnow()
    result = await session.execute(
        select(Subscription).where(
            Subscription.status.in_(TRIAL_STATUSES),
            Subscription.trial_end_at <= now,
        )
    )
    return list(result.scalars().all())


async def list_trialing(session: AsyncSession):
    result = await session.execute(
        select(Subscription, Club)
        .join(Club, Club.id == Subscription.club_id)
        .where(Subscription.status == SubscriptionStatus.TRIALING.value)
        .order_by(Subscription.id)
    )
    return list(result.all())
