"""
Trial lifecycle: engagement metrics, extensions and the daily trial check.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

import stripe
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import Challenge, ClubAdmin, Subscription, SubscriptionStatus, User
from padelxp.services import (
    data_service,
    email_service,
    match_service,
    stripe_service,
    subscription_service,
)
from padelxp.utils.constants import (
    AUTO_EXTENSION_DAYS,
    AUTO_EXTENSION_MIN_MATCHES,
    AUTO_EXTENSION_MIN_PLAYERS,
    PROPOSED_EXTENSION_DAY,
    TRIAL_REMINDER_DAYS,
)
from padelxp.utils.datetime_utils import ensure_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

MAX_MANUAL_EXTENSION_DAYS = 90


# ============================================================================
# Engagement
# ============================================================================


async def get_engagement_metrics(session: AsyncSession, club_id: int) -> Dict[str, int]:
    """Players, confirmed matches, challenges and admin logins of a club."""
    players = await data_service.count_club_players(session, club_id)
    matches = await match_service.count_confirmed_club_matches(session, club_id)
    challenges_result = await session.execute(
        select(func.count(Challenge.id)).where(Challenge.club_id == club_id)
    )
    logins_result = await session.execute(
        select(func.coalesce(func.sum(User.login_count), 0))
        .join(ClubAdmin, ClubAdmin.user_id == User.id)
        .where(ClubAdmin.club_id == club_id)
    )
    return {
        "players": players,
        "matches": matches,
        "challenges": challenges_result.scalar() or 0,
        "logins": int(logins_result.scalar() or 0),
    }


def calculate_engagement_score(metrics: Dict[str, int]) -> str:
    """
    Engagement level of a trialing club.

    Players >= 10 scores 3 (>= 4 scores 1), matches >= 20 scores 3
    (>= 10 scores 1), at least one challenge scores 2, 3+ admin logins
    score 1. High from 6, medium from 3.
    """
    score = 0
    players = metrics.get("players", 0)
    matches = metrics.get("matches", 0)
    if players >= 10:
        score += 3
    elif players >= 4:
        score += 1
    if matches >= 20:
        score += 3
    elif matches >= 10:
        score += 1
    if metrics.get("challenges", 0) >= 1:
        score += 2
    if metrics.get("logins", 0) >= 3:
        score += 1

    if score >= 6:
        return "high"
    if score >= 3:
        return "medium"
    return "low"


def get_auto_extension_reason(metrics: Dict[str, int]) -> Optional[str]:
    if metrics.get("players", 0) >= AUTO_EXTENSION_MIN_PLAYERS:
        return "10_players"
    if metrics.get("matches", 0) >= AUTO_EXTENSION_MIN_MATCHES:
        return "20_matches"
    return None


def count_engagement_signals(metrics: Dict[str, int]) -> int:
    signals = [
        metrics.get("players", 0) >= 5,
        metrics.get("matches", 0) >= 10,
        metrics.get("challenges", 0) >= 1,
        metrics.get("logins", 0) >= 3,
    ]
    return sum(1 for signal in signals if signal)


def is_proposed_extension_eligible(
    subscription: Dict, metrics: Dict[str, int], now: Optional[datetime] = None
) -> bool:
    """From day 12 of a running trial, with at least 2 engagement signals."""
    now = now or utcnow()
    if subscription.get("status") != SubscriptionStatus.TRIALING.value:
        return False
    if subscription.get("proposed_extension_sent") or subscription.get("auto_extension_used"):
        return False
    trial_start = subscription.get("trial_start_at")
    trial_end = subscription.get("trial_end_at")
    if trial_start is None or trial_end is None or now >= ensure_utc(trial_end):
        return False
    days_since_start = (now - ensure_utc(trial_start)).days
    if days_since_start < PROPOSED_EXTENSION_DAY:
        return False
    return count_engagement_signals(metrics) >= 2


# ============================================================================
# Extensions
# ============================================================================


async def _extend_trial(
    session: AsyncSession,
    subscription: Subscription,
    days: int,
    event_type: str,
    triggered_by: str = "system",
    user_id: Optional[int] = None,
    metadata: Optional[Dict] = None,
) -> datetime:
    """Push the trial end by a number of days and keep Stripe's trial end in sync."""
    now = utcnow()
    current_end = ensure_utc(subscription.trial_end_at) or now
    base = current_end if current_end > now else now
    new_end = base + timedelta(days=days)
    subscription.trial_end_at = new_end

    if subscription.stripe_subscription_id:
        try:
            await asyncio.to_thread(
                stripe_service.update_trial_end, subscription.stripe_subscription_id, int(new_end.timestamp())
            )
        except (stripe.StripeError, ValueError) as e:
            logger.error(f"Could not update Stripe trial end for club {subscription.club_id}: {e}")

    await subscription_service.log_subscription_event(
        session,
        subscription,
        event_type,
        {"days": days, "previous_trial_end": isoformat(current_end), "new_trial_end": isoformat(new_end), **(metadata or {})},
        triggered_by,
        user_id,
    )
    logger.info(f"Trial of club {subscription.club_id} extended by {days} days ({event_type})")
    return new_end


async def check_and_extend(session: AsyncSession, club_id: int) -> Dict:
    """
    Grant the one-off automatic extension when the club is engaged enough,
    or flag the club for a proposed extension.
    """
    subscription = await subscription_service.get_subscription_row(session, club_id)
    if subscription is None:
        raise ValueError("No subscription found")

    metrics = await get_engagement_metrics(session, club_id)
    response = {
        "extended": False,
        "reason": None,
        "proposed_extension": False,
        "engagement": calculate_engagement_score(metrics),
        "metrics": metrics,
        "trial_end_at": isoformat(subscription.trial_end_at),
    }

    if subscription.status != SubscriptionStatus.TRIALING.value:
        return response

    reason = get_auto_extension_reason(metrics)
    if reason and not subscription.auto_extension_used:
        new_end = await _extend_trial(
            session, subscription, AUTO_EXTENSION_DAYS, "trial_extended_auto", metadata={"reason": reason}
        )
        subscription.auto_extension_used = True
        response.update({"extended": True, "reason": reason, "trial_end_at": isoformat(new_end)})
        return response

    if is_proposed_extension_eligible(subscription_service.subscription_to_dict(subscription), metrics):
        subscription.proposed_extension_sent = True
        await subscription_service.log_subscription_event(
            session, subscription, "trial_extension_proposed", {"metrics": metrics}
        )
        response["proposed_extension"] = True

    return response


async def accept_proposed_extension(
    session: AsyncSession, club_id: int, user_id: Optional[int] = None
) -> Dict:
    """Accept the proposed extension (the club's one-off extension)."""
    subscription = await subscription_service.get_subscription_row(session, club_id)
    if subscription is None:
        raise ValueError("No subscription found")
    if not subscription.proposed_extension_sent:
        raise ValueError("No extension has been proposed")
    if subscription.auto_extension_used:
        raise ValueError("The trial extension was already used")
    if subscription.status != SubscriptionStatus.TRIALING.value:
        raise ValueError("The trial is no longer running")

    new_end = await _extend_trial(
        session, subscription, AUTO_EXTENSION_DAYS, "trial_extended_proposed", "user", user_id
    )
    subscription.auto_extension_used = True
    return {"extended": True, "trial_end_at": isoformat(new_end)}


async def grant_manual_extension(
    session: AsyncSession, club_id: int, days: int, admin_user_id: Optional[int] = None
) -> Dict:
    """
    Extend a club's trial by hand. A paused or expired trial is restarted.

    Raises:
        ValueError: If days is out of range or the club has no subscription
    """
    if days < 1 or days > MAX_MANUAL_EXTENSION_DAYS:
        raise ValueError(f"days must be between 1 and {MAX_MANUAL_EXTENSION_DAYS}")
    subscription = await subscription_service.get_subscription_row(session, club_id)
    if subscription is None:
        raise ValueError("No subscription found")
    if subscription.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELED.value):
        raise ValueError(f"Cannot extend the trial of a {subscription.status} subscription")

    new_end = await _extend_trial(
        session, subscription, days, "trial_extended_manual", "admin", admin_user_id
    )
    subscription.manual_extension_days = (subscription.manual_extension_days or 0) + days
    if subscription.status in (SubscriptionStatus.PAUSED.value, SubscriptionStatus.TRIAL_EXPIRED.value):
        await subscription_service.transition_subscription_status(
            session, subscription, SubscriptionStatus.TRIALING.value, "admin", admin_user_id,
            {"reason": "manual_extension"},
        )
    return {
        "club_id": club_id,
        "trial_end_at": isoformat(new_end),
        "manual_extension_days": subscription.manual_extension_days,
        "status": subscription.status,
    }


# ============================================================================
# Daily check
# ============================================================================


async def run_trial_check(session: AsyncSession, now: Optional[datetime] = None) -> Dict:
    """
    End expired trials and send trial-end reminders.

    Returns:
        {"ended": [{"club_id", "outcome"}], "reminders": [{"club_id", "days_remaining", "sent"}]}
    """
    now = now or utcnow()
    ended = []
    for subscription in await subscription_service.list_expired_trials(session, now):
        outcome = await subscription_service.handle_trial_end(session, subscription, now)
        if outcome:
            ended.append({"club_id": subscription.club_id, "outcome": outcome})

    reminders = []
    for subscription, club in await subscription_service.list_trialing(session):
        sub_dict = subscription_service.subscription_to_dict(subscription)
        for days_before in TRIAL_REMINDER_DAYS:
            if not subscription_service.should_send_trial_reminder(sub_dict, days_before, now):
                continue
            owner_email = await data_service.get_club_owner_email(session, club.id)
            if not owner_email:
                logger.warning(f"No admin email for club {club.id}, trial reminder skipped")
                continue
            result = await email_service.send_trial_reminder_email(owner_email, club.name, days_before, session)
            await subscription_service.log_subscription_event(
                session, subscription, "trial_reminder_sent", {"days_before": days_before, "sent": result["sent"]}
            )
            reminders.append({"club_id": club.id, "days_remaining": days_before, "sent": result["sent"]})

    logger.info(f"Trial check: {len(ended)} trials ended, {len(reminders)} reminders")
    return {"ended": ended, "reminders": reminders}
