"""
Tests for subscription pricing, trial lifecycle and Stripe webhook handling.
"""
import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from padelxp.database.models import SubscriptionEvent
from padelxp.services import data_service, stripe_service, subscription_service, user_service

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestPricing:
    def test_prices(self):
        assert subscription_service.get_total_price("monthly") == 99
        assert subscription_service.get_total_price("quarterly") == 279
        assert subscription_service.get_total_price("annual") == 982
        assert subscription_service.get_monthly_price("quarterly") == 93.0
        assert subscription_service.get_monthly_price("annual") == 82

    def test_savings(self):
        assert subscription_service.calculate_savings("monthly") == {"percentage": 0, "amount": 0}
        assert subscription_service.calculate_savings("quarterly") == {"percentage": 6, "amount": 6.0}
        assert subscription_service.calculate_savings("annual") == {"percentage": 17, "amount": 17}

    def test_invalid_plan(self):
        with pytest.raises(ValueError):
            subscription_service.get_total_price("weekly")

    def test_cycle_days(self):
        assert [subscription_service.get_cycle_days(p) for p in subscription_service.PLANS] == [30, 90, 365]


class TestTrialHelpers:
    def test_days_remaining_counts_midnights(self):
        end = datetime(2025, 3, 24, 1, 0, tzinfo=timezone.utc)
        assert subscription_service.calculate_trial_days_remaining(end, NOW) == 14
        assert subscription_service.calculate_trial_days_remaining(NOW - timedelta(days=2), NOW) == 0
        assert subscription_service.calculate_trial_days_remaining(None, NOW) is None

    def test_trial_expired(self):
        sub = {"status": "trialing", "trial_end_at": NOW - timedelta(minutes=1)}
        assert subscription_service.is_trial_expired(sub, NOW) is True
        assert subscription_service.is_trial_active(sub, NOW) is False

    def test_reminders(self):
        sub = {"status": "trialing", "trial_end_at": NOW + timedelta(days=3)}
        assert subscription_service.should_send_trial_reminder(sub, 3, NOW) is True
        assert subscription_service.should_send_trial_reminder(sub, 1, NOW) is False
        assert subscription_service.should_send_trial_reminder({**sub, "status": "active"}, 3, NOW) is False

    def test_first_payment_date(self):
        end = datetime(2025, 3, 24, 15, 30, tzinfo=timezone.utc)
        assert subscription_service.calculate_first_payment_date(end) == datetime(2025, 3, 25, tzinfo=timezone.utc)

    def test_next_renewal_clamps_month_end(self):
        start = datetime(2025, 1, 31, tzinfo=timezone.utc)
        assert subscription_service.calculate_next_renewal_at(start, "monthly").day == 28

    @pytest.mark.parametrize(
        "status, feature, allowed",
        [
            ("trialing", "matches", True),
            ("active", "matches", True),
            ("paused", "matches", False),
            ("paused", "dashboard", True),
            ("canceled", "dashboard", False),
            ("canceled", "public_page", True),
            ("trial_expired", "public_page", False),
        ],
    )
    def test_feature_access(self, status, feature, allowed):
        assert subscription_service.can_access_feature({"status": status}, feature) is allowed


@pytest_asyncio.fixture
async def club(db_session):
    owner_id = await user_service.create_user(db_session, "owner@club.fr", "hash")
    club = await data_service.create_club(db_session, "Padel Factory", owner_id)
    return {**club, "owner_id": owner_id}


async def _events(db_session, subscription_id):
    result = await db_session.execute(
        select(SubscriptionEvent.event_type)
        .where(SubscriptionEvent.subscription_id == subscription_id)
        .order_by(SubscriptionEvent.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_initialize_subscription_starts_trial(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"], now=NOW)
    assert subscription.status == "trialing"
    assert subscription_service.subscription_to_dict(subscription)["trial_end_at"] == NOW + timedelta(days=14)

    again = await subscription_service.initialize_subscription(db_session, club["id"])
    assert again.id == subscription.id
    assert await _events(db_session, subscription.id) == ["trial_started"]


@pytest.mark.asyncio
async def test_serialize_subscription(db_session, club):
    await subscription_service.initialize_subscription(db_session, club["id"])
    data = subscription_service.serialize_subscription(
        await subscription_service.get_club_subscription(db_session, club["id"])
    )
    assert data["status"] == "trialing"
    assert data["trial_days_remaining"] == 14
    assert data["is_trial_active"] is True
    assert data["access"] == {"matches": True, "dashboard": True, "public_page": True}
    assert isinstance(data["trial_end_at"], str)


@pytest.mark.asyncio
async def test_create_subscription_during_trial(db_session, club, monkeypatch):
    await subscription_service.initialize_subscription(db_session, club["id"])
    calls = {}

    def fake_get_or_create_customer(customer_id, email, club_id):
        calls["customer"] = (customer_id, email, club_id)
        return "cus_123"

    def fake_create_trial_subscription(customer_id, plan, club_id, trial_end_ts):
        calls["subscription"] = (customer_id, plan, club_id)
        return {"subscription_id": "sub_123", "status": "trialing", "client_secret": "seti_secret", "is_setup_intent": True}

    monkeypatch.setattr(stripe_service, "get_or_create_customer", fake_get_or_create_customer)
    monkeypatch.setattr(stripe_service, "create_trial_subscription", fake_create_trial_subscription)

    user = {"id": club["owner_id"], "email": "owner@club.fr"}
    result = await subscription_service.create_subscription(db_session, club["id"], "quarterly", user)

    assert result["subscription_id"] == "sub_123"
    assert result["is_setup_intent"] is True
    assert result["status"] == "trialing_with_plan"
    assert calls["subscription"] == ("cus_123", "quarterly", club["id"])

    with pytest.raises(ValueError, match="already"):
        await subscription_service.create_subscription(db_session, club["id"], "monthly", user)


@pytest.mark.asyncio
async def test_create_subscription_after_trial_end(db_session, club):
    await subscription_service.initialize_subscription(db_session, club["id"], now=NOW - timedelta(days=30))
    with pytest.raises(ValueError, match="ended"):
        await subscription_service.create_subscription(
            db_session, club["id"], "monthly", {"id": club["owner_id"], "email": "owner@club.fr"}
        )


@pytest.mark.asyncio
async def test_cancel_and_reactivate(db_session, club):
    await subscription_service.initialize_subscription(db_session, club["id"])
    cancelled = await subscription_service.cancel_subscription(db_session, club["id"], club["owner_id"])
    assert cancelled["cancel_at_period_end"] is True
    with pytest.raises(ValueError):
        await subscription_service.cancel_subscription(db_session, club["id"])

    reactivated = await subscription_service.reactivate_subscription(db_session, club["id"])
    assert reactivated["cancel_at_period_end"] is False


@pytest.mark.asyncio
async def test_trial_end_pauses_without_payment_method(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"], now=NOW - timedelta(days=15))
    expired = await subscription_service.list_expired_trials(db_session, NOW)
    assert [s.id for s in expired] == [subscription.id]

    assert await subscription_service.handle_trial_end(db_session, subscription, NOW) == "paused"
    assert subscription.status == "paused"

    resumed = await subscription_service.resume_subscription(db_session, club["id"])
    assert resumed["status"] == "active"


@pytest.mark.asyncio
async def test_trial_end_activates_with_payment_method(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"], now=NOW - timedelta(days=15))
    subscription.has_payment_method = True
    subscription.auto_activate_at_trial_end = True
    subscription.plan_cycle = "monthly"

    assert await subscription_service.handle_trial_end(db_session, subscription, NOW) == "activated"
    assert subscription.status == "active"
    assert subscription.next_renewal_at is not None


def _event(event_type, obj):
    return {"type": event_type, "data": {"object": obj}}


@pytest.mark.asyncio
async def test_webhook_subscription_updated(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"])
    period_end = int((NOW + timedelta(days=30)).timestamp())
    result = await subscription_service.handle_stripe_event(db_session, _event(
        "customer.subscription.updated",
        {
            "id": "sub_999",
            "customer": "cus_999",
            "status": "active",
            "metadata": {"club_id": str(club["id"]), "plan": "annual"},
            "items": {"data": [{"current_period_start": int(NOW.timestamp()), "current_period_end": period_end}]},
            "cancel_at_period_end": False,
        },
    ))
    assert result == {"received": True, "handled": True, "type": "customer.subscription.updated"}
    assert subscription.status == "active"
    assert subscription.stripe_subscription_id == "sub_999"
    assert subscription.plan_cycle == "annual"


@pytest.mark.asyncio
async def test_webhook_payment_failed_and_deleted(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"])
    subscription.stripe_subscription_id = "sub_abc"

    await subscription_service.handle_stripe_event(
        db_session, _event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_abc"})
    )
    assert subscription.status == "past_due"

    await subscription_service.handle_stripe_event(
        db_session, _event("customer.subscription.deleted", {"id": "sub_abc", "metadata": {}})
    )
    assert subscription.status == "canceled"


@pytest.mark.asyncio
async def test_zero_amount_trial_invoice_keeps_trial_running(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"], now=NOW)
    subscription.stripe_subscription_id = "sub_trial"
    subscription.status = "trialing_with_plan"
    subscription.plan_cycle = "monthly"

    result = await subscription_service.handle_stripe_event(db_session, _event(
        "invoice.payment_succeeded",
        {"id": "in_0", "subscription": "sub_trial", "amount_paid": 0, "billing_reason": "subscription_create"},
    ))
    assert result["handled"] is True
    assert subscription.status == "trialing_with_plan"
    assert subscription.has_payment_method is False

    assert await subscription_service.handle_trial_end(db_session, subscription, NOW + timedelta(days=30)) == "paused"


@pytest.mark.asyncio
async def test_paid_invoice_activates(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"], now=NOW)
    subscription.stripe_subscription_id = "sub_paid"

    await subscription_service.handle_stripe_event(db_session, _event(
        "invoice.payment_succeeded",
        {"id": "in_1", "subscription": "sub_paid", "amount_paid": 9900, "billing_reason": "subscription_cycle"},
    ))
    assert subscription.status == "active"
    assert subscription.has_payment_method is True


@pytest.mark.asyncio
async def test_webhook_setup_intent_and_unknown_event(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"])
    subscription.stripe_subscription_id = "sub_xyz"

    await subscription_service.handle_stripe_event(db_session, _event(
        "setup_intent.succeeded", {"id": "seti_1", "metadata": {"subscription_id": "sub_xyz"}}
    ))
    assert subscription.has_payment_method is True
    assert subscription.auto_activate_at_trial_end is True

    result = await subscription_service.handle_stripe_event(db_session, _event("charge.refunded", {"id": "ch_1"}))
    assert result["handled"] is False


@pytest.mark.asyncio
async def test_payment_method_schedules_activation(db_session, club):
    subscription = await subscription_service.initialize_subscription(db_session, club["id"], now=NOW)
    subscription.stripe_subscription_id = "sub_plan"
    subscription.status = "trialing_with_plan"
    subscription.plan_cycle = "monthly"

    await subscription_service.handle_stripe_event(db_session, _event(
        "setup_intent.succeeded", {"id": "seti_2", "metadata": {"subscription_id": "sub_plan"}}
    ))
    assert subscription.status == "scheduled_activation"

    trial_end = NOW + timedelta(days=14, minutes=1)
    assert [s.id for s in await subscription_service.list_expired_trials(db_session, trial_end)] == [subscription.id]
    assert await subscription_service.handle_trial_end(db_session, subscription, trial_end) == "activated"
    assert subscription.status == "active"
