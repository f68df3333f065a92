"""
Tests for platform admin actions on club subscriptions.
"""
import pytest
import pytest_asyncio
from datetime import timedelta

from padelxp.services import admin_service, data_service, stripe_service, subscription_service, user_service
from padelxp.services.admin_service import ClubNotFoundError
from padelxp.utils.datetime_utils import ensure_utc, utcnow


@pytest_asyncio.fixture
async def club(db_session):
    owner_id = await user_service.create_user(db_session, "owner@club.fr", "hash")
    admin_id = await user_service.create_user(db_session, "admin@padelxp.eu", "hash")
    club = await data_service.create_club(db_session, "Le Padel", owner_id)
    subscription = await subscription_service.initialize_subscription(db_session, club["id"])
    return club, subscription, admin_id


@pytest.fixture
def fake_stripe(monkeypatch):
    calls = []

    def fake_get_or_create_customer(customer_id, email, club_id):
        calls.append(("customer", email))
        return customer_id or "cus_admin"

    def fake_create_or_update_admin_subscription(customer_id, subscription_id, plan):
        calls.append(("subscription", subscription_id, plan))
        return {"subscription_id": "sub_admin", "status": "active"}

    def fake_cancel_subscription(subscription_id):
        calls.append(("cancel", subscription_id))

    monkeypatch.setattr(stripe_service, "get_or_create_customer", fake_get_or_create_customer)
    monkeypatch.setattr(stripe_service, "create_or_update_admin_subscription", fake_create_or_update_admin_subscription)
    monkeypatch.setattr(stripe_service, "cancel_subscription", fake_cancel_subscription)
    return calls


@pytest.mark.asyncio
async def test_extend_trial(db_session, club):
    club_data, subscription, admin_id = club
    previous_end = ensure_utc(subscription.trial_end_at)

    result = await admin_service.update_club_subscription(db_session, club_data["id"], "extend_trial_14d", admin_id)
    assert result["success"] is True
    assert result["subscription"]["status"] == "trialing"
    assert ensure_utc(subscription.trial_end_at) == previous_end + timedelta(days=14)

    actions = await admin_service.list_club_actions(db_session, club_data["id"])
    assert actions[0]["action_type"] == "extend_trial_14d"
    assert actions[0]["previous_value"]["status"] == "trialing"


@pytest.mark.asyncio
async def test_add_period_activates(db_session, club, fake_stripe):
    club_data, subscription, admin_id = club
    result = await admin_service.update_club_subscription(db_session, club_data["id"], "add_3_months", admin_id)

    assert result["subscription"]["status"] == "active"
    assert result["subscription"]["plan_cycle"] == "quarterly"
    assert subscription.stripe_subscription_id == "sub_admin"
    assert ensure_utc(subscription.current_period_end) > utcnow() + timedelta(days=85)
    assert ("customer", "owner@club.fr") in fake_stripe


@pytest.mark.asyncio
async def test_cancel(db_session, club, fake_stripe):
    club_data, subscription, admin_id = club
    subscription.stripe_subscription_id = "sub_live"

    result = await admin_service.update_club_subscription(db_session, club_data["id"], "cancel", admin_id)
    assert result["subscription"]["status"] == "canceled"
    assert ("cancel", "sub_live") in fake_stripe

    actions = await admin_service.list_club_actions(db_session, club_data["id"])
    assert actions[0]["new_value"]["status"] == "canceled"


@pytest.mark.asyncio
async def test_invalid_action_and_unknown_club(db_session, club):
    club_data, _, admin_id = club
    with pytest.raises(ValueError, match="Invalid action"):
        await admin_service.update_club_subscription(db_session, club_data["id"], "add_10_years", admin_id)
    with pytest.raises(ClubNotFoundError):
        await admin_service.update_club_subscription(db_session, 9999, "cancel", admin_id)
