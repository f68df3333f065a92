"""
Tests for trial engagement scoring, extensions and the daily trial check.
"""
import pytest
import pytest_asyncio
from datetime import timedelta

from padelxp.services import data_service, email_service, subscription_service, trial_service, user_service
from padelxp.utils.datetime_utils import ensure_utc, utcnow


class TestEngagement:
    @pytest.mark.parametrize(
        "metrics, score",
        [
            ({"players": 0, "matches": 0, "challenges": 0, "logins": 0}, "low"),
            ({"players": 4, "matches": 10, "challenges": 0, "logins": 3}, "medium"),
            ({"players": 10, "matches": 20, "challenges": 0, "logins": 0}, "high"),
            ({"players": 4, "matches": 0, "challenges": 1, "logins": 0}, "medium"),
        ],
    )
    def test_engagement_score(self, metrics, score):
        assert trial_service.calculate_engagement_score(metrics) == score

    def test_auto_extension_reason(self):
        assert trial_service.get_auto_extension_reason({"players": 10, "matches": 0}) == "10_players"
        assert trial_service.get_auto_extension_reason({"players": 2, "matches": 25}) == "20_matches"
        assert trial_service.get_auto_extension_reason({"players": 9, "matches": 19}) is None

    def test_proposed_extension_from_day_12(self):
        now = utcnow()
        subscription = {
            "status": "trialing",
            "trial_start_at": now - timedelta(days=12),
            "trial_end_at": now + timedelta(days=2),
        }
        engaged = {"players": 5, "matches": 10, "challenges": 0, "logins": 0}
        assert trial_service.is_proposed_extension_eligible(subscription, engaged, now) is True
        assert trial_service.is_proposed_extension_eligible(
            {**subscription, "trial_start_at": now - timedelta(days=5)}, engaged, now
        ) is False
        assert trial_service.is_proposed_extension_eligible(
            subscription, {"players": 5, "matches": 0, "challenges": 0, "logins": 0}, now
        ) is False


@pytest_asyncio.fixture
async def trial_club(db_session):
    owner_id = await user_service.create_user(db_session, "owner@club.fr", "hash")
    club = await data_service.create_club(db_session, "Padel Horizon", owner_id)
    subscription = await subscription_service.initialize_subscription(db_session, club["id"])
    return club, subscription, owner_id


async def _add_players(db_session, club_id, count):
    for index in range(count):
        await data_service.create_profile(db_session, user_id=None, first_name=f"Joueur{index}", club_id=club_id)


@pytest.mark.asyncio
async def test_check_and_extend_grants_auto_extension_once(db_session, trial_club):
    club, subscription, _ = trial_club
    await _add_players(db_session, club["id"], 10)
    trial_end = ensure_utc(subscription.trial_end_at)

    result = await trial_service.check_and_extend(db_session, club["id"])
    assert result["extended"] is True
    assert result["reason"] == "10_players"
    assert result["metrics"]["players"] == 10
    assert ensure_utc(subscription.trial_end_at) == trial_end + timedelta(days=15)

    again = await trial_service.check_and_extend(db_session, club["id"])
    assert again["extended"] is False


@pytest.mark.asyncio
async def test_check_and_extend_without_engagement(db_session, trial_club):
    club, subscription, _ = trial_club
    result = await trial_service.check_and_extend(db_session, club["id"])
    assert result["extended"] is False
    assert result["proposed_extension"] is False
    assert result["engagement"] == "low"


@pytest.mark.asyncio
async def test_accept_proposed_extension(db_session, trial_club):
    club, subscription, owner_id = trial_club
    with pytest.raises(ValueError, match="proposed"):
        await trial_service.accept_proposed_extension(db_session, club["id"], owner_id)

    subscription.proposed_extension_sent = True
    result = await trial_service.accept_proposed_extension(db_session, club["id"], owner_id)
    assert result["extended"] is True
    assert subscription.auto_extension_used is True

    with pytest.raises(ValueError, match="already used"):
        await trial_service.accept_proposed_extension(db_session, club["id"], owner_id)


@pytest.mark.asyncio
async def test_manual_extension_restarts_paused_trial(db_session, trial_club):
    club, subscription, owner_id = trial_club
    subscription.status = "paused"
    subscription.trial_end_at = utcnow() - timedelta(days=3)

    result = await trial_service.grant_manual_extension(db_session, club["id"], 10, owner_id)
    assert result["status"] == "trialing"
    assert result["manual_extension_days"] == 10
    assert ensure_utc(subscription.trial_end_at) > utcnow() + timedelta(days=9)

    with pytest.raises(ValueError):
        await trial_service.grant_manual_extension(db_session, club["id"], 0, owner_id)


@pytest.mark.asyncio
async def test_run_trial_check(db_session, trial_club, monkeypatch):
    club, subscription, _ = trial_club
    sent = []

    async def fake_send_trial_reminder_email(to_email, club_name, days_remaining, session=None):
        sent.append((to_email, club_name, days_remaining))
        return {"sent": True, "skipped": False, "message_id": "msg-1"}

    monkeypatch.setattr(email_service, "send_trial_reminder_email", fake_send_trial_reminder_email)

    # Three days before the trial end
    subscription.trial_end_at = utcnow() + timedelta(days=3)
    result = await trial_service.run_trial_check(db_session)
    assert result["ended"] == []
    assert result["reminders"] == [{"club_id": club["id"], "days_remaining": 3, "sent": True}]
    assert sent == [("owner@club.fr", "Padel Horizon", 3)]

    subscription.trial_end_at = utcnow() - timedelta(hours=1)
    result = await trial_service.run_trial_check(db_session)
    assert result["ended"] == [{"club_id": club["id"], "outcome": "paused"}]
