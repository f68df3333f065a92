"""
Tests for challenge objectives, progress and reward claims.
"""
import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone

from padelxp.services import badge_service, challenge_service, data_service, match_service, user_service
from padelxp.services.challenge_service import RewardAlreadyClaimedError
from padelxp.utils.datetime_utils import utcnow


def _item(match_id, played_at, is_winner, partner_id=None, club_id=1, my_sets=2, opponent_sets=0):
    return {
        "match_id": match_id,
        "played_at": played_at,
        "is_winner": is_winner,
        "partner_id": partner_id,
        "club_id": club_id,
        "my_sets": my_sets,
        "opponent_sets": opponent_sets,
    }


def _challenge(objective, club_id=1):
    return {
        "objective": objective,
        "club_id": club_id,
        "start_date": "2025-03-01T00:00:00+00:00",
        "end_date": "2025-03-31T00:00:00+00:00",
    }


def _at(day, hour=18):
    return datetime(2025, 3, day, hour, 0, tzinfo=timezone.utc)


class TestObjectiveParsing:
    @pytest.mark.parametrize(
        "objective, kind",
        [
            ("Gagner 5 matchs", "count"),
            ("Gagner 3 matchs consécutifs", "consecutive_wins"),
            ("Jouer avec 3 partenaires différents", "distinct_partners"),
            ("Remporter 2 matchs sans perdre de set", "clean_sheet"),
            ("Jouer 2 matchs le week-end", "weekend"),
            ("Win 2 matches before 10h", "before_hour"),
            ("Jouer 3 matchs après 20h", "after_hour"),
            ("Jouer 2 matchs en 3 sets", "three_sets"),
        ],
    )
    def test_classify(self, objective, kind):
        assert challenge_service.classify_objective(objective) == kind

    def test_extract_target(self):
        assert challenge_service.extract_target("Gagner 5 matchs") == 5
        assert challenge_service.extract_target("Jouer un match") == 1

    def test_points_reward_label(self):
        assert challenge_service.parse_points_reward("50 points") == 50
        with pytest.raises(ValueError):
            challenge_service.parse_points_reward("un badge")


class TestProgress:
    def test_wins_in_period_only(self):
        history = [
            _item(1, _at(2), True),
            _item(2, _at(3), False),
            _item(3, datetime(2025, 4, 2, tzinfo=timezone.utc), True),
        ]
        assert challenge_service.compute_progress(_challenge("Gagner 5 matchs"), history) == {"current": 1, "target": 5}

    def test_end_day_counts_until_midnight(self):
        history = [_item(1, datetime(2025, 3, 31, 23, 30, tzinfo=timezone.utc), True)]
        assert challenge_service.compute_progress(_challenge("Gagner 1 match"), history)["current"] == 1

    def test_club_challenge_ignores_other_clubs(self):
        history = [_item(1, _at(2), True, club_id=2)]
        assert challenge_service.compute_progress(_challenge("Jouer 1 match"), history)["current"] == 0
        assert challenge_service.compute_progress(_challenge("Jouer 1 match", club_id=None), history)["current"] == 1

    def test_best_streak(self):
        results = [True, True, False, True, True, True, False]
        history = [_item(i, _at(i + 1), won) for i, won in enumerate(results)]
        progress = challenge_service.compute_progress(_challenge("Gagner 5 matchs consécutifs"), history)
        assert progress == {"current": 3, "target": 5}

    def test_distinct_partners(self):
        history = [_item(1, _at(2), False, partner_id=7), _item(2, _at(3), True, partner_id=7), _item(3, _at(4), True, partner_id=8)]
        progress = challenge_service.compute_progress(_challenge("Jouer avec 3 partenaires différents"), history)
        assert progress["current"] == 2

    def test_before_hour_uses_utc(self):
        history = [_item(1, _at(2, hour=9), True), _item(2, _at(3, hour=11), True)]
        progress = challenge_service.compute_progress(_challenge("Win 2 matches before 10h"), history)
        assert progress["current"] == 1

    def test_progress_is_capped(self):
        history = [_item(i, _at(i + 1), True) for i in range(4)]
        assert challenge_service.compute_progress(_challenge("Gagner 2 matchs"), history)["current"] == 2


@pytest_asyncio.fixture
async def player_with_win(db_session):
    owner_id = await user_service.create_user(db_session, "owner@club.fr", "hash")
    club = await data_service.create_club(db_session, "Padel Arena", owner_id)
    user_id = await user_service.create_user(db_session, "alice@club.fr", "hash")
    profile = await data_service.create_profile(db_session, user_id=user_id, first_name="Alice", club_id=club["id"])
    await match_service.submit_match(
        db_session,
        profile,
        [{"profile_id": profile["id"], "team": 1}, {"guest_first_name": "Paul", "team": 2}],
        [{"team1": 6, "team2": 2}, {"team1": 6, "team2": 3}],
    )
    return club, profile


def _period():
    now = utcnow()
    return (now - timedelta(days=1)).isoformat(), (now + timedelta(days=7)).isoformat()


@pytest.mark.asyncio
async def test_claim_points_reward(db_session, player_with_win):
    club, profile = player_with_win
    start, end = _period()
    challenge = await challenge_service.create_challenge(
        db_session, club["id"], "Première victoire", "Gagner 1 match", "points", "50 points", start, end
    )
    assert challenge["status"] == "active"

    challenges = await challenge_service.get_player_challenges(db_session, profile)
    assert challenges[0]["progress"] == {"current": 1, "target": 1}
    assert challenges[0]["reward_claimed"] is False

    result = await challenge_service.claim_reward(db_session, profile, challenge["id"])
    assert result["reward_value"] == "50"
    assert result["total_points"] == 50

    with pytest.raises(RewardAlreadyClaimedError):
        await challenge_service.claim_reward(db_session, profile, challenge["id"])


@pytest.mark.asyncio
async def test_claim_badge_reward(db_session, player_with_win):
    _, profile = player_with_win
    start, end = _period()
    challenge = await challenge_service.create_challenge(
        db_session, None, "Défi national", "Jouer 1 match", "badge", "Conquérant", start, end
    )
    await challenge_service.claim_reward(db_session, profile, challenge["id"])

    badges = await badge_service.get_custom_badges(db_session, profile["id"])
    assert [b["title"] for b in badges] == ["Conquérant"]


@pytest.mark.asyncio
async def test_claim_before_completion(db_session, player_with_win):
    club, profile = player_with_win
    start, end = _period()
    challenge = await challenge_service.create_challenge(
        db_session, club["id"], "Série", "Gagner 3 matchs", "points", "20", start, end
    )
    with pytest.raises(ValueError, match="1/3"):
        await challenge_service.claim_reward(db_session, profile, challenge["id"])


@pytest.mark.asyncio
async def test_other_club_challenge_is_not_found(db_session, player_with_win):
    _, profile = player_with_win
    owner_id = await user_service.create_user(db_session, "other@club.fr", "hash")
    other_club = await data_service.create_club(db_session, "Autre Club", owner_id)
    start, end = _period()
    challenge = await challenge_service.create_challenge(
        db_session, other_club["id"], "Défi", "Jouer 1 match", "points", "10", start, end
    )
    assert await challenge_service.claim_reward(db_session, profile, challenge["id"]) is None
    assert await challenge_service.delete_challenge(db_session, challenge["id"], None) is False
    assert await challenge_service.delete_challenge(db_session, challenge["id"], other_club["id"]) is True


@pytest.mark.asyncio
async def test_create_challenge_validation(db_session):
    start, end = _period()
    with pytest.raises(ValueError, match="reward_type"):
        await challenge_service.create_challenge(db_session, None, "Défi", "Jouer", "cash", "10", start, end)
    with pytest.raises(ValueError, match="after"):
        await challenge_service.create_challenge(db_session, None, "Défi", "Jouer", "points", "10", end, start)
