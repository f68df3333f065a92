"""
Tests for match submission, confirmation and rejection.
"""
import pytest
import pytest_asyncio
from datetime import datetime, timezone

from padelxp.database.models import Profile
from padelxp.services import data_service, leaderboard_service, match_service, user_service
from padelxp.services.match_service import MatchPermissionError

# db_session fixture is provided by conftest.py

SETS_TEAM1 = [{"team1": 6, "team2": 3}, {"team1": 6, "team2": 4}]


@pytest_asyncio.fixture
async def club_players(db_session):
    """A club with four member profiles, each backed by a user."""
    owner_id = await user_service.create_user(db_session, "owner@club.fr", "hash")
    club = await data_service.create_club(db_session, "Padel Club Lyon", owner_id, postal_code="69003")
    profiles = []
    for index, name in enumerate(["Alice", "Bruno", "Chloe", "David"]):
        user_id = await user_service.create_user(db_session, f"{name.lower()}@club.fr", "hash")
        profile = await data_service.create_profile(
            db_session, user_id=user_id, first_name=name, last_name="Martin", club_id=club["id"]
        )
        profiles.append(profile)
    await db_session.commit()
    return club, profiles


def _lineup(profiles):
    return [
        {"profile_id": profiles[0]["id"], "team": 1},
        {"profile_id": profiles[1]["id"], "team": 1},
        {"profile_id": profiles[2]["id"], "team": 2},
        {"profile_id": profiles[3]["id"], "team": 2},
    ]


class TestPureHelpers:
    def test_team_id_ignores_order(self):
        assert match_service.compute_team_id([3, 1]) == match_service.compute_team_id([1, 3])
        assert match_service.compute_team_id([1, 2]) != match_service.compute_team_id([1, 3])

    def test_count_sets_with_tie_break(self):
        sets = [{"team1": 6, "team2": 4}, {"team1": 3, "team2": 6}]
        assert match_service.count_sets(sets, {"team1": 10, "team2": 8}) == (2, 1)

    def test_count_sets_rejects_draw(self):
        with pytest.raises(ValueError):
            match_service.count_sets([{"team1": 6, "team2": 6}])

    def test_required_confirmations(self):
        assert match_service.required_confirmations(4) == 2
        assert match_service.required_confirmations(1) == 1
        assert match_service.required_confirmations(0) == 1

    def test_validate_teams(self):
        with pytest.raises(ValueError, match="same number"):
            match_service.validate_teams([
                {"profile_id": 1, "team": 1}, {"profile_id": 2, "team": 1},
                {"profile_id": 3, "team": 1}, {"profile_id": 4, "team": 2},
            ])
        with pytest.raises(ValueError, match="twice"):
            match_service.validate_teams([{"profile_id": 1, "team": 1}, {"profile_id": 1, "team": 2}])


@pytest.mark.asyncio
async def test_submit_match_waits_for_second_confirmation(db_session, club_players):
    club, profiles = club_players
    result = await match_service.submit_match(db_session, profiles[0], _lineup(profiles), SETS_TEAM1)

    assert result["status"] == "pending"
    assert result["winner_team"] == 1
    assert result["score_team1"] == 2
    submitter = [p for p in result["participants"] if p["profile_id"] == profiles[0]["id"]][0]
    assert submitter["confirmed"] is True
    assert all(p["confirmation_token"] for p in result["participants"])

    pending = await match_service.get_pending_matches(db_session, profiles[2]["id"])
    assert [p["match_id"] for p in pending] == [result["id"]]


@pytest.mark.asyncio
async def test_confirm_match_updates_levels_and_leaderboard(db_session, club_players):
    club, profiles = club_players
    result = await match_service.submit_match(db_session, profiles[0], _lineup(profiles), SETS_TEAM1)
    token = [p for p in result["participants"] if p["profile_id"] == profiles[2]["id"]][0]["confirmation_token"]

    confirmation = await match_service.confirm_match(db_session, token, profiles[2]["id"])
    assert confirmation["status"] == "confirmed"
    assert confirmation["confirmations"] == 2
    assert confirmation["already_confirmed"] is False

    winner = await db_session.get(Profile, profiles[0]["id"])
    loser = await db_session.get(Profile, profiles[2]["id"])
    assert winner.level > 5.0 > loser.level
    assert winner.level_matches == 1

    board = await leaderboard_service.get_club_leaderboard(db_session, club["id"])
    points = {e["profile_id"]: e["points"] for e in board}
    assert points[profiles[0]["id"]] == 10
    assert points[profiles[3]["id"]] == 3


@pytest.mark.asyncio
async def test_confirm_with_someone_elses_token(db_session, club_players):
    _, profiles = club_players
    result = await match_service.submit_match(db_session, profiles[0], _lineup(profiles), SETS_TEAM1)
    token = [p for p in result["participants"] if p["profile_id"] == profiles[2]["id"]][0]["confirmation_token"]

    with pytest.raises(MatchPermissionError):
        await match_service.confirm_match(db_session, token, profiles[3]["id"])
    assert await match_service.confirm_match(db_session, "unknown-token", profiles[3]["id"]) is None


@pytest.mark.asyncio
async def test_reject_then_confirm_fails(db_session, club_players):
    _, profiles = club_players
    result = await match_service.submit_match(db_session, profiles[0], _lineup(profiles), SETS_TEAM1)
    tokens = {p["profile_id"]: p["confirmation_token"] for p in result["participants"]}

    rejected = await match_service.reject_match(db_session, tokens[profiles[2]["id"]], profiles[2]["id"])
    assert rejected["status"] == "rejected"
    with pytest.raises(ValueError):
        await match_service.confirm_match(db_session, tokens[profiles[3]["id"]], profiles[3]["id"])


@pytest.mark.asyncio
async def test_cancel_match_creator_only(db_session, club_players):
    _, profiles = club_players
    result = await match_service.submit_match(db_session, profiles[0], _lineup(profiles), SETS_TEAM1)

    with pytest.raises(MatchPermissionError):
        await match_service.cancel_match(db_session, result["id"], profiles[1]["id"])
    cancelled = await match_service.cancel_match(db_session, result["id"], profiles[0]["id"])
    assert cancelled["status"] == "cancelled"
    assert await match_service.cancel_match(db_session, 9999, profiles[0]["id"]) is None


@pytest.mark.asyncio
async def test_match_with_guests_confirms_immediately(db_session, club_players):
    _, profiles = club_players
    players = [
        {"profile_id": profiles[0]["id"], "team": 1},
        {"guest_first_name": "Paul", "guest_last_name": "Durand", "team": 2},
    ]
    played_at = datetime(2025, 3, 10, 18, 0, tzinfo=timezone.utc)
    result = await match_service.submit_match(
        db_session, profiles[0], players, [{"team1": 4, "team2": 6}, {"team1": 6, "team2": 2}],
        tie_break={"team1": 10, "team2": 7}, played_at=played_at,
    )
    assert result["status"] == "confirmed"
    assert result["decided_by_tiebreak"] is True
    guest = [p for p in result["participants"] if p["is_guest"]][0]
    assert guest["confirmation_token"] is None

    stats = await leaderboard_service.get_player_stats(db_session, profiles[0]["id"])
    assert stats["wins"] == 1


@pytest.mark.asyncio
async def test_submit_rejects_players_from_other_clubs(db_session, club_players):
    _, profiles = club_players
    outsider_user = await user_service.create_user(db_session, "outsider@autre.fr", "hash")
    outsider = await data_service.create_profile(db_session, user_id=outsider_user, first_name="Eve")
    players = [{"profile_id": profiles[0]["id"], "team": 1}, {"profile_id": outsider["id"], "team": 2}]

    with pytest.raises(ValueError, match="same club"):
        await match_service.submit_match(db_session, profiles[0], players, SETS_TEAM1)


@pytest.mark.asyncio
async def test_submitter_must_play(db_session, club_players):
    _, profiles = club_players
    with pytest.raises(ValueError, match="one of the players"):
        await match_service.submit_match(db_session, profiles[0], _lineup(profiles)[2:] + [
            {"profile_id": profiles[1]["id"], "team": 1}, {"guest_first_name": "Léa", "team": 1},
        ], SETS_TEAM1)
