"""
Tests for leaderboard scoring: daily limit, points, streaks and ranking.
"""
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from padelxp.database.models import Match, MatchParticipant
from padelxp.services import data_service, leaderboard_service, match_service, user_service


def _match(match_id, played_at, winner_team, team1, team2, guests=()):
    participants = [
        {"profile_id": pid, "team": 1, "is_guest": pid in guests} for pid in team1
    ] + [
        {"profile_id": pid, "team": 2, "is_guest": pid in guests} for pid in team2
    ]
    return {"id": match_id, "played_at": played_at, "winner_team": winner_team, "participants": participants}


def _profile(profile_id, first_name, last_name="Martin", points=0, is_guest=False):
    return {
        "id": profile_id,
        "first_name": first_name,
        "last_name": last_name,
        "display_name": f"{first_name} {last_name}",
        "points": points,
        "level": 5.0,
        "is_guest": is_guest,
    }


def _at(day, hour):
    return datetime(2025, 3, day, hour, 0, tzinfo=timezone.utc)


class TestDailyLimit:
    def test_only_first_two_matches_of_a_day_count(self):
        matches = [
            _match(1, _at(10, 18), 1, [1, 2], [3, 4]),
            _match(2, _at(10, 9), 1, [1, 2], [3, 4]),
            _match(3, _at(10, 20), 1, [1, 2], [3, 4]),
            _match(4, _at(11, 9), 1, [1, 2], [3, 4]),
        ]
        valid = leaderboard_service.filter_matches_by_daily_limit(matches)
        assert (2, 1) in valid
        assert (1, 1) in valid
        assert (3, 1) not in valid
        assert (4, 1) in valid

    def test_limit_is_per_player(self):
        matches = [
            _match(1, _at(10, 9), 1, [1, 2], [3, 4]),
            _match(2, _at(10, 10), 1, [1, 2], [3, 4]),
            _match(3, _at(10, 11), 1, [5, 6], [1, 7]),
        ]
        valid = leaderboard_service.filter_matches_by_daily_limit(matches)
        assert (3, 1) not in valid
        assert (3, 5) in valid

    def test_guests_are_ignored(self):
        matches = [_match(1, _at(10, 9), 1, [1, 90], [3, 4], guests={90})]
        valid = leaderboard_service.filter_matches_by_daily_limit(matches)
        assert (1, 90) not in valid


class TestStatsAndPoints:
    def test_streak_resets_after_loss(self):
        matches = [
            _match(1, _at(1, 9), 1, [1, 2], [3, 4]),
            _match(2, _at(2, 9), 2, [1, 2], [3, 4]),
            _match(3, _at(3, 9), 1, [1, 2], [3, 4]),
            _match(4, _at(4, 9), 1, [1, 2], [3, 4]),
        ]
        stats = leaderboard_service.compute_player_stats(matches)
        assert stats[1]["wins"] == 3
        assert stats[1]["losses"] == 1
        assert stats[1]["streak"] == 2
        assert stats[3]["streak"] == 0

    def test_points(self):
        assert leaderboard_service.calculate_points(3, 2) == 36
        assert leaderboard_service.calculate_points(1, 0, review_bonus=10, challenge_points=5, boost_bonus=3) == 28

    def test_boost_bonus_only_for_won_matches(self):
        assert leaderboard_service.calculate_boost_bonus({1, 2}, {1: 30, 5: 30}) == 20

    @pytest.mark.parametrize(
        "rating, comment, expected",
        [
            (4, None, True),
            (3, "Bien", False),
            (2, "Super club avec des terrains très bien entretenus", True),
            (None, None, False),
        ],
    )
    def test_valid_review(self, rating, comment, expected):
        assert leaderboard_service.is_valid_review(rating, comment) is expected


class TestBuildLeaderboard:
    def test_names_disambiguate_shared_first_names(self):
        names = leaderboard_service.format_player_names([
            _profile(1, "Lucas", "Martin"),
            _profile(2, "Lucas", "Bernard"),
            _profile(3, "Emma", "Petit"),
        ])
        assert names == {1: "Lucas M.", 2: "Lucas B.", 3: "Emma"}

    def test_ranking_by_points_then_wins(self):
        profiles = [_profile(1, "Alice"), _profile(2, "Bruno"), _profile(3, "Chloe"), _profile(4, "David")]
        matches = [
            _match(1, _at(1, 9), 1, [1, 2], [3, 4]),
            _match(2, _at(2, 9), 1, [1, 3], [2, 4]),
        ]
        board = leaderboard_service.build_leaderboard(profiles, matches, reviewer_ids={4}, boosts_by_profile={})

        # David: 2 losses + review bonus; Bruno and Chloe tie on points and wins
        assert [e["profile_id"] for e in board] == [1, 4, 2, 3]
        assert board[0]["points"] == 20
        assert board[0]["rank"] == 1
        assert board[1]["points"] == 16
        assert board[2]["points"] == board[3]["points"] == 13
        assert "Première victoire" in board[0]["badges"]

    def test_guests_are_not_ranked(self):
        profiles = [_profile(1, "Alice"), _profile(9, "Invité", is_guest=True)]
        matches = [_match(1, _at(1, 9), 1, [1], [9], guests={9})]
        board = leaderboard_service.build_leaderboard(profiles, matches, set(), {})
        assert [e["profile_id"] for e in board] == [1]
        assert board[0]["wins"] == 1

    def test_challenge_points_are_added(self):
        board = leaderboard_service.build_leaderboard([_profile(1, "Alice", points=25)], [], set(), {})
        assert board[0]["points"] == 25


# ============================================================================
# Database-backed leaderboards
# ============================================================================


async def _confirmed_match(db_session, team1, team2, played_at, club_id=None):
    """Store a confirmed match won by team1."""
    team1_id = match_service.compute_team_id([p["id"] for p in team1])
    team2_id = match_service.compute_team_id([p["id"] for p in team2])
    match = Match(
        club_id=club_id,
        team1_id=team1_id,
        team2_id=team2_id,
        winner_team_id=team1_id,
        score_team1=2,
        score_team2=0,
        sets=[{"team1": 6, "team2": 2}, {"team1": 6, "team2": 3}],
        status="confirmed",
        played_at=played_at,
    )
    db_session.add(match)
    await db_session.flush()
    for team, players in ((1, team1), (2, team2)):
        for player in players:
            db_session.add(MatchParticipant(match_id=match.id, profile_id=player["id"], team=team, confirmed=True))
    await db_session.flush()
    return match


@pytest_asyncio.fixture
async def regional_players(db_session):
    """Two Paris players, one in Hauts-de-Seine, one in Lyon and one without postal code."""
    paris1 = await data_service.create_profile(db_session, None, "Alice", "Durand", postal_code="75011")
    paris2 = await data_service.create_profile(db_session, None, "Bruno", "Leroy", postal_code="75015")
    boulogne = await data_service.create_profile(db_session, None, "Chloe", "Moreau", postal_code="92100")
    lyon = await data_service.create_profile(db_session, None, "David", "Roux", postal_code="69003")
    nowhere = await data_service.create_profile(db_session, None, "Emma", "Petit")
    await data_service.create_profile(db_session, None, "Invité", postal_code="75011", is_guest=True)
    return {"paris1": paris1, "paris2": paris2, "boulogne": boulogne, "lyon": lyon, "nowhere": nowhere}


def _ids(entries):
    return {e["profile_id"] for e in entries}


@pytest.mark.asyncio
async def test_geo_leaderboard_scopes(db_session, regional_players):
    p = regional_players
    await _confirmed_match(db_session, [p["paris1"]], [p["lyon"]], _at(1, 9))

    department = await leaderboard_service.get_geo_leaderboard(db_session, "department", p["paris1"])
    assert _ids(department) == {p["paris1"]["id"], p["paris2"]["id"]}
    assert department[0]["profile_id"] == p["paris1"]["id"]
    assert department[0]["points"] == 10

    region = await leaderboard_service.get_geo_leaderboard(db_session, "region", p["paris2"])
    assert _ids(region) == {p["paris1"]["id"], p["paris2"]["id"], p["boulogne"]["id"]}

    national = await leaderboard_service.get_geo_leaderboard(db_session, "national", p["lyon"])
    assert _ids(national) == {player["id"] for player in p.values()}
    assert next(e for e in national if e["profile_id"] == p["lyon"]["id"])["points"] == 3

    limited = await leaderboard_service.get_geo_leaderboard(db_session, "national", p["lyon"], limit=2)
    assert len(limited) == 2


@pytest.mark.asyncio
async def test_geo_leaderboard_requires_location(db_session, regional_players):
    nowhere = regional_players["nowhere"]
    with pytest.raises(ValueError, match="department"):
        await leaderboard_service.get_geo_leaderboard(db_session, "department", nowhere)
    with pytest.raises(ValueError, match="region"):
        await leaderboard_service.get_geo_leaderboard(db_session, "region", nowhere)
    with pytest.raises(ValueError, match="Invalid scope"):
        await leaderboard_service.get_geo_leaderboard(db_session, "city", nowhere)
    assert await leaderboard_service.get_geo_leaderboard(db_session, "national", nowhere)


@pytest.mark.asyncio
async def test_geo_leaderboard_ranks_challenge_points_without_matches(db_session, regional_players):
    p = regional_players
    await data_service.add_profile_points(db_session, p["paris2"]["id"], 50)
    await data_service.add_profile_points(db_session, p["boulogne"]["id"], 20)

    region = await leaderboard_service.get_geo_leaderboard(db_session, "region", p["paris1"])
    assert [e["profile_id"] for e in region][:2] == [p["paris2"]["id"], p["boulogne"]["id"]]
    assert [e["points"] for e in region] == [50, 20, 0]
    assert all(e["matches"] == 0 for e in region)


@pytest.mark.asyncio
async def test_club_leaderboard_ignores_matches_with_outside_players(db_session):
    owner_id = await user_service.create_user(db_session, "gerant@club.fr", "hash")
    club = await data_service.create_club(db_session, "Padel Sud", owner_id)
    other = await data_service.create_club(db_session, "Padel Est", owner_id)
    a, b, c, d = [
        await data_service.create_profile(db_session, None, name, club_id=club["id"])
        for name in ("Alice", "Bruno", "Chloe", "David")
    ]
    outsider = await data_service.create_profile(db_session, None, "Xavier", club_id=other["id"])

    await _confirmed_match(db_session, [a, b], [c, d], _at(1, 9), club_id=club["id"])
    await _confirmed_match(db_session, [a, outsider], [c, d], _at(2, 9), club_id=club["id"])

    board = await leaderboard_service.get_club_leaderboard(db_session, club["id"])
    by_id = {e["profile_id"]: e for e in board}
    assert outsider["id"] not in by_id
    assert by_id[a["id"]]["wins"] == 1
    assert by_id[a["id"]]["matches"] == 1
    assert by_id[c["id"]]["losses"] == 1

    other_board = await leaderboard_service.get_club_leaderboard(db_session, other["id"])
    assert [(e["profile_id"], e["matches"]) for e in other_board] == [(outsider["id"], 0)]
