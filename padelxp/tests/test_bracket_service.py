"""
Tests for the pure bracket functions: seeding, rounds, pools, TMC and rankings.
"""
import pytest
from datetime import datetime, timedelta

from padelxp.services import bracket_service


def _regs(*weights):
    return [{"id": index + 1, "pair_weight": weight} for index, weight in enumerate(weights)]


def _play(matches, next_id=1, team1_wins=True):
    """Give matches ids and complete them; returns the next free id."""
    for match in matches:
        match["id"] = next_id
        next_id += 1
        if match["is_bye"]:
            continue
        match["status"] = "completed"
        match["winner_registration_id"] = (
            match["team1_registration_id"] if team1_wins else match["team2_registration_id"]
        )
        match["score"] = {"sets": [{"team1": 6, "team2": 3}, {"team1": 6, "team2": 4}]}
    return next_id


class TestSeeding:
    @pytest.mark.parametrize("num_pairs, seeds", [(0, 0), (3, 1), (8, 2), (16, 4), (32, 8)])
    def test_num_seeds(self, num_pairs, seeds):
        assert bracket_service.calculate_num_seeds(num_pairs) == seeds

    def test_rank_ties_by_registration_order(self):
        ranked = bracket_service.rank_registrations(_regs(20, 50, 20, 80))
        assert [r["id"] for r in ranked] == [4, 2, 1, 3]

    def test_assign_seeds(self):
        ranked = bracket_service.rank_registrations(_regs(*range(8, 0, -1)))
        seeds = bracket_service.assign_seeds(ranked)
        assert seeds[1] == 1
        assert seeds[2] == 2
        assert seeds[3] is None


class TestRounds:
    def test_round_types(self):
        assert bracket_service.calculate_num_rounds(5) == 3
        assert bracket_service.get_round_type(3, 1) == "quarters"
        assert bracket_service.get_round_type(3, 3) == "final"
        assert bracket_service.get_round_type(7, 1) == "qualifications"
        assert bracket_service.round_type_for_teams(16) == "round_of_16"

    def test_knockout_round1_with_bye(self):
        matches = bracket_service.generate_knockout_round1(_regs(1, 1, 1, 1, 1))
        assert len(matches) == 3
        assert all(m["round_type"] == "quarters" for m in matches)
        bye = matches[-1]
        assert bye["is_bye"] is True
        assert bye["winner_registration_id"] == 5
        assert bye["status"] == "completed"

    def test_knockout_needs_two_pairs(self):
        with pytest.raises(ValueError):
            bracket_service.generate_knockout_round1(_regs(10))

    def test_tmc_team_count(self):
        with pytest.raises(ValueError, match="8 or 16"):
            bracket_service.generate_tmc_round1(_regs(*[1] * 6))


class TestPools:
    def test_distribute_spreads_strongest(self):
        pools = bracket_service.distribute_pools(_regs(*[1] * 6), pool_size=3)
        assert pools == [[1, 3, 5], [2, 4, 6]]

    def test_round_robin(self):
        matches = bracket_service.generate_pool_matches([[1, 3, 5], [2, 4, 6]])
        assert len(matches) == 6
        assert {(m["team1_registration_id"], m["team2_registration_id"]) for m in matches if m["pool_number"] == 1} == {
            (1, 3), (1, 5), (3, 5)
        }

    def test_pools_final_crosses_pools(self):
        matches = bracket_service.generate_pool_matches([[1, 3, 5], [2, 4, 6]])
        _play(matches)
        weights = {team_id: 0 for team_id in range(1, 7)}

        bracket = bracket_service.generate_pools_final(matches, weights)
        assert [(m["team1_registration_id"], m["team2_registration_id"]) for m in bracket] == [(1, 4), (2, 3)]
        assert all(m["round_type"] == "semis" and m["round_number"] == 2 for m in bracket)

        with pytest.raises(ValueError, match="already"):
            bracket_service.generate_pools_final(matches + bracket, weights)

    def test_pools_final_waits_for_pool_matches(self):
        matches = bracket_service.generate_pool_matches([[1, 2, 3]])
        with pytest.raises(ValueError, match="completed"):
            bracket_service.generate_pools_final(matches, {})

    def test_standings_use_set_difference(self):
        matches = [
            {**bracket_service._new_match("pool", 1, 1, 1, 2, pool_number=1), "id": 1},
            {**bracket_service._new_match("pool", 1, 2, 1, 3, pool_number=1), "id": 2},
            {**bracket_service._new_match("pool", 1, 3, 2, 3, pool_number=1), "id": 3},
        ]
        for match, winner, sets in (
            (matches[0], 2, [{"team1": 4, "team2": 6}, {"team1": 6, "team2": 4}, {"team1": 3, "team2": 6}]),
            (matches[1], 1, [{"team1": 6, "team2": 0}, {"team1": 6, "team2": 0}]),
            (matches[2], 3, [{"team1": 2, "team2": 6}, {"team1": 6, "team2": 7}]),
        ):
            match["status"] = "completed"
            match["winner_registration_id"] = winner
            match["score"] = {"sets": sets}

        standings = bracket_service.compute_pool_standings([1, 2, 3], matches, {1: 0, 2: 0, 3: 0})
        assert [s["registration_id"] for s in standings] == [1, 3, 2]
        assert standings[0]["set_diff"] == 1


class TestScheduling:
    def test_courts_rotate_then_time_moves(self):
        matches = bracket_service.generate_pool_matches([[1, 2, 3], [4, 5]])
        for index, match in enumerate(matches):
            match["id"] = index + 1
        start = datetime(2025, 6, 1, 9, 0)

        assignments = bracket_service.schedule_matches(matches, [1, 2], start, 30)
        assert [a["court_number"] for a in assignments] == [1, 2, 1, 2]
        assert [a["scheduled_time"] for a in assignments] == [
            start, start, start + timedelta(minutes=30), start + timedelta(minutes=30)
        ]

    def test_byes_are_not_scheduled(self):
        matches = bracket_service.generate_knockout_round1(_regs(1, 1, 1))
        for index, match in enumerate(matches):
            match["id"] = index + 1
        assignments = bracket_service.schedule_matches(matches, [3], datetime(2025, 6, 1, 9, 0), 45)
        assert [a["id"] for a in assignments] == [1]

    def test_requires_courts(self):
        with pytest.raises(ValueError):
            bracket_service.schedule_matches([], [], datetime(2025, 6, 1), 60)


class TestScores:
    def test_winner_with_super_tiebreak(self):
        sets = [{"team1": 6, "team2": 4}, {"team1": 3, "team2": 6}]
        assert bracket_service.determine_winner(sets, {"team1": 8, "team2": 10}, 11, 12) == 12

    def test_tied_score(self):
        with pytest.raises(ValueError, match="no winner"):
            bracket_service.determine_winner([{"team1": 6, "team2": 4}, {"team1": 4, "team2": 6}], None, 1, 2)

    def test_missing_team(self):
        with pytest.raises(ValueError, match="Both teams"):
            bracket_service.determine_winner([{"team1": 6, "team2": 4}], None, 1, None)

    def test_format(self):
        sets = [{"team1": 6, "team2": 4}, {"team1": 6, "team2": 7, "tiebreak": {"team1": 5, "team2": 7}}]
        assert bracket_service.format_score(sets, {"team1": 10, "team2": 8}) == "6-4, 6-7 (5-7), [10-8]"


class TestKnockoutProgression:
    def test_full_bracket_and_rankings(self):
        matches = bracket_service.generate_knockout_round1(bracket_service.rank_registrations(_regs(*[1] * 8)))
        next_id = _play(matches)

        with pytest.raises(ValueError, match="final must be completed"):
            bracket_service.calculate_knockout_rankings(matches)

        semis = bracket_service.generate_next_knockout_round(matches)
        assert [m["round_type"] for m in semis] == ["semis", "semis"]
        assert [(m["team1_registration_id"], m["team2_registration_id"]) for m in semis] == [(1, 3), (5, 7)]
        next_id = _play(semis, next_id)

        final = bracket_service.generate_next_knockout_round(matches + semis)
        assert final[0]["round_type"] == "final"
        _play(final, next_id)

        all_matches = matches + semis + final
        with pytest.raises(ValueError, match="final has already"):
            bracket_service.generate_next_knockout_round(all_matches)

        rankings = bracket_service.calculate_knockout_rankings(all_matches)
        assert rankings == {1: 1, 5: 2, 3: 3, 7: 3, 2: 5, 4: 5, 6: 5, 8: 5}

    def test_next_round_waits_for_results(self):
        matches = bracket_service.generate_knockout_round1(_regs(1, 1, 1, 1))
        with pytest.raises(ValueError, match="round 1"):
            bracket_service.generate_next_knockout_round(matches)


class TestTmc:
    def test_every_place_is_played(self):
        matches = bracket_service.generate_tmc_round1(bracket_service.rank_registrations(_regs(*[1] * 8)))
        assert {m["tableau"] for m in matches} == {"principal"}
        next_id = _play(matches)

        round2 = bracket_service.generate_next_tmc_round(matches, 8)
        assert [(m["tableau"], m["team1_registration_id"], m["team2_registration_id"]) for m in round2] == [
            ("principal", 1, 3), ("principal", 5, 7), ("places_5_8", 2, 4), ("places_5_8", 6, 8)
        ]
        next_id = _play(round2, next_id)

        round3 = bracket_service.generate_next_tmc_round(matches + round2, 8)
        assert [(m["tableau"], m["round_type"]) for m in round3] == [
            ("principal", "final"),
            ("places_3_4", "third_place"),
            ("places_5_6", "placement"),
            ("places_7_8", "placement"),
        ]
        _play(round3, next_id)

        all_matches = matches + round2 + round3
        with pytest.raises(ValueError, match="last round"):
            bracket_service.generate_next_tmc_round(all_matches, 8)

        rankings = bracket_service.calculate_tmc_rankings(all_matches, 8)
        assert rankings == {1: 1, 5: 2, 3: 3, 7: 4, 2: 5, 6: 6, 4: 7, 8: 8}

    def test_sixteen_teams_play_four_rounds(self):
        all_matches = bracket_service.generate_tmc_round1(bracket_service.rank_registrations(_regs(*[1] * 16)))
        assert bracket_service.tmc_team_count(all_matches) == 16
        next_id = _play(all_matches)

        for round_number in (2, 3, 4):
            new_round = bracket_service.generate_next_tmc_round(all_matches, 16)
            assert len(new_round) == 8
            assert {m["round_number"] for m in new_round} == {round_number}
            next_id = _play(new_round, next_id)
            all_matches = all_matches + new_round

        last = [m for m in all_matches if m["round_number"] == 4]
        assert len({m["tableau"] for m in last}) == 8
        assert [m["round_type"] for m in last if m["tableau"] == "principal"] == ["final"]
        with pytest.raises(ValueError, match="last round"):
            bracket_service.generate_next_tmc_round(all_matches, 16)

        rankings = bracket_service.calculate_tmc_rankings(all_matches, 16)
        assert sorted(rankings) == list(range(1, 17))
        assert sorted(rankings.values()) == list(range(1, 17))
        assert rankings[1] == 1

    def test_team_count_ignores_later_rounds(self):
        matches = bracket_service.generate_tmc_round1(_regs(*[1] * 8))
        next_id = _play(matches)
        round2 = bracket_service.generate_next_tmc_round(matches, 8)
        _play(round2, next_id)
        assert bracket_service.tmc_team_count(matches + round2) == 8

    def test_rankings_before_last_round(self):
        matches = bracket_service.generate_tmc_round1(_regs(*[1] * 8))
        _play(matches)
        with pytest.raises(ValueError, match="not been generated"):
            bracket_service.calculate_tmc_rankings(matches, 8)
