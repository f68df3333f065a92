"""
Bracket generation for tournaments.

Pure functions over plain dicts: registrations are {"id", "pair_weight"} and
matches use the TournamentMatch column names. Nothing here touches the
database; tournament_service persists what these functions return.
"""

import math
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple


# Knockout rounds by distance from the final
ROUND_TYPES_FROM_END = [
    "final",
    "semis",
    "quarters",
    "round_of_16",
    "round_of_32",
    "round_of_64",
]
QUALIFICATIONS = "qualifications"
POOL_ROUND = "pool"
PRINCIPAL_TABLEAU = "principal"
TMC_TEAM_COUNTS = (8, 16)

_PLACES_TABLEAU = re.compile(r"^places_(\d+)_(\d+)$")


# ============================================================================
# Seeding and round types
# ============================================================================

def calculate_num_seeds(num_pairs: int) -> int:
    """Number of seeded pairs: one per 8 pairs, up to a quarter of the draw."""
    if num_pairs <= 0:
        return 0
    return max(max(1, num_pairs // 8), min(num_pairs // 4, num_pairs // 2))


def rank_registrations(registrations: List[Dict]) -> List[Dict]:
    """Registrations by pair weight descending, earliest registration first on ties."""
    return sorted(registrations, key=lambda r: (-(r.get("pair_weight") or 0), r["id"]))


def assign_seeds(ranked: List[Dict]) -> Dict[int, Optional[int]]:
    """Map registration id -> seed number (1-based) for the seeded pairs, None for the others."""
    num_seeds = calculate_num_seeds(len(ranked))
    return {
        registration["id"]: (index + 1 if index < num_seeds else None)
        for index, registration in enumerate(ranked)
    }


def calculate_num_rounds(num_teams: int) -> int:
    if num_teams < 2:
        return 0
    return math.ceil(math.log2(num_teams))


def get_round_type(total_rounds: int, current_round: int) -> str:
    """Round type of a 1-based round in a bracket of total_rounds rounds."""
    rounds_from_end = total_rounds - current_round
    if 0 <= rounds_from_end < len(ROUND_TYPES_FROM_END):
        return ROUND_TYPES_FROM_END[rounds_from_end]
    return QUALIFICATIONS


def round_type_for_teams(num_teams: int) -> str:
    """Round type of a knockout round that starts with num_teams teams."""
    return get_round_type(calculate_num_rounds(num_teams), 1)


# ============================================================================
# Match builders
# ============================================================================

def _new_match(
    round_type: str,
    round_number: int,
    match_order: int,
    team1_id: Optional[int],
    team2_id: Optional[int],
    tableau: Optional[str] = None,
    pool_number: Optional[int] = None,
) -> Dict:
    is_bye = team1_id is None or team2_id is None
    return {
        "round_type": round_type,
        "round_number": round_number,
        "match_order": match_order,
        "tableau": tableau,
        "pool_number": pool_number,
        "team1_registration_id": team1_id,
        "team2_registration_id": team2_id,
        "winner_registration_id": (team1_id if team1_id is not None else team2_id) if is_bye else None,
        "is_bye": is_bye,
        "status": "completed" if is_bye else "scheduled",
        "score": None,
    }


def pair_in_order(
    team_ids: Sequence[int],
    round_type: str,
    round_number: int,
    tableau: Optional[str] = None,
) -> List[Dict]:
    """
    Pair teams 1v2, 3v4, ... in the given order.

    A lone last team gets a bye, which is created already completed.
    """
    matches = []
    for index in range(0, len(team_ids), 2):
        team1 = team_ids[index]
        team2 = team_ids[index + 1] if index + 1 < len(team_ids) else None
        matches.append(_new_match(round_type, round_number, index // 2 + 1, team1, team2, tableau))
    return matches


def generate_knockout_round1(ranked: List[Dict], tableau: Optional[str] = None) -> List[Dict]:
    """First round of a knockout bracket from registrations ranked strongest first."""
    if len(ranked) < 2:
        raise ValueError("At least 2 registered pairs are required")
    total_rounds = calculate_num_rounds(len(ranked))
    return pair_in_order(
        [r["id"] for r in ranked], get_round_type(total_rounds, 1), 1, tableau
    )


def generate_tmc_round1(ranked: List[Dict]) -> List[Dict]:
    """First round of a TMC: every team plays in the principal tableau."""
    if len(ranked) not in TMC_TEAM_COUNTS:
        raise ValueError("A TMC requires exactly 8 or 16 pairs")
    return generate_knockout_round1(ranked, tableau=PRINCIPAL_TABLEAU)


def distribute_pools(ranked: List[Dict], pool_size: int) -> List[List[int]]:
    """Team i goes to pool i % num_pools, so the strongest pairs are spread out."""
    if pool_size < 2:
        raise ValueError("Pool size must be at least 2")
    if len(ranked) < 2:
        raise ValueError("At least 2 registered pairs are required")
    num_pools = math.ceil(len(ranked) / pool_size)
    pools: List[List[int]] = [[] for _ in range(num_pools)]
    for index, registration in enumerate(ranked):
        pools[index % num_pools].append(registration["id"])
    return pools


def generate_pool_matches(pools: List[List[int]]) -> List[Dict]:
    """Round robin inside each pool."""
    matches = []
    for pool_index, team_ids in enumerate(pools):
        order = 0
        for i in range(len(team_ids)):
            for j in range(i + 1, len(team_ids)):
                order += 1
                matches.append(
                    _new_match(POOL_ROUND, 1, order, team_ids[i], team_ids[j], pool_number=pool_index + 1)
                )
    return matches


# ============================================================================
# Scheduling
# ============================================================================

def schedule_matches(
    matches: List[Dict],
    courts: Sequence[int],
    start_time: datetime,
    match_duration_minutes: int,
) -> List[Dict]:
    """
    Give each unscheduled, non-bye match a court and a start time.

    Matches are taken by round then match order; courts rotate and the time
    moves on by one match duration after every full rotation.

    Returns:
        [{"id", "court_number", "scheduled_time"}] for the scheduled matches
    """
    if not courts:
        raise ValueError("At least one court is required")
    if match_duration_minutes <= 0:
        raise ValueError("Match duration must be positive")

    pending = [
        m for m in matches
        if not m.get("is_bye") and m.get("scheduled_time") is None and m.get("status") != "completed"
    ]
    pending.sort(key=lambda m: (m["round_number"], m["match_order"], m.get("pool_number") or 0, m["id"]))

    assignments = []
    current_time = start_time
    for index, match in enumerate(pending):
        court_index = index % len(courts)
        if index > 0 and court_index == 0:
            current_time = current_time + timedelta(minutes=match_duration_minutes)
        assignments.append({
            "id": match["id"],
            "court_number": courts[court_index],
            "scheduled_time": current_time,
        })
    return assignments


# ============================================================================
# Scores
# ============================================================================

def count_sets(sets: List[Dict], super_tiebreak: Optional[Dict] = None) -> Tuple[int, int]:
    """Sets won per team; a super tie-break counts as a set."""
    if not sets:
        raise ValueError("At least one set is required")
    team1_sets = 0
    team2_sets = 0
    for set_score in list(sets) + ([super_tiebreak] if super_tiebreak else []):
        team1 = set_score.get("team1")
        team2 = set_score.get("team2")
        if team1 is None or team2 is None or team1 < 0 or team2 < 0:
            raise ValueError("Set scores must be non-negative integers")
        if team1 > team2:
            team1_sets += 1
        elif team2 > team1:
            team2_sets += 1
    return team1_sets, team2_sets


def determine_winner(
    sets: List[Dict],
    super_tiebreak: Optional[Dict],
    team1_id: Optional[int],
    team2_id: Optional[int],
) -> int:
    """
    Registration id of the team that won more sets.

    Raises:
        ValueError: If a team is missing or the sets are tied
    """
    if team1_id is None or team2_id is None:
        raise ValueError("Both teams must be set before entering a score")
    team1_sets, team2_sets = count_sets(sets, super_tiebreak)
    if team1_sets == team2_sets:
        raise ValueError("The score has no winner")
    return team1_id if team1_sets > team2_sets else team2_id


def format_score(sets: List[Dict], super_tiebreak: Optional[Dict] = None) -> str:
    """Format as "6-4, 6-7 (5-7), [10-8]"."""
    parts = []
    for set_score in sets:
        text = f"{set_score['team1']}-{set_score['team2']}"
        tiebreak = set_score.get("tiebreak")
        if tiebreak:
            text += f" ({tiebreak['team1']}-{tiebreak['team2']})"
        parts.append(text)
    if super_tiebreak:
        parts.append(f"[{super_tiebreak['team1']}-{super_tiebreak['team2']}]")
    return ", ".join(parts)


def loser_of(match: Dict) -> Optional[int]:
    winner = match.get("winner_registration_id")
    if winner is None or match.get("is_bye"):
        return None
    if match.get("team1_registration_id") == winner:
        return match.get("team2_registration_id")
    return match.get("team1_registration_id")


def is_match_done(match: Dict) -> bool:
    return bool(match.get("is_bye")) or (
        match.get("status") == "completed" and match.get("winner_registration_id") is not None
    )


# ============================================================================
# Knockout progression
# ============================================================================

def bracket_matches(matches: List[Dict]) -> List[Dict]:
    """Knockout matches of a tournament (pool matches excluded)."""
    return [m for m in matches if m.get("round_type") != POOL_ROUND]


def generate_next_knockout_round(matches: List[Dict]) -> List[Dict]:
    """
    Next round of a knockout bracket: winners of the latest round paired in
    match order.

    Raises:
        ValueError: If there is no bracket, the latest round is unfinished,
                    or the final is already generated
    """
    bracket = bracket_matches(matches)
    if not bracket:
        raise ValueError("No bracket matches found")
    current_round = max(m["round_number"] for m in bracket)
    current = sorted(
        [m for m in bracket if m["round_number"] == current_round],
        key=lambda m: m["match_order"],
    )
    if any(m["round_type"] == "final" for m in current):
        raise ValueError("The final has already been generated")
    if not all(is_match_done(m) for m in current):
        raise ValueError(f"All matches of round {current_round} must be completed first")

    winners = [m["winner_registration_id"] for m in current]
    return pair_in_order(winners, round_type_for_teams(len(winners)), current_round + 1)


# ============================================================================
# Pools
# ============================================================================

def _set_balance(match: Dict) -> Tuple[int, int]:
    score = match.get("score") or {}
    if not score.get("sets"):
        return 0, 0
    return count_sets(score["sets"], score.get("super_tiebreak"))


def compute_pool_standings(
    pool_team_ids: Sequence[int],
    pool_matches: List[Dict],
    pair_weights: Dict[int, int],
) -> List[Dict]:
    """
    Standings of one pool: wins, then set difference, then pair weight.

    Returns:
        [{"registration_id", "wins", "losses", "set_diff", "pair_weight"}] best first
    """
    stats = {
        team_id: {"registration_id": team_id, "wins": 0, "losses": 0, "set_diff": 0}
        for team_id in pool_team_ids
    }
    for match in pool_matches:
        if not is_match_done(match) or match.get("is_bye"):
            continue
        team1 = match["team1_registration_id"]
        team2 = match["team2_registration_id"]
        if team1 not in stats or team2 not in stats:
            continue
        team1_sets, team2_sets = _set_balance(match)
        stats[team1]["set_diff"] += team1_sets - team2_sets
        stats[team2]["set_diff"] += team2_sets - team1_sets
        winner = match["winner_registration_id"]
        loser = team2 if winner == team1 else team1
        stats[winner]["wins"] += 1
        stats[loser]["losses"] += 1

    for team_id, row in stats.items():
        row["pair_weight"] = pair_weights.get(team_id, 0)
    return sorted(
        stats.values(),
        key=lambda s: (-s["wins"], -s["set_diff"], -s["pair_weight"], s["registration_id"]),
    )


def group_pools(pool_matches: List[Dict]) -> Dict[int, List[int]]:
    """Pool number -> team ids, in order of first appearance."""
    pools: Dict[int, List[int]] = {}
    for match in sorted(pool_matches, key=lambda m: (m["pool_number"], m["match_order"])):
        teams = pools.setdefault(match["pool_number"], [])
        for team_id in (match["team1_registration_id"], match["team2_registration_id"]):
            if team_id is not None and team_id not in teams:
                teams.append(team_id)
    return pools


def generate_pools_final(matches: List[Dict], pair_weights: Dict[int, int]) -> List[Dict]:
    """
    Knockout bracket from the pools: the top 2 of each pool qualify and each
    pool winner meets the runner-up of the next pool.

    Raises:
        ValueError: If a pool match is unfinished or the bracket already exists
    """
    pool_matches = [m for m in matches if m.get("round_type") == POOL_ROUND]
    if not pool_matches:
        raise ValueError("No pool matches found")
    if bracket_matches(matches):
        raise ValueError("The final bracket has already been generated")
    if not all(is_match_done(m) for m in pool_matches):
        raise ValueError("All pool matches must be completed first")

    pools = group_pools(pool_matches)
    pool_numbers = sorted(pools)
    standings = {
        number: compute_pool_standings(
            pools[number], [m for m in pool_matches if m["pool_number"] == number], pair_weights
        )
        for number in pool_numbers
    }

    winners = [standings[n][0]["registration_id"] for n in pool_numbers]
    runners_up = [
        standings[n][1]["registration_id"] if len(standings[n]) > 1 else None
        for n in pool_numbers
    ]

    num_pools = len(pool_numbers)
    qualified = winners + [r for r in runners_up if r is not None]
    round_type = round_type_for_teams(len(qualified))
    bracket = []
    for index, winner in enumerate(winners):
        opponent = runners_up[(index + 1) % num_pools] if num_pools > 1 else runners_up[0]
        bracket.append(_new_match(round_type, 2, index + 1, winner, opponent))
    return bracket


# ============================================================================
# TMC progression
# ============================================================================

def tableau_name(lo: int, hi: int) -> str:
    return PRINCIPAL_TABLEAU if lo == 1 else f"places_{lo}_{hi}"


def tableau_range(tableau: str, group_size: int) -> Tuple[int, int]:
    """Places covered by a tableau in a round where tableaux hold group_size teams."""
    if tableau == PRINCIPAL_TABLEAU:
        return 1, group_size
    match = _PLACES_TABLEAU.match(tableau or "")
    if not match:
        raise ValueError(f"Unknown tableau: {tableau}")
    return int(match.group(1)), int(match.group(2))


def tmc_round_type(lo: int, group_size: int) -> str:
    if group_size == 2:
        if lo == 1:
            return "final"
        if lo == 3:
            return "third_place"
        return "placement"
    return round_type_for_teams(group_size)


def tmc_group_size(num_teams: int, round_number: int) -> int:
    return num_teams // (2 ** (round_number - 1))


def tmc_team_count(matches: List[Dict]) -> int:
    """Teams in a TMC draw: round 1 has no byes, so two per match."""
    return 2 * sum(1 for m in matches if m["round_number"] == 1)


def generate_next_tmc_round(matches: List[Dict], num_teams: int) -> List[Dict]:
    """
    Next TMC round: each tableau covering places lo..hi splits into its
    winners (lo..mid) and its losers (mid+1..hi).

    Raises:
        ValueError: If the current round is unfinished or the last round is reached
    """
    if num_teams not in TMC_TEAM_COUNTS:
        raise ValueError("A TMC requires exactly 8 or 16 pairs")
    if not matches:
        raise ValueError("No matches found")
    current_round = max(m["round_number"] for m in matches)
    group_size = tmc_group_size(num_teams, current_round)
    if group_size <= 2:
        raise ValueError("The last round has already been generated")

    current = [m for m in matches if m["round_number"] == current_round]
    if not all(is_match_done(m) for m in current):
        raise ValueError(f"All matches of round {current_round} must be completed first")

    by_tableau: Dict[Tuple[int, int], List[Dict]] = {}
    for match in current:
        lo_hi = tableau_range(match["tableau"], group_size)
        by_tableau.setdefault(lo_hi, []).append(match)

    next_size = group_size // 2
    new_matches = []
    for (lo, hi) in sorted(by_tableau):
        ordered = sorted(by_tableau[(lo, hi)], key=lambda m: m["match_order"])
        mid = lo + next_size - 1
        winners = [m["winner_registration_id"] for m in ordered]
        losers = [loser_of(m) for m in ordered]
        for team_ids, (sub_lo, sub_hi) in ((winners, (lo, mid)), (losers, (mid + 1, hi))):
            new_matches.extend(
                pair_in_order(
                    team_ids,
                    tmc_round_type(sub_lo, next_size),
                    current_round + 1,
                    tableau_name(sub_lo, sub_hi),
                )
            )
    return new_matches


# ============================================================================
# Final rankings
# ============================================================================

def calculate_knockout_rankings(matches: List[Dict]) -> Dict[int, int]:
    """
    Places from a finished knockout bracket.

    The final winner is 1st and its loser 2nd. Losers of an earlier round
    share the first place of their round's range (semis 3rd, quarters 5th).
    Teams eliminated before the bracket (pools) share the place after it.

    Raises:
        ValueError: If the final is not completed
    """
    bracket = bracket_matches(matches)
    finals = [m for m in bracket if m["round_type"] == "final"]
    if not finals or not is_match_done(finals[0]):
        raise ValueError("The final must be completed before ranking")

    rankings: Dict[int, int] = {}
    final = finals[0]
    rankings[final["winner_registration_id"]] = 1
    if loser_of(final) is not None:
        rankings[loser_of(final)] = 2

    for round_number in sorted({m["round_number"] for m in bracket}, reverse=True):
        round_matches = [m for m in bracket if m["round_number"] == round_number]
        if any(m is final for m in round_matches):
            continue
        place = len(round_matches) + 1
        for match in round_matches:
            loser = loser_of(match)
            if loser is not None and loser not in rankings:
                rankings[loser] = place

    bracket_size = len(rankings)
    teams = {
        team_id
        for m in matches
        for team_id in (m.get("team1_registration_id"), m.get("team2_registration_id"))
        if team_id is not None
    }
    for team_id in teams:
        if team_id not in rankings:
            rankings[team_id] = bracket_size + 1
    return rankings


def calculate_tmc_rankings(matches: List[Dict], num_teams: int) -> Dict[int, int]:
    """
    Exact places of a finished TMC: the winner of each last-round match
    takes the first place of its tableau, the loser the second.

    Raises:
        ValueError: If the last round is missing or unfinished
    """
    if not matches:
        raise ValueError("No matches found")
    last_round = max(m["round_number"] for m in matches)
    if tmc_group_size(num_teams, last_round) != 2:
        raise ValueError("The last round has not been generated yet")
    last = [m for m in matches if m["round_number"] == last_round]
    if not all(is_match_done(m) for m in last):
        raise ValueError("All final round matches must be completed first")

    rankings: Dict[int, int] = {}
    for match in last:
        lo, _ = tableau_range(match["tableau"], 2)
        rankings[match["winner_registration_id"]] = lo
        loser = loser_of(match)
        if loser is not None:
            rankings[loser] = lo + 1
    return rankings
