"""
Player level service.
ELO-like level updates on a 1 to 10 scale, computed from team averages.
"""

from typing import Dict, List, Sequence
from padelxp.utils.constants import INITIAL_LEVEL, LEVEL_SCALE, MIN_LEVEL, MAX_LEVEL


# ============================================================================
# Helper Functions (Level Calculations)
# ============================================================================

def calculate_win_probability(team_a_level: float, team_b_level: float) -> float:
    """
    Probability that team A beats team B given their average levels.

    Formula: P(A beats B) = 1 / (1 + 10^((level_B - level_A) / LEVEL_SCALE))
    Equal levels give 0.5; the result always lies in [0, 1].
    """
    exponent = (team_b_level - team_a_level) / LEVEL_SCALE
    # Clamp the exponent so extreme inputs cannot overflow
    exponent = max(-50.0, min(50.0, exponent))
    return 1 / (1 + 10 ** exponent)


def team_average(levels: Sequence[float]) -> float:
    """Average level of a team (initial level for an empty team)."""
    if not levels:
        return INITIAL_LEVEL
    return sum(levels) / len(levels)


def k_factor(matches_played: int) -> float:
    """K-factor: new players move faster than established ones."""
    if matches_played < 10:
        return 0.5
    if matches_played < 30:
        return 0.3
    return 0.2


def calculate_level_delta(
    team_avg: float, opponent_avg: float, won: bool, matches_played: int
) -> float:
    """Level change for one player: k * (actual - expected)."""
    expected = calculate_win_probability(team_avg, opponent_avg)
    actual = 1.0 if won else 0.0
    return k_factor(matches_played) * (actual - expected)


def clamp_level(level: float) -> float:
    return round(max(MIN_LEVEL, min(MAX_LEVEL, level)), 2)


def simulate_new_level(
    current_level: float,
    team_avg: float,
    opponent_avg: float,
    won: bool,
    matches_played: int,
) -> float:
    """Level after one match, clamped to [1, 10] and rounded to 2 decimals."""
    delta = calculate_level_delta(team_avg, opponent_avg, won, matches_played)
    return clamp_level(current_level + delta)


# ============================================================================
# Match Processing
# ============================================================================

def compute_match_level_updates(
    team1: List[Dict], team2: List[Dict], winner_team: int
) -> Dict[int, Dict]:
    """
    Compute new levels for every player of a confirmed match.

    Args:
        team1: [{"profile_id", "level", "level_matches"}, ...]
        team2: same shape as team1
        winner_team: 1 or 2

    Returns:
        {profile_id: {"old_level", "new_level", "delta"}}
    """
    team1_avg = team_average([p["level"] for p in team1])
    team2_avg = team_average([p["level"] for p in team2])

    updates = {}
    for players, own_avg, opp_avg, team_number in (
        (team1, team1_avg, team2_avg, 1),
        (team2, team2_avg, team1_avg, 2),
    ):
        for player in players:
            new_level = simulate_new_level(
                player["level"],
                own_avg,
                opp_avg,
                won=winner_team == team_number,
                matches_played=player.get("level_matches", 0),
            )
            updates[player["profile_id"]] = {
                "old_level": player["level"],
                "new_level": new_level,
                "delta": round(new_level - player["level"], 2),
            }
    return updates


def estimate_match(team1_levels: Sequence[float], team2_levels: Sequence[float], matches_played: int = 0) -> Dict:
    """Win probability and level deltas on win/loss for team 1."""
    if not team1_levels or not team2_levels:
        raise ValueError("Both teams need at least one level")
    for level in list(team1_levels) + list(team2_levels):
        if level < MIN_LEVEL or level > MAX_LEVEL:
            raise ValueError(f"Levels must be between {MIN_LEVEL} and {MAX_LEVEL}")
    team1_avg = team_average(team1_levels)
    team2_avg = team_average(team2_levels)
    probability = calculate_win_probability(team1_avg, team2_avg)
    return {
        "team1_average": round(team1_avg, 2),
        "team2_average": round(team2_avg, 2),
        "win_probability": round(probability, 4),
        "delta_if_win": round(calculate_level_delta(team1_avg, team2_avg, True, matches_played), 3),
        "delta_if_loss": round(calculate_level_delta(team1_avg, team2_avg, False, matches_played), 3),
    }
