"""
Leaderboard computation for clubs and geographic scopes.

Points per player:
    wins * POINTS_PER_WIN + losses * POINTS_PER_LOSS
    + review bonus + challenge points + boost bonus

Only confirmed matches count, and only a player's earliest
MAX_MATCHES_PER_DAY matches of each UTC day.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import MatchBoost, Profile, Review
from padelxp.services import badge_service, data_service, match_service
from padelxp.utils.constants import (
    BOOST_BASE_POINTS,
    MAX_MATCHES_PER_DAY,
    POINTS_PER_LOSS,
    POINTS_PER_WIN,
    REVIEW_BONUS_POINTS,
)
from padelxp.utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)

GEO_SCOPES = ("department", "region", "national")


# ============================================================================
# Pure calculations
# ============================================================================


def filter_matches_by_daily_limit(
    matches: List[Dict], max_per_day: int = MAX_MATCHES_PER_DAY
) -> Set[Tuple[int, int]]:
    """
    Keep each player's earliest matches of every UTC day.

    Args:
        matches: Confirmed matches as returned by match_service.load_confirmed_matches
        max_per_day: Matches per player and day that count

    Returns:
        Set of (match_id, profile_id) pairs that count toward points
    """
    by_player_day: Dict[Tuple[int, str], List[Tuple]] = defaultdict(list)
    for match in matches:
        played_at = ensure_utc(match.get("played_at"))
        if played_at is None:
            continue
        day_key = played_at.date().isoformat()
        for participant in match["participants"]:
            if participant.get("is_guest"):
                continue
            by_player_day[(participant["profile_id"], day_key)].append(
                (played_at, match["id"])
            )

    valid = set()
    for (profile_id, _day), day_matches in by_player_day.items():
        day_matches.sort()
        for _played_at, match_id in day_matches[:max_per_day]:
            valid.add((match_id, profile_id))
    return valid


def is_valid_review(rating: Optional[int], comment: Optional[str]) -> bool:
    """A review earns the bonus when rated above 3 or commented with more than 6 words."""
    if rating is not None and rating > 3:
        return True
    words = [w for w in (comment or "").split() if w]
    return len(words) > 6


def compute_player_stats(
    matches: List[Dict],
    valid_pairs: Optional[Set[Tuple[int, int]]] = None,
    profile_ids: Optional[Iterable[int]] = None,
) -> Dict[int, Dict]:
    """
    Aggregate wins, losses and the current win streak per player.

    Args:
        matches: Confirmed matches ordered by played_at
        valid_pairs: (match_id, profile_id) pairs allowed by the daily limit;
                     None counts every match
        profile_ids: Restrict the result to these players

    Returns:
        {profile_id: {"wins", "losses", "matches", "streak", "won_match_ids"}}
    """
    wanted = set(profile_ids) if profile_ids is not None else None
    stats: Dict[int, Dict] = {}
    ordered = sorted(matches, key=lambda m: (ensure_utc(m["played_at"]), m["id"]))
    for match in ordered:
        for participant in match["participants"]:
            if participant.get("is_guest"):
                continue
            profile_id = participant["profile_id"]
            if wanted is not None and profile_id not in wanted:
                continue
            if valid_pairs is not None and (match["id"], profile_id) not in valid_pairs:
                continue
            row = stats.setdefault(
                profile_id,
                {"wins": 0, "losses": 0, "matches": 0, "streak": 0, "won_match_ids": set()},
            )
            row["matches"] += 1
            if participant["team"] == match["winner_team"]:
                row["wins"] += 1
                row["streak"] += 1
                row["won_match_ids"].add(match["id"])
            else:
                row["losses"] += 1
                row["streak"] = 0
    return stats


def calculate_boost_bonus(won_match_ids: Set[int], boosts: Dict[int, int]) -> int:
    """Extra points of boosted matches the player won."""
    bonus = 0
    for match_id, points_after_boost in boosts.items():
        if match_id in won_match_ids:
            bonus += max(0, points_after_boost - BOOST_BASE_POINTS)
    return bonus


def calculate_points(
    wins: int,
    losses: int,
    review_bonus: int = 0,
    challenge_points: int = 0,
    boost_bonus: int = 0,
) -> int:
    return wins * POINTS_PER_WIN + losses * POINTS_PER_LOSS + review_bonus + challenge_points + boost_bonus


def format_player_names(profiles: List[Dict]) -> Dict[int, str]:
    """
    Short display names: first name alone, or "First L." when the first
    name is shared with another listed player.
    """
    first_name_counts: Dict[str, int] = defaultdict(int)
    for profile in profiles:
        first = (profile.get("first_name") or "").strip().lower()
        first_name_counts[first] += 1

    names = {}
    for profile in profiles:
        first = (profile.get("first_name") or "").strip()
        last = (profile.get("last_name") or "").strip()
        if not first:
            names[profile["id"]] = profile.get("display_name") or "Joueur"
        elif first_name_counts[first.lower()] > 1 and last:
            names[profile["id"]] = f"{first} {last[0].upper()}."
        else:
            names[profile["id"]] = first
    return names


def rank_entries(entries: List[Dict]) -> List[Dict]:
    """Sort by points, then wins, then name, and assign ranks."""
    ordered = sorted(
        entries,
        key=lambda e: (-e["points"], -e["wins"], (e["player_name"] or "").lower(), e["profile_id"]),
    )
    for index, entry in enumerate(ordered):
        entry["rank"] = index + 1
    return ordered


def build_leaderboard(
    profiles: List[Dict],
    matches: List[Dict],
    reviewer_ids: Set[int],
    boosts_by_profile: Dict[int, Dict[int, int]],
) -> List[Dict]:
    """
    Build ranked leaderboard entries.

    Args:
        profiles: Ranked population (guests are skipped)
        matches: Confirmed matches to score
        reviewer_ids: Profiles with a valid review
        boosts_by_profile: {profile_id: {match_id: points_after_boost}}
    """
    players = [p for p in profiles if not p.get("is_guest")]
    player_ids = [p["id"] for p in players]
    valid_pairs = filter_matches_by_daily_limit(matches)
    stats = compute_player_stats(matches, valid_pairs, player_ids)
    names = format_player_names(players)

    entries = []
    for profile in players:
        row = stats.get(profile["id"], {"wins": 0, "losses": 0, "matches": 0, "streak": 0, "won_match_ids": set()})
        review_bonus = REVIEW_BONUS_POINTS if profile["id"] in reviewer_ids else 0
        boost_bonus = calculate_boost_bonus(row["won_match_ids"], boosts_by_profile.get(profile["id"], {}))
        points = calculate_points(
            row["wins"], row["losses"], review_bonus, profile.get("points") or 0, boost_bonus
        )
        badges = badge_service.get_badges(
            wins=row["wins"],
            losses=row["losses"],
            matches=row["matches"],
            points=points,
            streak=row["streak"],
            has_review=profile["id"] in reviewer_ids,
        )
        entries.append({
            "rank": 0,
            "profile_id": profile["id"],
            "player_name": names[profile["id"]],
            "points": points,
            "wins": row["wins"],
            "losses": row["losses"],
            "matches": row["matches"],
            "streak": row["streak"],
            "level": profile.get("level"),
            "badges": [badge["title"] for badge in badges],
            "is_guest": False,
        })
    return rank_entries(entries)


# ============================================================================
# Database-backed leaderboards
# ============================================================================


async def _load_reviewer_ids(session: AsyncSession, profile_ids: List[int]) -> Set[int]:
    if not profile_ids:
        return set()
    result = await session.execute(
        select(Review.profile_id, Review.rating, Review.comment).where(Review.profile_id.in_(profile_ids))
    )
    return {profile_id for profile_id, rating, comment in result.all() if is_valid_review(rating, comment)}


async def _load_boosts(session: AsyncSession, profile_ids: List[int]) -> Dict[int, Dict[int, int]]:
    if not profile_ids:
        return {}
    result = await session.execute(
        select(MatchBoost.profile_id, MatchBoost.match_id, MatchBoost.points_after_boost).where(
            MatchBoost.profile_id.in_(profile_ids)
        )
    )
    boosts: Dict[int, Dict[int, int]] = defaultdict(dict)
    for profile_id, match_id, points_after_boost in result.all():
        boosts[profile_id][match_id] = points_after_boost
    return boosts


async def _score_population(
    session: AsyncSession, profiles: List[Dict], matches: List[Dict]
) -> List[Dict]:
    profile_ids = [p["id"] for p in profiles]
    reviewer_ids = await _load_reviewer_ids(session, profile_ids)
    boosts = await _load_boosts(session, profile_ids)
    return build_leaderboard(profiles, matches, reviewer_ids, boosts)


async def get_club_leaderboard(
    session: AsyncSession, club_id: int, limit: Optional[int] = None
) -> List[Dict]:
    """
    Leaderboard of a club. Only matches where every user participant
    belongs to the club are scored.
    """
    profiles = await data_service.list_club_profiles(session, club_id)
    member_ids = {p["id"] for p in profiles}
    matches = await match_service.load_confirmed_matches(session, profile_ids=list(member_ids))
    club_matches = [
        m for m in matches
        if all(p["profile_id"] in member_ids for p in m["participants"] if not p["is_guest"])
    ]
    entries = await _score_population(session, profiles, club_matches)
    logger.debug(f"Club {club_id} leaderboard: {len(entries)} players, {len(club_matches)} matches")
    return entries[:limit] if limit else entries


async def get_top3(session: AsyncSession, club_id: int) -> List[Dict]:
    return await get_club_leaderboard(session, club_id, limit=3)


async def get_geo_leaderboard(
    session: AsyncSession, scope: str, profile: Dict, limit: Optional[int] = None
) -> List[Dict]:
    """
    Leaderboard across clubs for the caller's department, region or the
    whole country.

    Raises:
        ValueError: On an unknown scope or a profile without location
    """
    if scope not in GEO_SCOPES:
        raise ValueError(f"Invalid scope: {scope}. Expected one of {', '.join(GEO_SCOPES)}")

    query = select(Profile).where(Profile.is_guest == False)  # noqa: E712
    if scope == "department":
        if not profile.get("department_code"):
            raise ValueError("Add a postal code to your profile to see the department leaderboard")
        query = query.where(Profile.department_code == profile["department_code"])
    elif scope == "region":
        if not profile.get("region_code"):
            raise ValueError("Add a postal code to your profile to see the region leaderboard")
        query = query.where(Profile.region_code == profile["region_code"])

    result = await session.execute(query.order_by(Profile.id))
    profiles = [data_service.profile_to_dict(p) for p in result.scalars().all()]
    matches = await match_service.load_confirmed_matches(session, profile_ids=[p["id"] for p in profiles])
    entries = await _score_population(session, profiles, matches)
    return entries[:limit] if limit else entries


async def get_player_stats(session: AsyncSession, profile_id: int) -> Dict:
    """Stats and points of one player over all their confirmed matches."""
    profile = await data_service.get_profile(session, profile_id)
    if profile is None:
        raise ValueError(f"Profile {profile_id} not found")
    matches = await match_service.load_confirmed_matches(session, profile_ids=[profile_id])
    entries = await _score_population(session, [profile], matches)
    if not entries:
        raise ValueError("Guests have no statistics")
    entry = entries[0]
    entry["has_review"] = bool(await _load_reviewer_ids(session, [profile_id]))
    return entry
