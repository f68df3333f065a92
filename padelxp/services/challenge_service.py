"""
Challenge service: club and global challenges, player progress and rewards.

The objective is free text written by club admins ("Gagner 5 matchs",
"Jouer avec 3 partenaires différents", "Win 2 matches before 10h").
The target is the first integer in the text and keywords select what
is counted.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import Challenge, ChallengeReward, RewardType
from padelxp.services import data_service, match_service
from padelxp.utils.datetime_utils import (
    end_of_day,
    ensure_utc,
    isoformat,
    parse_datetime,
    start_of_day,
    utcnow,
)

logger = logging.getLogger(__name__)


class RewardAlreadyClaimedError(Exception):
    """Raised when a player claims the same challenge reward twice."""


_WIN_RE = re.compile(r"(remporter|gagner|victoire|victoires|remporte|gagne|gagné|remporté|win|wins|won)")
_PARTNER_WORDS = r"(partenaire|partenaires|coéquipier|coéquipiers|joueur|joueurs|partner|partners)"
_DIFFERENT_WORDS = r"(différent|différents|différente|différentes|divers|variés|different|distinct)"
_PARTNERS_RE = re.compile(f"{_PARTNER_WORDS}.*{_DIFFERENT_WORDS}|{_DIFFERENT_WORDS}.*{_PARTNER_WORDS}")
_CONSECUTIVE_RE = re.compile(
    r"(consécutif|consécutifs|consécutivement|consecutive|consecutives|in a row|d'affilée|de suite|enchaîner|enchaîné|enchaînés)"
)
_CLEAN_SHEET_RE = re.compile(
    r"(sans perdre de set|sans concéder de set|2-0|3-0|clean sheet|without losing a set)"
)
_WEEKEND_RE = re.compile(r"(week-end|weekend|samedi|dimanche|saturday|sunday)")
_THREE_SETS_RE = re.compile(r"(3 sets|trois sets|three sets|match long|long match)")
_BEFORE_HOUR_RE = re.compile(r"(?:avant|jusqu'à|jusqu'a|before)\s*(\d{1,2})\s*(?:h\b|heures?|:00)")
_AFTER_HOUR_RE = re.compile(r"(?:après|a partir de|à partir de|after)\s*(\d{1,2})\s*(?:h\b|heures?|:00)")
_INT_RE = re.compile(r"(\d+)")


# ============================================================================
# Objective parsing
# ============================================================================


def extract_target(objective: str) -> int:
    """First integer of the objective, 1 when there is none."""
    match = _INT_RE.search(objective or "")
    if not match:
        return 1
    value = int(match.group(1))
    return value if value > 0 else 1


def is_win_objective(objective: str) -> bool:
    return bool(_WIN_RE.search((objective or "").lower()))


def _extract_hour(pattern: re.Pattern, objective: str) -> Optional[int]:
    match = pattern.search((objective or "").lower())
    if match:
        hour = int(match.group(1))
        if 0 <= hour <= 23:
            return hour
    return None


def classify_objective(objective: str) -> str:
    """
    Kind of metric an objective counts.

    Returns one of: consecutive_wins, distinct_partners, clean_sheet,
    weekend, before_hour, after_hour, three_sets, count.
    """
    lower = (objective or "").lower()
    if _CONSECUTIVE_RE.search(lower) and is_win_objective(lower):
        return "consecutive_wins"
    if _PARTNERS_RE.search(lower):
        return "distinct_partners"
    if _CLEAN_SHEET_RE.search(lower):
        return "clean_sheet"
    if _WEEKEND_RE.search(lower):
        return "weekend"
    if _extract_hour(_BEFORE_HOUR_RE, lower) is not None:
        return "before_hour"
    if _extract_hour(_AFTER_HOUR_RE, lower) is not None:
        return "after_hour"
    if _THREE_SETS_RE.search(lower):
        return "three_sets"
    return "count"


def compute_status(start_date: datetime, end_date: datetime, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    if now < ensure_utc(start_date):
        return "upcoming"
    if now > ensure_utc(end_date):
        return "completed"
    return "active"


def build_match_history(matches: List[Dict], profile_id: int) -> List[Dict]:
    """
    Flatten confirmed matches into the player's point of view.

    Returns:
        [{"match_id", "played_at", "is_winner", "partner_id", "club_id",
          "my_sets", "opponent_sets"}] ordered by played_at
    """
    history = []
    for match in matches:
        me = next((p for p in match["participants"] if p["profile_id"] == profile_id), None)
        if me is None:
            continue
        partner = next(
            (
                p for p in match["participants"]
                if p["team"] == me["team"] and p["profile_id"] != profile_id
            ),
            None,
        )
        my_sets = 0
        opponent_sets = 0
        for set_score in match.get("sets") or []:
            mine = set_score["team1"] if me["team"] == 1 else set_score["team2"]
            theirs = set_score["team2"] if me["team"] == 1 else set_score["team1"]
            if mine > theirs:
                my_sets += 1
            elif theirs > mine:
                opponent_sets += 1
        history.append({
            "match_id": match["id"],
            "played_at": ensure_utc(match["played_at"]),
            "is_winner": match["winner_team"] == me["team"],
            "partner_id": partner["profile_id"] if partner else None,
            "club_id": match.get("club_id"),
            "my_sets": my_sets,
            "opponent_sets": opponent_sets,
        })
    history.sort(key=lambda item: item["played_at"])
    return history


def compute_progress(challenge: Dict, history: List[Dict]) -> Dict:
    """
    Progress of a player on a challenge.

    Only matches played between the start day at 00:00 UTC and the end day
    at 23:59:59 UTC count (and, for club challenges, only matches of that club).

    Returns:
        {"current": int, "target": int} with current capped at target
    """
    objective = challenge["objective"]
    target = max(1, extract_target(objective))
    wins_only = is_win_objective(objective)
    kind = classify_objective(objective)

    start = start_of_day(parse_datetime(challenge["start_date"]))
    end = end_of_day(parse_datetime(challenge["end_date"]))
    club_id = challenge.get("club_id")

    relevant = [
        item for item in history
        if item["played_at"] is not None
        and start <= item["played_at"] <= end
        and (club_id is None or item["club_id"] == club_id)
    ]

    def count(items: List[Dict]) -> int:
        return sum(1 for i in items if i["is_winner"]) if wins_only else len(items)

    if kind == "consecutive_wins":
        current = 0
        best = 0
        for item in relevant:
            current = current + 1 if item["is_winner"] else 0
            best = max(best, current)
        value = best
    elif kind == "distinct_partners":
        partners = {
            item["partner_id"] for item in relevant
            if item["partner_id"] is not None and (not wins_only or item["is_winner"])
        }
        value = len(partners)
    elif kind == "clean_sheet":
        value = sum(1 for i in relevant if i["is_winner"] and i["opponent_sets"] == 0)
    elif kind == "weekend":
        value = count([i for i in relevant if i["played_at"].weekday() >= 5])
    elif kind == "before_hour":
        hour = _extract_hour(_BEFORE_HOUR_RE, objective)
        value = count([i for i in relevant if i["played_at"].hour < hour])
    elif kind == "after_hour":
        hour = _extract_hour(_AFTER_HOUR_RE, objective)
        value = count([i for i in relevant if i["played_at"].hour >= hour])
    elif kind == "three_sets":
        value = count([i for i in relevant if i["my_sets"] + i["opponent_sets"] == 3])
    else:
        value = count(relevant)

    return {"current": min(value, target), "target": target}


def parse_points_reward(reward_label: str) -> int:
    """
    Points granted by a points reward label ("50", "50 points").

    Raises:
        ValueError: If the label holds no positive integer
    """
    match = _INT_RE.search(reward_label or "")
    if not match or int(match.group(1)) <= 0:
        raise ValueError("Points reward must be a positive integer")
    return int(match.group(1))


# ============================================================================
# Persistence
# ============================================================================


def challenge_to_dict(challenge: Challenge) -> Dict:
    return {
        "id": challenge.id,
        "club_id": challenge.club_id,
        "scope": "club" if challenge.club_id else "global",
        "title": challenge.title,
        "objective": challenge.objective,
        "reward_type": challenge.reward_type,
        "reward_label": challenge.reward_label,
        "start_date": isoformat(challenge.start_date),
        "end_date": isoformat(challenge.end_date),
        "created_at": isoformat(challenge.created_at),
        "status": compute_status(challenge.start_date, challenge.end_date),
    }


async def create_challenge(
    session: AsyncSession,
    club_id: Optional[int],
    title: str,
    objective: str,
    reward_type: str,
    reward_label: str,
    start_date,
    end_date,
) -> Dict:
    """
    Create a club challenge, or a global one when club_id is None.

    Raises:
        ValueError: On missing fields, an unknown reward type or an empty period
    """
    if not title or not title.strip():
        raise ValueError("Title is required")
    if not objective or not objective.strip():
        raise ValueError("Objective is required")
    if reward_type not in (RewardType.POINTS.value, RewardType.BADGE.value):
        raise ValueError("reward_type must be 'points' or 'badge'")
    if not reward_label or not str(reward_label).strip():
        raise ValueError("Reward label is required")
    if reward_type == RewardType.POINTS.value:
        parse_points_reward(str(reward_label))

    start = parse_datetime(start_date)
    end = parse_datetime(end_date)
    if start is None or end is None:
        raise ValueError("start_date and end_date are required")
    if end < start:
        raise ValueError("end_date must be after start_date")

    challenge = Challenge(
        club_id=club_id,
        title=title.strip(),
        objective=objective.strip(),
        reward_type=reward_type,
        reward_label=str(reward_label).strip(),
        start_date=start,
        end_date=end,
    )
    session.add(challenge)
    await session.flush()
    await session.refresh(challenge)
    logger.info(f"Created {'club ' + str(club_id) if club_id else 'global'} challenge {challenge.id}")
    return challenge_to_dict(challenge)


async def list_club_challenges(session: AsyncSession, club_id: int) -> List[Dict]:
    result = await session.execute(
        select(Challenge).where(Challenge.club_id == club_id).order_by(Challenge.created_at.desc(), Challenge.id.desc())
    )
    return [challenge_to_dict(c) for c in result.scalars().all()]


async def list_global_challenges(session: AsyncSession) -> List[Dict]:
    result = await session.execute(
        select(Challenge).where(Challenge.club_id.is_(None)).order_by(Challenge.created_at.desc(), Challenge.id.desc())
    )
    return [challenge_to_dict(c) for c in result.scalars().all()]


async def delete_challenge(session: AsyncSession, challenge_id: int, club_id: Optional[int]) -> bool:
    """Delete a challenge of the given club (None for global). Returns False if not found."""
    challenge = await session.get(Challenge, challenge_id)
    if challenge is None or challenge.club_id != club_id:
        return False
    await session.delete(challenge)
    await session.flush()
    return True


async def _visible_challenges(session: AsyncSession, club_id: Optional[int]) -> List[Challenge]:
    condition = Challenge.club_id.is_(None)
    if club_id is not None:
        condition = or_(condition, Challenge.club_id == club_id)
    result = await session.execute(select(Challenge).where(condition))
    return list(result.scalars().all())


async def _claimed_challenge_ids(session: AsyncSession, profile_id: int) -> set:
    result = await session.execute(
        select(ChallengeReward.challenge_id).where(ChallengeReward.profile_id == profile_id)
    )
    return set(result.scalars().all())


async def get_player_challenges(session: AsyncSession, profile: Dict) -> List[Dict]:
    """
    Challenges visible to a player with their progress.

    Challenges that ended more than 24 hours ago are hidden. Newest first.
    """
    challenges = await _visible_challenges(session, profile.get("club_id"))
    if not challenges:
        return []

    matches = await match_service.load_confirmed_matches(session, profile_ids=[profile["id"]])
    history = build_match_history(matches, profile["id"])
    claimed = await _claimed_challenge_ids(session, profile["id"])
    cutoff = utcnow() - timedelta(hours=24)

    visible = [c for c in challenges if ensure_utc(c.end_date) >= cutoff]
    visible.sort(key=lambda c: (ensure_utc(c.created_at) or cutoff, c.id), reverse=True)

    items = []
    for challenge in visible:
        item = challenge_to_dict(challenge)
        item["progress"] = compute_progress(item, history)
        item["reward_claimed"] = challenge.id in claimed
        items.append(item)
    return items


async def claim_reward(session: AsyncSession, profile: Dict, challenge_id: int) -> Optional[Dict]:
    """
    Claim the reward of a completed challenge.

    Returns:
        {"challenge_id", "reward_type", "reward_value", "total_points"} or None
        if the challenge does not exist for this player

    Raises:
        ValueError: If the objective is not reached or the reward is invalid
        RewardAlreadyClaimedError: If the reward was already claimed
    """
    challenge = await session.get(Challenge, challenge_id)
    if challenge is None:
        return None
    if challenge.club_id is not None and challenge.club_id != profile.get("club_id"):
        return None

    if challenge.id in await _claimed_challenge_ids(session, profile["id"]):
        raise RewardAlreadyClaimedError("Reward already claimed")

    matches = await match_service.load_confirmed_matches(session, profile_ids=[profile["id"]])
    history = build_match_history(matches, profile["id"])
    progress = compute_progress(challenge_to_dict(challenge), history)
    if progress["current"] < progress["target"]:
        raise ValueError(
            f"Challenge not completed ({progress['current']}/{progress['target']})"
        )

    if challenge.reward_type == RewardType.POINTS.value:
        reward_value = str(parse_points_reward(challenge.reward_label))
    else:
        reward_value = challenge.reward_label

    session.add(ChallengeReward(
        challenge_id=challenge.id,
        profile_id=profile["id"],
        reward_type=challenge.reward_type,
        reward_value=reward_value,
    ))
    try:
        await session.flush()
    except IntegrityError:
        raise RewardAlreadyClaimedError("Reward already claimed")

    total_points = profile.get("points") or 0
    if challenge.reward_type == RewardType.POINTS.value:
        total_points = await data_service.add_profile_points(session, profile["id"], int(reward_value))

    logger.info(
        f"Profile {profile['id']} claimed {challenge.reward_type} reward of challenge {challenge.id}"
    )
    return {
        "challenge_id": challenge.id,
        "reward_type": challenge.reward_type,
        "reward_value": reward_value,
        "total_points": total_points,
    }
