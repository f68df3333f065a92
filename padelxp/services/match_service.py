"""
Match service: submission, confirmation and confirmed-match loading.

A match counts toward points and levels only once enough participants
have confirmed it with their personal confirmation token.
"""

import hashlib
import logging
import secrets
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import Match, MatchParticipant, MatchStatus, Profile, User
from padelxp.services import data_service, level_service
from padelxp.utils.constants import MATCH_CONFIRMATIONS_REQUIRED
from padelxp.utils.datetime_utils import utcnow, ensure_utc, isoformat

logger = logging.getLogger(__name__)


class MatchPermissionError(Exception):
    """Raised when a user acts on a match or token that is not theirs."""


# ============================================================================
# Pure helpers
# ============================================================================


def compute_team_id(profile_ids: Sequence[int]) -> str:
    """Deterministic team identifier: sha256 of the sorted profile ids."""
    key = "-".join(str(pid) for pid in sorted(profile_ids))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def count_sets(sets: List[Dict], tie_break: Optional[Dict] = None) -> Tuple[int, int]:
    """
    Sets won by each team. A deciding tie-break counts as a set.

    Raises:
        ValueError: If a set has invalid or equal scores
    """
    team1_sets = 0
    team2_sets = 0
    scored = list(sets) + ([tie_break] if tie_break else [])
    for index, set_score in enumerate(scored, start=1):
        try:
            team1 = int(set_score["team1"])
            team2 = int(set_score["team2"])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Set {index} must have integer scores for team1 and team2")
        if team1 < 0 or team2 < 0:
            raise ValueError(f"Set {index} has a negative score")
        if team1 == team2:
            raise ValueError(f"Set {index} cannot end in a draw")
        if team1 > team2:
            team1_sets += 1
        else:
            team2_sets += 1
    return team1_sets, team2_sets


def required_confirmations(user_participant_count: int) -> int:
    """Confirmations needed: two, or every user when fewer than two play."""
    return max(1, min(MATCH_CONFIRMATIONS_REQUIRED, user_participant_count))


def validate_teams(players: List[Dict]) -> None:
    """
    Check player count and team balance (1v1 or 2v2).

    Raises:
        ValueError: On an invalid lineup
    """
    if len(players) not in (2, 4):
        raise ValueError("A match needs 2 or 4 players")
    team_sizes = {1: 0, 2: 0}
    for player in players:
        team = player.get("team")
        if team not in (1, 2):
            raise ValueError("Each player must be on team 1 or team 2")
        team_sizes[team] += 1
    if team_sizes[1] != team_sizes[2]:
        raise ValueError("Both teams must have the same number of players")

    profile_ids = [p["profile_id"] for p in players if p.get("profile_id") is not None]
    if len(profile_ids) != len(set(profile_ids)):
        raise ValueError("The same player cannot appear twice in a match")


# ============================================================================
# Submission
# ============================================================================


async def submit_match(
    session: AsyncSession,
    submitter_profile: Dict,
    players: List[Dict],
    sets: List[Dict],
    tie_break: Optional[Dict] = None,
    played_at: Optional[datetime] = None,
) -> Dict:
    """
    Record a match submitted by one of its players.

    Args:
        session: Database session
        submitter_profile: Profile dict of the submitting player
        players: [{"profile_id": int, "team": 1|2}] or guests as
                 [{"guest_first_name": str, "guest_last_name": str, "team": 1|2}]
        sets: [{"team1": int, "team2": int}, ...] (at least 2)
        tie_break: Optional deciding super tie-break score
        played_at: When the match was played (defaults to now)

    Returns:
        Dict of the created match, including participant confirmation tokens

    Raises:
        ValueError: On invalid players or scores
    """
    validate_teams(players)

    club_id = submitter_profile.get("club_id")
    if club_id is None:
        raise ValueError("Join a club before recording matches")

    if len(sets) < 2:
        raise ValueError("A match needs at least 2 sets")
    team1_sets, team2_sets = count_sets(sets, tie_break)
    if team1_sets == team2_sets:
        raise ValueError("The score does not designate a winner")

    user_ids = [p["profile_id"] for p in players if p.get("profile_id") is not None]
    if submitter_profile["id"] not in user_ids:
        raise ValueError("You must be one of the players of the match")

    profiles = await data_service.get_profiles_by_ids(session, user_ids)
    missing = [pid for pid in user_ids if pid not in profiles]
    if missing:
        raise ValueError(f"Unknown players: {missing}")
    for profile in profiles.values():
        if profile["is_guest"]:
            continue
        if profile["club_id"] != club_id:
            raise ValueError("All players must belong to the same club")

    # Create guest profiles on the fly
    lineup = []
    for player in players:
        if player.get("profile_id") is not None:
            lineup.append({
                "profile_id": player["profile_id"],
                "team": player["team"],
                "is_guest": profiles[player["profile_id"]]["is_guest"],
            })
            continue
        first_name = (player.get("guest_first_name") or "").strip()
        if not first_name:
            raise ValueError("Guests need at least a first name")
        guest = await data_service.create_profile(
            session,
            user_id=None,
            first_name=first_name,
            last_name=player.get("guest_last_name"),
            is_guest=True,
        )
        lineup.append({"profile_id": guest["id"], "team": player["team"], "is_guest": True})

    team1_ids = [p["profile_id"] for p in lineup if p["team"] == 1]
    team2_ids = [p["profile_id"] for p in lineup if p["team"] == 2]
    team1_id = compute_team_id(team1_ids)
    team2_id = compute_team_id(team2_ids)

    match = Match(
        club_id=club_id,
        team1_id=team1_id,
        team2_id=team2_id,
        winner_team_id=team1_id if team1_sets > team2_sets else team2_id,
        score_team1=team1_sets,
        score_team2=team2_sets,
        sets=[{"team1": int(s["team1"]), "team2": int(s["team2"])} for s in sets],
        tie_break=tie_break,
        decided_by_tiebreak=tie_break is not None,
        status=MatchStatus.PENDING.value,
        played_at=ensure_utc(played_at) or utcnow(),
        created_by=submitter_profile["id"],
    )
    session.add(match)
    await session.flush()

    now = utcnow()
    participants = []
    for slot in lineup:
        is_submitter = slot["profile_id"] == submitter_profile["id"]
        participant = MatchParticipant(
            match_id=match.id,
            profile_id=slot["profile_id"],
            team=slot["team"],
            is_guest=slot["is_guest"],
            confirmed=is_submitter,
            confirmed_at=now if is_submitter else None,
            confirmation_token=None if slot["is_guest"] else secrets.token_urlsafe(24),
        )
        session.add(participant)
        participants.append(participant)
    await session.flush()

    result = await _maybe_confirm(session, match, participants)
    logger.info(
        f"Match {match.id} submitted by profile {submitter_profile['id']} "
        f"({team1_sets}-{team2_sets}), status={result['status']}"
    )
    return {
        "id": match.id,
        "status": match.status,
        "score_team1": team1_sets,
        "score_team2": team2_sets,
        "winner_team": 1 if team1_sets > team2_sets else 2,
        "decided_by_tiebreak": match.decided_by_tiebreak,
        "participants": [
            {
                "profile_id": p.profile_id,
                "team": p.team,
                "is_guest": p.is_guest,
                "confirmed": p.confirmed,
                "confirmation_token": p.confirmation_token,
            }
            for p in participants
        ],
    }


# ============================================================================
# Confirmation
# ============================================================================


async def _load_participants(session: AsyncSession, match_id: int) -> List[MatchParticipant]:
    result = await session.execute(
        select(MatchParticipant).where(MatchParticipant.match_id == match_id).order_by(MatchParticipant.id)
    )
    return list(result.scalars().all())


async def _maybe_confirm(
    session: AsyncSession, match: Match, participants: List[MatchParticipant]
) -> Dict:
    """Promote a pending match to confirmed once enough users confirmed it."""
    user_participants = [p for p in participants if not p.is_guest]
    confirmations = sum(1 for p in user_participants if p.confirmed)
    needed = required_confirmations(len(user_participants))

    if match.status == MatchStatus.PENDING.value and confirmations >= needed:
        match.status = MatchStatus.CONFIRMED.value
        match.confirmed_at = utcnow()
        await apply_level_updates(session, match, participants)
        await session.flush()
        logger.info(f"Match {match.id} confirmed ({confirmations} confirmations)")

    return {"status": match.status, "confirmations": confirmations, "required": needed}


async def apply_level_updates(
    session: AsyncSession, match: Match, participants: List[MatchParticipant]
) -> Dict[int, Dict]:
    """Update the level of every user participant of a confirmed match."""
    profile_ids = [p.profile_id for p in participants]
    result = await session.execute(select(Profile).where(Profile.id.in_(profile_ids)))
    profiles = {p.id: p for p in result.scalars().all()}

    def team_rows(team_number: int) -> List[Dict]:
        return [
            {
                "profile_id": p.profile_id,
                "level": profiles[p.profile_id].level,
                "level_matches": profiles[p.profile_id].level_matches or 0,
            }
            for p in participants
            if p.team == team_number and p.profile_id in profiles
        ]

    winner_team = 1 if match.winner_team_id == match.team1_id else 2
    updates = level_service.compute_match_level_updates(team_rows(1), team_rows(2), winner_team)

    for participant in participants:
        if participant.is_guest:
            continue
        profile = profiles.get(participant.profile_id)
        update = updates.get(participant.profile_id)
        if profile is None or update is None:
            continue
        profile.level = update["new_level"]
        profile.level_matches = (profile.level_matches or 0) + 1
    return updates


async def confirm_match(session: AsyncSession, token: str, profile_id: int) -> Optional[Dict]:
    """
    Confirm a match with a participant's token.

    Returns:
        {"match_id", "status", "already_confirmed", "confirmations", "required"}
        or None if the token is unknown

    Raises:
        MatchPermissionError: If the token belongs to another player
        ValueError: If the match is no longer pending
    """
    result = await session.execute(
        select(MatchParticipant).where(MatchParticipant.confirmation_token == token)
    )
    participant = result.scalar_one_or_none()
    if participant is None:
        return None
    if participant.profile_id != profile_id:
        raise MatchPermissionError("This confirmation link belongs to another player")

    match = await session.get(Match, participant.match_id)
    if match.status in (MatchStatus.REJECTED.value, MatchStatus.CANCELLED.value):
        raise ValueError(f"Match is {match.status}")

    already_confirmed = participant.confirmed
    if not already_confirmed:
        participant.confirmed = True
        participant.confirmed_at = utcnow()
        await session.flush()

    participants = await _load_participants(session, match.id)
    state = await _maybe_confirm(session, match, participants)
    return {"match_id": match.id, "already_confirmed": already_confirmed, **state}


async def reject_match(session: AsyncSession, token: str, profile_id: int) -> Optional[Dict]:
    """
    Reject a pending match with a participant's token.

    Returns:
        {"match_id", "status"} or None if the token is unknown
    """
    result = await session.execute(
        select(MatchParticipant).where(MatchParticipant.confirmation_token == token)
    )
    participant = result.scalar_one_or_none()
    if participant is None:
        return None
    if participant.profile_id != profile_id:
        raise MatchPermissionError("This confirmation link belongs to another player")

    match = await session.get(Match, participant.match_id)
    if match.status != MatchStatus.PENDING.value:
        raise ValueError("Only pending matches can be rejected")
    match.status = MatchStatus.REJECTED.value
    await session.flush()
    logger.info(f"Match {match.id} rejected by profile {profile_id}")
    return {"match_id": match.id, "status": match.status}


async def cancel_match(session: AsyncSession, match_id: int, profile_id: int) -> Optional[Dict]:
    """Cancel a pending match (creator only). Returns None if the match is unknown."""
    match = await session.get(Match, match_id)
    if match is None:
        return None
    if match.created_by != profile_id:
        raise MatchPermissionError("Only the player who recorded the match can cancel it")
    if match.status != MatchStatus.PENDING.value:
        raise ValueError("Only pending matches can be cancelled")
    match.status = MatchStatus.CANCELLED.value
    await session.flush()
    return {"match_id": match.id, "status": match.status}


async def get_pending_matches(session: AsyncSession, profile_id: int) -> List[Dict]:
    """Pending matches that still wait for this player's confirmation."""
    result = await session.execute(
        select(Match, MatchParticipant)
        .join(MatchParticipant, MatchParticipant.match_id == Match.id)
        .where(
            MatchParticipant.profile_id == profile_id,
            MatchParticipant.confirmed == False,  # noqa: E712
            Match.status == MatchStatus.PENDING.value,
        )
        .order_by(Match.played_at.desc())
    )
    pending = []
    for match, participant in result.all():
        pending.append({
            "match_id": match.id,
            "played_at": isoformat(match.played_at),
            "sets": match.sets,
            "score_team1": match.score_team1,
            "score_team2": match.score_team2,
            "team": participant.team,
            "confirmation_token": participant.confirmation_token,
        })
    return pending


async def get_participant_emails(session: AsyncSession, match_id: int) -> List[Dict]:
    """User participants of a match with their email and token, for notifications."""
    result = await session.execute(
        select(MatchParticipant, Profile, User)
        .join(Profile, Profile.id == MatchParticipant.profile_id)
        .join(User, User.id == Profile.user_id)
        .where(MatchParticipant.match_id == match_id)
    )
    return [
        {
            "profile_id": participant.profile_id,
            "email": user.email,
            "name": profile.display_name or profile.first_name or user.email,
            "confirmed": participant.confirmed,
            "confirmation_token": participant.confirmation_token,
        }
        for participant, profile, user in result.all()
    ]


# ============================================================================
# Confirmed matches for scoring
# ============================================================================


async def load_confirmed_matches(
    session: AsyncSession,
    profile_ids: Optional[Sequence[int]] = None,
    club_id: Optional[int] = None,
) -> List[Dict]:
    """
    Load confirmed matches with their participants.

    Args:
        profile_ids: Only matches involving at least one of these profiles
        club_id: Only matches recorded in this club

    Returns:
        [{"id", "club_id", "played_at", "team1_id", "team2_id", "winner_team",
          "sets", "tie_break", "participants": [{"profile_id", "team", "is_guest"}]}]
    """
    query = select(Match).where(Match.status == MatchStatus.CONFIRMED.value)
    if club_id is not None:
        query = query.where(Match.club_id == club_id)
    if profile_ids is not None:
        if not profile_ids:
            return []
        query = query.where(
            Match.id.in_(
                select(MatchParticipant.match_id).where(MatchParticipant.profile_id.in_(list(profile_ids)))
            )
        )
    result = await session.execute(query.order_by(Match.played_at, Match.id))
    matches = list(result.scalars().all())
    if not matches:
        return []

    participants_result = await session.execute(
        select(MatchParticipant).where(MatchParticipant.match_id.in_([m.id for m in matches]))
    )
    by_match: Dict[int, List[Dict]] = {}
    for participant in participants_result.scalars().all():
        by_match.setdefault(participant.match_id, []).append({
            "profile_id": participant.profile_id,
            "team": participant.team,
            "is_guest": participant.is_guest,
        })

    return [
        {
            "id": m.id,
            "club_id": m.club_id,
            "played_at": ensure_utc(m.played_at),
            "team1_id": m.team1_id,
            "team2_id": m.team2_id,
            "winner_team": 1 if m.winner_team_id == m.team1_id else 2,
            "sets": m.sets or [],
            "tie_break": m.tie_break,
            "participants": by_match.get(m.id, []),
        }
        for m in matches
    ]


async def count_confirmed_club_matches(session: AsyncSession, club_id: int) -> int:
    result = await session.execute(
        select(func.count(Match.id)).where(
            Match.club_id == club_id, Match.status == MatchStatus.CONFIRMED.value
        )
    )
    return result.scalar() or 0
