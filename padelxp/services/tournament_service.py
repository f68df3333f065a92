"""
Tournament service: creation, registrations, draws, scores and rankings.

Bracket logic lives in bracket_service; this module loads and saves rows.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import (
    Tournament,
    TournamentMatch,
    TournamentMatchStatus,
    TournamentRegistration,
    TournamentRegistrationStatus,
    TournamentStatus,
    TournamentType,
)
from padelxp.services import bracket_service, data_service, leaderboard_service
from padelxp.utils.datetime_utils import isoformat, parse_datetime

logger = logging.getLogger(__name__)

TOURNAMENT_TYPES = [t.value for t in TournamentType]
TOURNAMENT_STATUSES = [s.value for s in TournamentStatus]
REGISTRATION_STATUSES = [s.value for s in TournamentRegistrationStatus]
# Registrations that hold a place in the tournament
ACTIVE_REGISTRATION_STATUSES = (
    TournamentRegistrationStatus.PENDING.value,
    TournamentRegistrationStatus.CONFIRMED.value,
)
STARTED_STATUSES = (TournamentStatus.IN_PROGRESS.value, TournamentStatus.COMPLETED.value)
UPDATABLE_FIELDS = ("name", "status", "start_date", "match_duration_minutes", "available_courts", "pool_size", "max_teams")


# ============================================================================
# Serialization
# ============================================================================


def tournament_to_dict(tournament: Tournament) -> Dict:
    return {
        "id": tournament.id,
        "club_id": tournament.club_id,
        "name": tournament.name,
        "tournament_type": tournament.tournament_type,
        "status": tournament.status,
        "start_date": isoformat(tournament.start_date),
        "match_duration_minutes": tournament.match_duration_minutes,
        "available_courts": tournament.available_courts or [],
        "pool_size": tournament.pool_size,
        "max_teams": tournament.max_teams,
        "created_at": isoformat(tournament.created_at),
    }


def registration_to_dict(registration: TournamentRegistration) -> Dict:
    return {
        "id": registration.id,
        "tournament_id": registration.tournament_id,
        "player1_id": registration.player1_id,
        "player2_id": registration.player2_id,
        "pair_weight": registration.pair_weight,
        "seed_number": registration.seed_number,
        "status": registration.status,
        "final_ranking": registration.final_ranking,
    }


def match_to_dict(match: TournamentMatch) -> Dict:
    return {
        "id": match.id,
        "tournament_id": match.tournament_id,
        "round_type": match.round_type,
        "round_number": match.round_number,
        "match_order": match.match_order,
        "tableau": match.tableau,
        "pool_number": match.pool_number,
        "team1_registration_id": match.team1_registration_id,
        "team2_registration_id": match.team2_registration_id,
        "winner_registration_id": match.winner_registration_id,
        "score": match.score,
        "is_bye": match.is_bye,
        "status": match.status,
        "court_number": match.court_number,
        "scheduled_time": isoformat(match.scheduled_time),
    }


# ============================================================================
# Loading helpers
# ============================================================================


async def _get_tournament_row(session: AsyncSession, tournament_id: int) -> Optional[Tournament]:
    return await session.get(Tournament, tournament_id)


async def _load_registrations(session: AsyncSession, tournament_id: int) -> List[TournamentRegistration]:
    result = await session.execute(
        select(TournamentRegistration)
        .where(TournamentRegistration.tournament_id == tournament_id)
        .order_by(TournamentRegistration.id)
    )
    return list(result.scalars().all())


async def _load_matches(session: AsyncSession, tournament_id: int) -> List[TournamentMatch]:
    result = await session.execute(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id)
        .order_by(TournamentMatch.round_number, TournamentMatch.match_order, TournamentMatch.id)
    )
    return list(result.scalars().all())


async def _save_matches(session: AsyncSession, tournament_id: int, matches: List[Dict]) -> List[Dict]:
    rows = [TournamentMatch(tournament_id=tournament_id, **m) for m in matches]
    session.add_all(rows)
    await session.flush()
    return [match_to_dict(row) for row in rows]


# ============================================================================
# Tournaments
# ============================================================================


def _validate_courts(courts) -> List[int]:
    if courts is None:
        return [1]
    if not isinstance(courts, list) or not courts or not all(isinstance(c, int) and c > 0 for c in courts):
        raise ValueError("available_courts must be a non-empty list of court numbers")
    return courts


async def create_tournament(
    session: AsyncSession,
    club_id: int,
    name: str,
    tournament_type: str,
    start_date=None,
    match_duration_minutes: int = 60,
    available_courts: Optional[List[int]] = None,
    pool_size: int = 4,
    max_teams: Optional[int] = None,
) -> Dict:
    """
    Create a tournament in draft status.

    Raises:
        ValueError: On a missing name, an unknown type or invalid settings
    """
    if not name or not name.strip():
        raise ValueError("Name is required")
    if tournament_type not in TOURNAMENT_TYPES:
        raise ValueError(f"Invalid tournament type: {tournament_type}")
    if match_duration_minutes <= 0:
        raise ValueError("match_duration_minutes must be positive")
    if pool_size < 2:
        raise ValueError("pool_size must be at least 2")
    if max_teams is not None and max_teams < 2:
        raise ValueError("max_teams must be at least 2")

    tournament = Tournament(
        club_id=club_id,
        name=name.strip(),
        tournament_type=tournament_type,
        status=TournamentStatus.DRAFT.value,
        start_date=parse_datetime(start_date),
        match_duration_minutes=match_duration_minutes,
        available_courts=_validate_courts(available_courts),
        pool_size=pool_size,
        max_teams=max_teams,
    )
    session.add(tournament)
    await session.flush()
    await session.refresh(tournament)
    logger.info(f"Created {tournament_type} tournament {tournament.id} for club {club_id}")
    return tournament_to_dict(tournament)


async def list_tournaments(session: AsyncSession, club_id: Optional[int] = None) -> List[Dict]:
    query = select(Tournament).order_by(Tournament.start_date.desc(), Tournament.id.desc())
    if club_id is not None:
        query = query.where(Tournament.club_id == club_id)
    result = await session.execute(query)
    return [tournament_to_dict(t) for t in result.scalars().all()]


async def get_tournament(session: AsyncSession, tournament_id: int) -> Optional[Dict]:
    tournament = await _get_tournament_row(session, tournament_id)
    return tournament_to_dict(tournament) if tournament else None


async def update_tournament(session: AsyncSession, tournament_id: int, updates: Dict) -> Optional[Dict]:
    """
    Update tournament fields (status, schedule settings, name).

    Returns:
        The updated tournament, or None if not found

    Raises:
        ValueError: On an unknown status or invalid value
    """
    tournament = await _get_tournament_row(session, tournament_id)
    if tournament is None:
        return None

    for field, value in updates.items():
        if field not in UPDATABLE_FIELDS or value is None:
            continue
        if field == "status" and value not in TOURNAMENT_STATUSES:
            raise ValueError(f"Invalid status: {value}")
        if field == "start_date":
            value = parse_datetime(value)
        if field == "available_courts":
            value = _validate_courts(value)
        if field in ("match_duration_minutes", "pool_size") and value <= 0:
            raise ValueError(f"{field} must be positive")
        setattr(tournament, field, value)

    await session.flush()
    await session.refresh(tournament)
    return tournament_to_dict(tournament)


# ============================================================================
# Registrations
# ============================================================================


async def calculate_pair_weight(session: AsyncSession, player1_id: int, player2_id: int) -> int:
    """Sum of both players' leaderboard points."""
    weight = 0
    for player_id in (player1_id, player2_id):
        stats = await leaderboard_service.get_player_stats(session, player_id)
        weight += stats["points"]
    return weight


async def register_pair(
    session: AsyncSession, tournament_id: int, player1_id: int, player2_id: int
) -> Optional[Dict]:
    """
    Register a pair of players.

    Returns:
        The registration, or None if the tournament does not exist

    Raises:
        ValueError: If registrations are closed or the draw exists, the
                    players are the same, unknown or guests, a player is
                    already registered, or the tournament is full
    """
    tournament = await _get_tournament_row(session, tournament_id)
    if tournament is None:
        return None
    if tournament.status != TournamentStatus.REGISTRATION_OPEN.value:
        raise ValueError("Registrations are not open for this tournament")
    if await _load_matches(session, tournament_id):
        raise ValueError("The draw is already generated")
    if player1_id == player2_id:
        raise ValueError("A pair needs two different players")

    profiles = await data_service.get_profiles_by_ids(session, [player1_id, player2_id])
    for player_id in (player1_id, player2_id):
        profile = profiles.get(player_id)
        if profile is None:
            raise ValueError(f"Player {player_id} not found")
        if profile["is_guest"]:
            raise ValueError("Guest players cannot register for tournaments")

    result = await session.execute(
        select(TournamentRegistration).where(
            TournamentRegistration.tournament_id == tournament_id,
            TournamentRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
            or_(
                TournamentRegistration.player1_id.in_([player1_id, player2_id]),
                TournamentRegistration.player2_id.in_([player1_id, player2_id]),
            ),
        )
    )
    if result.scalars().first() is not None:
        raise ValueError("A player of this pair is already registered")

    registrations = [
        r for r in await _load_registrations(session, tournament_id) if r.status in ACTIVE_REGISTRATION_STATUSES
    ]
    if tournament.max_teams and len(registrations) >= tournament.max_teams:
        raise ValueError("The tournament is full")

    registration = TournamentRegistration(
        tournament_id=tournament_id,
        player1_id=player1_id,
        player2_id=player2_id,
        pair_weight=await calculate_pair_weight(session, player1_id, player2_id),
        status=TournamentRegistrationStatus.CONFIRMED.value,
    )
    session.add(registration)
    await session.flush()
    logger.info(
        f"Registered pair {player1_id}/{player2_id} in tournament {tournament_id} "
        f"(weight {registration.pair_weight})"
    )
    return registration_to_dict(registration)


async def list_registrations(session: AsyncSession, tournament_id: int) -> List[Dict]:
    registrations = await _load_registrations(session, tournament_id)
    return [registration_to_dict(r) for r in registrations]


async def _get_registration_row(
    session: AsyncSession, tournament_id: int, registration_id: int
) -> Optional[TournamentRegistration]:
    registration = await session.get(TournamentRegistration, registration_id)
    if registration is None or registration.tournament_id != tournament_id:
        return None
    return registration


async def get_registration(session: AsyncSession, tournament_id: int, registration_id: int) -> Optional[Dict]:
    registration = await _get_registration_row(session, tournament_id, registration_id)
    return registration_to_dict(registration) if registration else None


async def _ensure_registrations_editable(session: AsyncSession, tournament: Tournament) -> None:
    if tournament.status in STARTED_STATUSES:
        raise ValueError("The tournament has already started")
    if await _load_matches(session, tournament.id):
        raise ValueError("The draw is already generated")


async def cancel_registration(session: AsyncSession, tournament_id: int, registration_id: int) -> Optional[Dict]:
    """
    Delete a registration before the tournament starts.

    Returns:
        {"success": True}, or None if the registration does not exist

    Raises:
        ValueError: Once the tournament has started or the draw exists
    """
    registration = await _get_registration_row(session, tournament_id, registration_id)
    if registration is None:
        return None
    await _ensure_registrations_editable(session, await _get_tournament_row(session, tournament_id))

    await session.delete(registration)
    await session.flush()
    logger.info(f"Cancelled registration {registration_id} of tournament {tournament_id}")
    return {"success": True}


async def update_registration_status(
    session: AsyncSession, tournament_id: int, registration_id: int, status: str
) -> Optional[Dict]:
    """
    Change the status of a registration (pending, confirmed, waiting_list,
    rejected, withdrawn). Only confirmed pairs enter the draw.

    Raises:
        ValueError: On an unknown status, once the tournament has started or
                    the draw exists
    """
    if status not in REGISTRATION_STATUSES:
        raise ValueError(f"Invalid registration status: {status}")
    registration = await _get_registration_row(session, tournament_id, registration_id)
    if registration is None:
        return None
    tournament = await _get_tournament_row(session, tournament_id)
    await _ensure_registrations_editable(session, tournament)

    previous = registration.status
    if status in ACTIVE_REGISTRATION_STATUSES and previous not in ACTIVE_REGISTRATION_STATUSES:
        active = [
            r for r in await _load_registrations(session, tournament_id) if r.status in ACTIVE_REGISTRATION_STATUSES
        ]
        if tournament.max_teams and len(active) >= tournament.max_teams:
            raise ValueError("The tournament is full")
    registration.status = status
    await session.flush()
    logger.info(f"Registration {registration_id} of tournament {tournament_id}: {previous} -> {status}")
    return registration_to_dict(registration)


# ============================================================================
# Draw and schedule
# ============================================================================


async def generate_draw(session: AsyncSession, tournament_id: int) -> Optional[Dict]:
    """
    Rank the pairs, assign seeds and create the first matches.

    Returns:
        {"matches_created", "seeds", "total_pairs"}, or None if not found

    Raises:
        ValueError: If the draw exists, there are too few pairs, or the
                    pair count does not fit the format
    """
    tournament = await _get_tournament_row(session, tournament_id)
    if tournament is None:
        return None
    if await _load_matches(session, tournament_id):
        raise ValueError("Draw already generated")

    registrations = [
        r for r in await _load_registrations(session, tournament_id) if r.status == "confirmed"
    ]
    if not registrations:
        raise ValueError("No confirmed registrations found")

    ranked = bracket_service.rank_registrations(
        [{"id": r.id, "pair_weight": r.pair_weight} for r in registrations]
    )
    seeds = bracket_service.assign_seeds(ranked)
    for registration in registrations:
        registration.seed_number = seeds[registration.id]

    if tournament.tournament_type == TournamentType.OFFICIAL_KNOCKOUT.value:
        matches = bracket_service.generate_knockout_round1(ranked)
    elif tournament.tournament_type == TournamentType.TMC.value:
        matches = bracket_service.generate_tmc_round1(ranked)
    else:
        pools = bracket_service.distribute_pools(ranked, tournament.pool_size)
        matches = bracket_service.generate_pool_matches(pools)

    await _save_matches(session, tournament_id, matches)
    tournament.status = TournamentStatus.DRAWS_PUBLISHED.value
    await session.flush()

    num_seeds = sum(1 for seed in seeds.values() if seed is not None)
    logger.info(
        f"Generated draw of tournament {tournament_id}: {len(matches)} matches, "
        f"{num_seeds} seeds, {len(ranked)} pairs"
    )
    return {"matches_created": len(matches), "seeds": num_seeds, "total_pairs": len(ranked)}


async def schedule_tournament(session: AsyncSession, tournament_id: int) -> Optional[Dict]:
    """
    Assign courts and start times to the unscheduled matches.

    Raises:
        ValueError: Without a start date or courts
    """
    tournament = await _get_tournament_row(session, tournament_id)
    if tournament is None:
        return None
    if tournament.start_date is None:
        raise ValueError("Set the tournament start date before scheduling")

    rows = await _load_matches(session, tournament_id)
    if not rows:
        raise ValueError("Generate the draw before scheduling")
    by_id = {row.id: row for row in rows}
    assignments = bracket_service.schedule_matches(
        [match_to_dict(row) for row in rows],
        tournament.available_courts or [1],
        tournament.start_date,
        tournament.match_duration_minutes,
    )
    for assignment in assignments:
        row = by_id[assignment["id"]]
        row.court_number = assignment["court_number"]
        row.scheduled_time = assignment["scheduled_time"]
    await session.flush()
    return {"scheduled": len(assignments)}


async def list_matches(session: AsyncSession, tournament_id: int) -> List[Dict]:
    return [match_to_dict(row) for row in await _load_matches(session, tournament_id)]


# ============================================================================
# Scores
# ============================================================================


async def update_match_score(
    session: AsyncSession,
    tournament_id: int,
    match_id: int,
    sets: List[Dict],
    super_tiebreak: Optional[Dict] = None,
) -> Optional[Dict]:
    """
    Record the score of a match and its winner.

    Returns:
        The updated match, or None if the match is not in this tournament

    Raises:
        ValueError: On a bye, a missing team or a tied score, once the
                    tournament is completed or a later round exists
    """
    match = await session.get(TournamentMatch, match_id)
    if match is None or match.tournament_id != tournament_id:
        return None
    if match.is_bye:
        raise ValueError("A bye has no score")

    tournament = await _get_tournament_row(session, tournament_id)
    if tournament.status == TournamentStatus.COMPLETED.value:
        raise ValueError("The tournament is completed")
    matches = await _load_matches(session, tournament_id)
    if any(m.round_number > match.round_number for m in matches):
        raise ValueError(f"Round {match.round_number + 1} is already generated")

    winner_id = bracket_service.determine_winner(
        sets, super_tiebreak, match.team1_registration_id, match.team2_registration_id
    )
    match.score = {
        "sets": sets,
        "super_tiebreak": super_tiebreak,
        "formatted": bracket_service.format_score(sets, super_tiebreak),
    }
    match.winner_registration_id = winner_id
    match.status = TournamentMatchStatus.COMPLETED.value

    if tournament.status == TournamentStatus.DRAWS_PUBLISHED.value:
        tournament.status = TournamentStatus.IN_PROGRESS.value
    await session.flush()
    return match_to_dict(match)


# ============================================================================
# Progression
# ============================================================================


async def _require_type(session: AsyncSession, tournament_id: int, *types: str) -> Optional[Tournament]:
    tournament = await _get_tournament_row(session, tournament_id)
    if tournament is None:
        return None
    if tournament.tournament_type not in types:
        raise ValueError(f"Not available for a {tournament.tournament_type} tournament")
    return tournament


async def advance_final_next_round(session: AsyncSession, tournament_id: int) -> Optional[Dict]:
    """Create the next knockout round from the winners of the latest one."""
    tournament = await _require_type(
        session, tournament_id, TournamentType.OFFICIAL_KNOCKOUT.value, TournamentType.OFFICIAL_POOLS.value
    )
    if tournament is None:
        return None
    matches = [match_to_dict(row) for row in await _load_matches(session, tournament_id)]
    created = await _save_matches(session, tournament_id, bracket_service.generate_next_knockout_round(matches))
    logger.info(f"Tournament {tournament_id}: created {created[0]['round_type']} ({len(created)} matches)")
    return {"success": True, "matches": created}


async def advance_tmc_next_round(session: AsyncSession, tournament_id: int) -> Optional[Dict]:
    """Create the next TMC round in every tableau."""
    tournament = await _require_type(session, tournament_id, TournamentType.TMC.value)
    if tournament is None:
        return None
    matches = [match_to_dict(row) for row in await _load_matches(session, tournament_id)]
    num_teams = bracket_service.tmc_team_count(matches)
    created = await _save_matches(
        session, tournament_id, bracket_service.generate_next_tmc_round(matches, num_teams)
    )
    logger.info(f"Tournament {tournament_id}: TMC round {created[0]['round_number']} created")
    return {"success": True, "matches": created}


async def advance_pools_final(session: AsyncSession, tournament_id: int) -> Optional[Dict]:
    """Create the knockout bracket from the pool standings."""
    tournament = await _require_type(session, tournament_id, TournamentType.OFFICIAL_POOLS.value)
    if tournament is None:
        return None
    registrations = await _load_registrations(session, tournament_id)
    pair_weights = {r.id: r.pair_weight for r in registrations}
    matches = [match_to_dict(row) for row in await _load_matches(session, tournament_id)]
    created = await _save_matches(
        session, tournament_id, bracket_service.generate_pools_final(matches, pair_weights)
    )
    return {"success": True, "matches": created}


# ============================================================================
# Final rankings
# ============================================================================


async def calculate_final_ranking(session: AsyncSession, tournament_id: int) -> Optional[Dict]:
    """
    Store the final place of every registration and complete the tournament.

    Raises:
        ValueError: If the last round is not finished
    """
    tournament = await _get_tournament_row(session, tournament_id)
    if tournament is None:
        return None
    registrations = await _load_registrations(session, tournament_id)
    matches = [match_to_dict(row) for row in await _load_matches(session, tournament_id)]

    if tournament.tournament_type == TournamentType.TMC.value:
        rankings = bracket_service.calculate_tmc_rankings(matches, bracket_service.tmc_team_count(matches))
    else:
        rankings = bracket_service.calculate_knockout_rankings(matches)

    for registration in registrations:
        registration.final_ranking = rankings.get(registration.id)
    tournament.status = TournamentStatus.COMPLETED.value
    await session.flush()
    logger.info(f"Tournament {tournament_id} completed, {len(rankings)} pairs ranked")
    return {"success": True, "rankings": await get_final_rankings(session, tournament_id)}


async def get_final_rankings(session: AsyncSession, tournament_id: int) -> List[Dict]:
    """Ranked registrations with player names, best place first."""
    registrations = [r for r in await _load_registrations(session, tournament_id) if r.final_ranking]
    player_ids = [pid for r in registrations for pid in (r.player1_id, r.player2_id)]
    profiles = await data_service.get_profiles_by_ids(session, player_ids)

    rankings = []
    for registration in sorted(registrations, key=lambda r: (r.final_ranking, r.id)):
        entry = registration_to_dict(registration)
        entry["players"] = [
            profiles[pid]["display_name"] for pid in (registration.player1_id, registration.player2_id)
            if pid in profiles
        ]
        rankings.append(entry)
    return rankings
