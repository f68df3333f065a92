"""
Data service layer for club, profile and settings database operations.
"""

import logging
from typing import Dict, List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import (
    Club,
    ClubAdmin,
    ClubAdminRole,
    Profile,
    Setting,
    User,
)
from padelxp.utils.geo import get_department_from_postal_code, get_region_from_department
from padelxp.utils.slugify import club_slug

logger = logging.getLogger(__name__)


# ============================================================================
# Settings
# ============================================================================


async def get_setting(session: AsyncSession, key: str) -> Optional[str]:
    """
    Get a setting value.

    Args:
        session: Database session
        key: Setting key

    Returns:
        Setting value or None if not found
    """
    result = await session.execute(select(Setting).where(Setting.key == key))
    setting = result.scalar_one_or_none()
    return setting.value if setting else None


async def set_setting(
    session: AsyncSession, key: str, value: str, updated_by: Optional[int] = None
) -> None:
    """
    Set a setting value (upsert).

    Args:
        session: Database session
        key: Setting key
        value: Setting value
        updated_by: Optional user ID of the admin making the change
    """
    setting = await session.get(Setting, key)
    if setting is None:
        session.add(Setting(key=key, value=value, updated_by=updated_by))
    else:
        setting.value = value
        setting.updated_by = updated_by
    await session.flush()


# ============================================================================
# Profiles
# ============================================================================


def profile_to_dict(profile: Profile) -> Dict:
    """Serialize a profile row."""
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "club_id": profile.club_id,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "display_name": profile.display_name,
        "postal_code": profile.postal_code,
        "department_code": profile.department_code,
        "region_code": profile.region_code,
        "points": profile.points or 0,
        "level": profile.level,
        "level_matches": profile.level_matches or 0,
        "is_guest": profile.is_guest,
    }


def build_display_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return " ".join(part.strip() for part in (first_name, last_name) if part and part.strip())


async def create_profile(
    session: AsyncSession,
    user_id: Optional[int],
    first_name: str,
    last_name: Optional[str] = None,
    postal_code: Optional[str] = None,
    club_id: Optional[int] = None,
    is_guest: bool = False,
) -> Dict:
    """
    Create a player profile. Guests have no user account.

    Returns:
        Dict of the created profile
    """
    department = get_department_from_postal_code(postal_code)
    profile = Profile(
        user_id=user_id,
        club_id=club_id,
        first_name=first_name.strip() if first_name else None,
        last_name=last_name.strip() if last_name else None,
        display_name=build_display_name(first_name, last_name),
        postal_code=postal_code,
        department_code=department,
        region_code=get_region_from_department(department),
        is_guest=is_guest,
    )
    session.add(profile)
    await session.flush()
    return profile_to_dict(profile)


async def get_profile(session: AsyncSession, profile_id: int) -> Optional[Dict]:
    profile = await session.get(Profile, profile_id)
    return profile_to_dict(profile) if profile else None


async def get_profile_by_user_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """Get the player profile attached to a user account."""
    result = await session.execute(select(Profile).where(Profile.user_id == user_id))
    profile = result.scalar_one_or_none()
    return profile_to_dict(profile) if profile else None


async def get_profiles_by_ids(session: AsyncSession, profile_ids: List[int]) -> Dict[int, Dict]:
    if not profile_ids:
        return {}
    result = await session.execute(select(Profile).where(Profile.id.in_(profile_ids)))
    return {p.id: profile_to_dict(p) for p in result.scalars().all()}


async def update_profile(
    session: AsyncSession,
    profile_id: int,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    postal_code: Optional[str] = None,
) -> Optional[Dict]:
    """
    Update a profile's names and postal code.

    Updating the postal code recomputes the department and region codes.
    """
    profile = await session.get(Profile, profile_id)
    if profile is None:
        return None
    if first_name is not None:
        profile.first_name = first_name.strip()
    if last_name is not None:
        profile.last_name = last_name.strip()
    if first_name is not None or last_name is not None:
        profile.display_name = build_display_name(profile.first_name, profile.last_name)
    if postal_code is not None:
        profile.postal_code = postal_code.strip()
        profile.department_code = get_department_from_postal_code(profile.postal_code)
        profile.region_code = get_region_from_department(profile.department_code)
    await session.flush()
    return profile_to_dict(profile)


async def add_profile_points(session: AsyncSession, profile_id: int, points: int) -> int:
    """Add challenge points to a profile and return the new total."""
    profile = await session.get(Profile, profile_id)
    if profile is None:
        raise ValueError(f"Profile {profile_id} not found")
    profile.points = (profile.points or 0) + points
    await session.flush()
    return profile.points


async def list_club_profiles(
    session: AsyncSession, club_id: int, include_guests: bool = False
) -> List[Dict]:
    query = select(Profile).where(Profile.club_id == club_id)
    if not include_guests:
        query = query.where(Profile.is_guest == False)  # noqa: E712
    result = await session.execute(query.order_by(Profile.id))
    return [profile_to_dict(p) for p in result.scalars().all()]


async def count_club_players(session: AsyncSession, club_id: int) -> int:
    result = await session.execute(
        select(func.count(Profile.id)).where(
            Profile.club_id == club_id, Profile.is_guest == False  # noqa: E712
        )
    )
    return result.scalar() or 0


# ============================================================================
# Clubs
# ============================================================================


def club_to_dict(club: Club) -> Dict:
    return {
        "id": club.id,
        "name": club.name,
        "slug": club.slug,
        "postal_code": club.postal_code,
        "city": club.city,
        "created_at": club.created_at.isoformat() if club.created_at else None,
    }


async def _unique_club_slug(session: AsyncSession, name: str) -> str:
    base = club_slug(name) or "club"
    slug = base
    suffix = 2
    while True:
        result = await session.execute(select(Club.id).where(Club.slug == slug))
        if result.scalar_one_or_none() is None:
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


async def create_club(
    session: AsyncSession,
    name: str,
    owner_user_id: int,
    postal_code: Optional[str] = None,
    city: Optional[str] = None,
) -> Dict:
    """
    Create a club and make the creating user its owner.

    Returns:
        Dict of the created club
    """
    if not name or not name.strip():
        raise ValueError("Club name is required")
    club = Club(
        name=name.strip(),
        slug=await _unique_club_slug(session, name),
        postal_code=postal_code,
        city=city,
    )
    session.add(club)
    await session.flush()
    session.add(ClubAdmin(club_id=club.id, user_id=owner_user_id, role=ClubAdminRole.OWNER.value))
    await session.flush()
    await session.refresh(club)
    logger.info(f"Created club {club.id} ({club.slug}) for user {owner_user_id}")
    return club_to_dict(club)


async def get_club(session: AsyncSession, club_id: int) -> Optional[Dict]:
    club = await session.get(Club, club_id)
    return club_to_dict(club) if club else None


async def get_club_by_slug(session: AsyncSession, slug: str) -> Optional[Dict]:
    result = await session.execute(select(Club).where(Club.slug == slug))
    club = result.scalar_one_or_none()
    return club_to_dict(club) if club else None


async def join_club(session: AsyncSession, profile_id: int, club_id: int) -> Dict:
    """Attach a profile to a club."""
    profile = await session.get(Profile, profile_id)
    if profile is None:
        raise ValueError(f"Profile {profile_id} not found")
    if await session.get(Club, club_id) is None:
        raise ValueError(f"Club {club_id} not found")
    profile.club_id = club_id
    await session.flush()
    return profile_to_dict(profile)


async def is_club_admin(session: AsyncSession, user_id: int, club_id: int) -> bool:
    result = await session.execute(
        select(ClubAdmin.id).where(ClubAdmin.club_id == club_id, ClubAdmin.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def get_admin_club_ids(session: AsyncSession, user_id: int) -> List[int]:
    result = await session.execute(
        select(ClubAdmin.club_id).where(ClubAdmin.user_id == user_id).order_by(ClubAdmin.id)
    )
    return list(result.scalars().all())


async def get_club_owner_email(session: AsyncSession, club_id: int) -> Optional[str]:
    """Email of the club owner (or first admin) for billing and reminders."""
    result = await session.execute(
        select(User.email, ClubAdmin.role)
        .join(ClubAdmin, ClubAdmin.user_id == User.id)
        .where(ClubAdmin.club_id == club_id)
        .order_by(ClubAdmin.id)
    )
    rows = result.all()
    for email, role in rows:
        if role == ClubAdminRole.OWNER.value:
            return email
    return rows[0][0] if rows else None
