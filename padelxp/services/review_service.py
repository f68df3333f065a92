"""
Player reviews of PadelXP.

A player's first review that passes leaderboard_service.is_valid_review is
worth REVIEW_BONUS_POINTS on the leaderboard and unlocks the reviewer badge;
both are derived from the stored rows, nothing is credited here.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import Review
from padelxp.services import data_service, leaderboard_service
from padelxp.utils.constants import REVIEW_BONUS_POINTS
from padelxp.utils.datetime_utils import isoformat

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
POSITIVE_RATING = 4
MAX_COMMENT_LENGTH = 2000
LIST_LIMIT = 100


def review_to_dict(review: Review, display_name: Optional[str] = None) -> Dict:
    return {
        "id": review.id,
        "profile_id": review.profile_id,
        "rating": review.rating,
        "comment": review.comment,
        "display_name": display_name,
        "created_at": isoformat(review.created_at),
    }


def calculate_review_stats(reviews: List[Dict]) -> Dict:
    """
    Average rating (one decimal) and share of reviews rated 4 or more.

    Examples:
        >>> calculate_review_stats([{"rating": 5}, {"rating": 2}])
        {'total_reviews': 2, 'positive_reviews': 1, 'average_rating': 3.5, 'satisfaction_rate': 50}
    """
    total = len(reviews)
    if not total:
        return {"total_reviews": 0, "positive_reviews": 0, "average_rating": 0, "satisfaction_rate": 0}
    positive = sum(1 for r in reviews if r["rating"] >= POSITIVE_RATING)
    return {
        "total_reviews": total,
        "positive_reviews": positive,
        "average_rating": round(sum(r["rating"] for r in reviews) / total, 1),
        "satisfaction_rate": round(positive * 100 / total),
    }


async def create_review(
    session: AsyncSession, profile_id: int, rating: int, comment: Optional[str] = None
) -> Dict:
    """
    Store a review.

    Returns:
        {"review", "is_first_review", "bonus_points"}; bonus_points is
        REVIEW_BONUS_POINTS when this review is the first one to earn it

    Raises:
        ValueError: On a rating outside 1-5, a too long comment or an unknown profile
    """
    if not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    comment = comment.strip() if comment else None
    if comment and len(comment) > MAX_COMMENT_LENGTH:
        raise ValueError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

    profile = await data_service.get_profile(session, profile_id)
    if profile is None:
        raise ValueError(f"Profile {profile_id} not found")

    result = await session.execute(
        select(Review.rating, Review.comment).where(Review.profile_id == profile_id)
    )
    previous = result.all()
    had_bonus = any(leaderboard_service.is_valid_review(r, c) for r, c in previous)

    review = Review(profile_id=profile_id, rating=rating, comment=comment or None)
    session.add(review)
    await session.flush()
    await session.refresh(review)

    earns_bonus = not had_bonus and leaderboard_service.is_valid_review(rating, comment)
    logger.info(f"Profile {profile_id} left a {rating}-star review (bonus: {earns_bonus})")
    return {
        "review": review_to_dict(review, profile["display_name"]),
        "is_first_review": not previous,
        "bonus_points": REVIEW_BONUS_POINTS if earns_bonus else 0,
    }


async def list_reviews(session: AsyncSession, min_rating: Optional[int] = None, limit: int = LIST_LIMIT) -> Dict:
    """Latest reviews with author names and their stats, optionally rated min_rating or more."""
    query = select(Review).order_by(Review.created_at.desc(), Review.id.desc()).limit(limit)
    if min_rating is not None:
        query = query.where(Review.rating >= min_rating)
    result = await session.execute(query)
    rows = list(result.scalars().all())

    profiles = await data_service.get_profiles_by_ids(session, list({r.profile_id for r in rows}))
    reviews = [
        review_to_dict(r, profiles[r.profile_id]["display_name"] if r.profile_id in profiles else None)
        for r in rows
    ]
    return {"reviews": reviews, **calculate_review_stats(reviews)}

