"""
Badge catalogue and earned-badge computation.
"""

from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import Challenge, ChallengeReward, RewardType


ALL_BADGES: List[Dict] = [
    {"id": "first_win", "icon": "Trophy", "title": "Première victoire", "description": "Obtenez votre première victoire"},
    {"id": "streak_3", "icon": "Flame", "title": "Série de 3", "description": "Gagnez 3 matchs consécutifs"},
    {"id": "streak_5", "icon": "Flame", "title": "Série de 5", "description": "Gagnez 5 matchs consécutifs"},
    {"id": "marathon", "icon": "Timer", "title": "Marathonien", "description": "Jouez 50 matchs"},
    {"id": "top_scorer", "icon": "Star", "title": "Meilleur scoreur", "description": "Obtenez 100+ points"},
    {"id": "streak_7", "icon": "Flame", "title": "Série de 7", "description": "Gagnez 7 matchs consécutifs"},
    {"id": "streak_10", "icon": "Flame", "title": "Série de 10", "description": "Gagnez 10 matchs consécutifs"},
    {"id": "precision", "icon": "Target", "title": "Précision", "description": "Remportez 5 matchs sans en perdre aucun"},
    {"id": "rising", "icon": "TrendingUp", "title": "En progression", "description": "Ayez 5 victoires de plus que de défaites"},
    {"id": "streak_15", "icon": "Flame", "title": "Série de 15", "description": "Gagnez 15 matchs consécutifs"},
    {"id": "streak_20", "icon": "Flame", "title": "Série de 20", "description": "Gagnez 20 matchs consécutifs"},
    {"id": "centurion", "icon": "Milestone", "title": "Centurion", "description": "Jouez 100 matchs"},
    {"id": "diamond", "icon": "Gem", "title": "Diamant", "description": "Atteignez 500 points"},
    {"id": "legend", "icon": "Crown", "title": "Légende", "description": "Gagnez 200 matchs au total"},
    {"id": "padel_love", "icon": "Heart", "title": "Amour du padel", "description": "Jouez 200 matchs au total"},
    {"id": "reviewer", "icon": "MessageSquare", "title": "Contributeur", "description": "Laissez votre premier avis"},
]



def get_badges(
    wins: int,
    losses: int,
    matches: int,
    points: int,
    streak: int,
    has_review: bool = False,
) -> List[Dict]:
    """
    Badges earned for the given player statistics, in catalogue order.

    Args:
        wins: Total wins
        losses: Total losses
        matches: Total matches played
        points: Leaderboard points
        streak: Current win streak
        has_review: Whether the player left a review
    """
    earned = set()
    if wins >= 1:
        earned.add("first_win")
    for threshold in (3, 5, 7, 10, 15, 20):
        if streak >= threshold:
            earned.add(f"streak_{threshold}")
    if 50 <= matches < 100:
        earned.add("marathon")
    if points >= 100:
        earned.add("top_scorer")
    if wins >= 5 and losses == 0:
        earned.add("precision")
    if wins - losses >= 5:
        earned.add("rising")
    if matches >= 100:
        earned.add("centurion")
    if points >= 500:
        earned.add("diamond")
    if wins >= 200:
        earned.add("legend")
    if matches >= 200:
        earned.add("padel_love")
    if has_review:
        earned.add("reviewer")
    return [badge for badge in ALL_BADGES if badge["id"] in earned]


async def get_custom_badges(session: AsyncSession, profile_id: int) -> List[Dict]:
    """Badges earned by claiming badge-type challenge rewards."""
    result = await session.execute(
        select(ChallengeReward, Challenge)
        .join(Challenge, Challenge.id == ChallengeReward.challenge_id)
        .where(
            ChallengeReward.profile_id == profile_id,
            ChallengeReward.reward_type == RewardType.BADGE.value,
        )
        .order_by(ChallengeReward.id)
    )
    return [
        {
            "id": f"challenge_{challenge.id}",
            "icon": "Award",
            "title": reward.reward_value,
            "description": challenge.title,
        }
        for reward, challenge in result.all()
    ]
