"""
Tests for badge computation.
"""
from padelxp.services import badge_service


def _ids(badges):
    return [b["id"] for b in badges]


def test_no_badges_for_new_player():
    assert badge_service.get_badges(wins=0, losses=0, matches=0, points=0, streak=0) == []


def test_first_win_and_streaks():
    badges = _ids(badge_service.get_badges(wins=5, losses=0, matches=5, points=50, streak=5))
    assert "first_win" in badges
    assert "streak_3" in badges
    assert "streak_5" in badges
    assert "streak_7" not in badges
    assert "precision" in badges
    assert "rising" in badges


def test_marathon_is_replaced_by_centurion():
    assert "marathon" in _ids(badge_service.get_badges(20, 30, 50, 350, 0))
    badges = _ids(badge_service.get_badges(40, 60, 100, 580, 0))
    assert "marathon" not in badges
    assert "centurion" in badges
    assert "diamond" in badges


def test_reviewer_badge():
    assert "reviewer" in _ids(badge_service.get_badges(0, 0, 0, 10, 0, has_review=True))


def test_badges_follow_catalogue_order():
    badges = _ids(badge_service.get_badges(wins=200, losses=0, matches=200, points=2000, streak=20, has_review=True))
    catalogue = [b["id"] for b in badge_service.ALL_BADGES]
    assert badges == [b for b in catalogue if b in badges]
    # marathon only covers 50 to 99 matches
    assert set(catalogue) - set(badges) == {"marathon"}
