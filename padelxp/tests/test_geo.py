"""
Tests for postal code to department/region helpers and slugs.
"""
import pytest
from padelxp.utils.geo import get_department_from_postal_code, get_region_from_department
from padelxp.utils.slugify import club_slug


@pytest.mark.parametrize(
    "postal_code, department",
    [
        ("75011", "75"),
        (" 69003 ", "69"),
        ("20000", "2A"),
        ("20190", "2A"),
        ("20200", "2B"),
        ("97400", "974"),
        ("", None),
        (None, None),
        ("7", None),
    ],
)
def test_department_from_postal_code(postal_code, department):
    assert get_department_from_postal_code(postal_code) == department


def test_region_from_department():
    assert get_region_from_department("75") == "IDF"
    assert get_region_from_department("2A") == "COR"
    assert get_region_from_department("974") == "DOM"
    assert get_region_from_department("99") is None
    assert get_region_from_department(None) is None


def test_club_slug():
    assert club_slug("Padel Club de l'Étang") == "padel-club-de-letang"
    assert club_slug("  Urban   Padel -- Lyon ") == "urban-padel-lyon"
    assert club_slug("4PADEL Saint-Priest (69)") == "4padel-saint-priest-69"


def test_club_slug_is_cut_at_a_word():
    slug = club_slug("Association Sportive du Padel " * 4, max_length=30)
    assert slug == "association-sportive-du-padel"
