"""Club slugs for public URLs (/club/<slug>)."""

import re
import unicodedata

MAX_SLUG_LENGTH = 60

_APOSTROPHES = re.compile(r"['’`]")
_SEPARATORS = re.compile(r"[^a-z0-9]+")


def club_slug(name: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """
    Lowercase ASCII slug of a club name.

    Accents are dropped, apostrophes are removed ("l'Étang" -> "letang") and
    any other run of non-alphanumerics becomes one hyphen. Long slugs are
    cut at the last hyphen before max_length.

    Examples:
        >>> club_slug("Padel Club de l'Étang")
        'padel-club-de-letang'
    """
    ascii_name = unicodedata.normalize("NFKD", name or "").encode("ascii", "ignore").decode("ascii")
    slug = _SEPARATORS.sub("-", _APOSTROPHES.sub("", ascii_name.lower())).strip("-")
    if len(slug) <= max_length:
        return slug
    cut = slug[:max_length]
    if "-" in cut:
        cut = cut[: cut.rindex("-")]
    return cut.strip("-")
