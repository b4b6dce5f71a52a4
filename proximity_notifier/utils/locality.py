from typing import Optional

# Characters the database side strips out of city names before comparing.
SEARCH_WHITESPACE = " \t\n\r\f\v\u00a0"


def normalize_city(name: Optional[str]) -> Optional[str]:
    """Lower-case a locality name and collapse its whitespace; blank names normalize to None.

    Must stay consistent with the SQL ``lower()`` in ``city_search_expression``.
    """
    if name is None:
        return None
    normalized = " ".join(name.split()).lower()
    return normalized or None


def city_search_key(normalized_city: str) -> str:
    """Whitespace-free form of a normalized city, compared against the indexed SQL expression."""
    return "".join(normalized_city.split())
