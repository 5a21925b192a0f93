from typing import Any, Iterable, Optional


def strip_unset(value: Any) -> Any:
    """
    Recursively remove keys whose value is None or an empty list from dictionaries.

    Lists are preserved, but their elements are also cleaned.
    """
    if isinstance(value, dict):
        return {
            k: strip_unset(v)
            for k, v in value.items()
            if v is not None and not (isinstance(v, list) and not v)
        }
    if isinstance(value, list):
        return [strip_unset(v) for v in value]
    return value


def contains(value: Optional[str], query: str) -> bool:
    """
    Case-sensitive substring test. A missing value never matches a non-empty
    query; the empty query matches everything.
    """
    if not query:
        return True
    if value is None:
        return False
    return query in value


def matches_any(values: Iterable[Optional[str]], query: str) -> bool:
    return any(contains(v, query) for v in values)


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trim whitespace; empty strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None
