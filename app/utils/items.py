"""
Helpers for the loosely shaped list responses returned by the Rollout API.
"""

from typing import Any

# Envelope keys checked before falling back to the first list-valued field
ITEM_KEYS = ("items", "data", "credentials", "results")


def extract_items(value: Any) -> list:
    """
    Return the list of records carried by an upstream response.

    Accepts a bare list, an object wrapping the list under one of ITEM_KEYS,
    or an object with any other list-valued field (first one wins). Anything
    else yields an empty list; this never raises.
    """
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if not isinstance(value, dict):
        return []

    for key in ITEM_KEYS:
        candidate = value.get(key)
        if isinstance(candidate, list):
            return candidate

    for candidate in value.values():
        if isinstance(candidate, list):
            return candidate

    return []


def next_cursor(value: Any) -> str | None:
    """Pagination cursor from `_metadata.next`, or None when the list is done."""
    if not isinstance(value, dict):
        return None
    metadata = value.get("_metadata")
    if not isinstance(metadata, dict):
        return None
    cursor = metadata.get("next")
    return cursor if isinstance(cursor, str) and cursor else None


def normalize_id(value: Any) -> str:
    """Stringify and trim an upstream id; missing ids become ""."""
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()
