"""Allow-list / deny-list filtering of mapping keys."""

from __future__ import annotations

from collections.abc import Collection


def is_key_allowed(
    key: object,
    allowed_keys: Collection[str] | None,
    denied_keys: Collection[str] | None,
) -> bool:
    """Decide whether a mapping entry survives, before any other processing.

    An empty or missing list has no filtering effect.
    """
    if allowed_keys and key not in allowed_keys:
        return False
    if denied_keys and key in denied_keys:
        return False
    return True
