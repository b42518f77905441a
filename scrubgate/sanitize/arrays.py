"""Array post-processing: falsy filtering and de-duplication."""

from __future__ import annotations

from collections.abc import Hashable
from typing import Any

from scrubgate.sanitize.options import ArrayOptions


def postprocess_array(items: list[Any], options: ArrayOptions) -> list[Any]:
    """Filter falsy elements, then drop later duplicates.

    Runs on the already-sanitized elements.
    """
    if options.filter_null:
        items = [item for item in items if item]
    if options.distinct:
        items = distinct(items)
    return items


def distinct(items: list[Any]) -> list[Any]:
    """Keep the first occurrence of each value, preserving order.

    Equality is structural (two equal dicts are duplicates). Top-level
    elements are compared type-strictly: 1, 1.0 and True all survive.
    """
    seen_hashable: set[tuple[type, Hashable]] = set()
    seen_other: list[Any] = []
    result = []
    for item in items:
        if isinstance(item, Hashable):
            try:
                marker = (type(item), item)
                if marker in seen_hashable:
                    continue
                seen_hashable.add(marker)
                result.append(item)
                continue
            except TypeError:
                # Tuples holding unhashable members
                pass
        if any(type(other) is type(item) and other == item for other in seen_other):
            continue
        seen_other.append(item)
        result.append(item)
    return result
