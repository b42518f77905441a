"""Runtime type classification used to dispatch the transform."""

from __future__ import annotations

import datetime
import enum
import re
from typing import Any

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", re.IGNORECASE)


class ValueKind(enum.Enum):
    SCALAR = "scalar"
    TEXT = "text"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OPAQUE = "opaque"


def is_text(value: Any) -> bool:
    return isinstance(value, str)


def is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def is_mapping(value: Any) -> bool:
    return isinstance(value, dict)


def is_scalar_primitive(value: Any) -> bool:
    """None, numbers and booleans."""
    return value is None or isinstance(value, (bool, int, float))


def is_opaque_date(value: Any) -> bool:
    # datetime.datetime is a subclass of datetime.date
    return isinstance(value, (datetime.date, datetime.time))


def is_callable(value: Any) -> bool:
    return callable(value)


def is_email(value: Any) -> bool:
    """True if value is a string shaped like an email address."""
    return isinstance(value, str) and _EMAIL_RE.fullmatch(value) is not None


def classify(value: Any) -> ValueKind:
    """Decide the dispatch kind of a value once."""
    if is_scalar_primitive(value):
        return ValueKind.SCALAR
    if is_opaque_date(value) or is_callable(value):
        return ValueKind.OPAQUE
    if is_text(value):
        return ValueKind.TEXT
    if is_mapping(value):
        return ValueKind.MAPPING
    if is_sequence(value):
        return ValueKind.SEQUENCE
    # Anything unrecognised passes through untouched
    return ValueKind.OPAQUE
