"""Pattern engine: ordered regex scrubbing of strings."""

from __future__ import annotations

import re
from collections.abc import Sequence

# C0 controls, DEL, C1 controls, Unicode line/paragraph separators,
# zero-width and bidi controls, BOM.
CONTROL_CHARS_RE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u2028\u2029\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)

# Order matters: each pattern runs on the output of the previous one.
DEFAULT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\$"),                            # operator marker
    re.compile(r"\."),                            # field-path separator
    re.compile(r"[\\/{}.(*+?|\[\]^)]"),           # delimiters that need escaping
    CONTROL_CHARS_RE,                             # control characters
    re.compile(r"\{\s*\$|\$?\{(?:.|\r?\n)*\}"),   # ${...} and { $... } interpolation
)


def strip_control_chars(value: str) -> str:
    """Strip all control characters from a string."""
    return CONTROL_CHARS_RE.sub("", value)


def apply_patterns(
    text: str,
    patterns: Sequence[re.Pattern[str]],
    replace_with: str = "",
) -> tuple[str, list[tuple[int, int]]]:
    """Replace every match of every pattern, in order.

    Returns the scrubbed string and a list of (pattern_index, match_count)
    for the patterns that matched.
    """
    matched: list[tuple[int, int]] = []
    for index, pattern in enumerate(patterns):
        # Callable replacement keeps replace_with literal (no \1 expansion)
        text, count = pattern.subn(lambda _m: replace_with, text)
        if count:
            matched.append((index, count))
    return text, matched


def matches_any(text: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    """True if any pattern matches anywhere in text."""
    return any(pattern.search(text) for pattern in patterns)
