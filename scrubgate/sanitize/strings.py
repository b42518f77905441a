"""String shaping applied after pattern scrubbing."""

from __future__ import annotations

from scrubgate.sanitize.options import StringOptions


def normalize_string(text: str, options: StringOptions, is_value: bool) -> str:
    """Apply trim, lowercase and length cap, in that order.

    The length cap only applies to values; mapping keys are never truncated.
    """
    if options.trim:
        text = text.strip()
    if options.lowercase:
        text = text.lower()
    if options.max_length and is_value:
        text = text[: options.max_length]
    return text
