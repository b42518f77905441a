"""Recursive value transformer and per-request field orchestration."""

from __future__ import annotations

import time
from collections.abc import MutableMapping
from typing import Any

import structlog

from scrubgate.sanitize.arrays import postprocess_array
from scrubgate.sanitize.classify import ValueKind, classify, is_email, is_mapping, is_sequence
from scrubgate.sanitize.errors import DepthExceededError, TypeMismatchError
from scrubgate.sanitize.keys import is_key_allowed
from scrubgate.sanitize.options import SanitizeOptions
from scrubgate.sanitize.patterns import apply_patterns, matches_any
from scrubgate.sanitize.strings import normalize_string

logger = structlog.get_logger()


def sanitize_string(text: Any, options: SanitizeOptions, is_value: bool = True) -> Any:
    """Scrub a string with every pattern, then shape it.

    Email-shaped values are returned unchanged. Keys (is_value=False) get no
    email exemption and no length cap. Non-strings are returned as-is.
    """
    if not isinstance(text, str):
        return text
    if is_value and is_email(text):
        return text

    result, matched = apply_patterns(text, options.patterns, options.replace_with)
    result = normalize_string(result, options.string_options, is_value)

    if matched and options.debug.log_pattern_matches:
        logger.debug(
            "patterns_matched",
            matches=[{"pattern": index, "count": count} for index, count in matched],
        )
    if options.debug.log_sanitized_values and result != text:
        logger.debug("string_sanitized", original=text, sanitized=result)
    return result


def sanitize_value(value: Any, options: SanitizeOptions, is_value: bool = True, *, _depth: int = 0) -> Any:
    """Sanitize any JSON-like value. Never raises for unknown types."""
    kind = classify(value)
    if kind is ValueKind.TEXT:
        return sanitize_string(value, options, is_value)
    if kind is ValueKind.SEQUENCE:
        return _sanitize_sequence(value, options, _depth)
    if kind is ValueKind.MAPPING:
        return _sanitize_mapping(value, options, _depth)
    return value


def sanitize_sequence(value: Any, options: SanitizeOptions) -> list[Any] | tuple[Any, ...]:
    """Sanitize a list or tuple; raises TypeMismatchError for anything else."""
    if not is_sequence(value):
        logger.error("sanitize_type_mismatch", expected="sequence", actual=type(value).__name__)
        raise TypeMismatchError("an array", value)
    return _sanitize_sequence(value, options, 0)


def sanitize_mapping(value: Any, options: SanitizeOptions) -> dict[Any, Any]:
    """Sanitize a dict; raises TypeMismatchError for anything else."""
    if not is_mapping(value):
        logger.error("sanitize_type_mismatch", expected="mapping", actual=type(value).__name__)
        raise TypeMismatchError("an object", value)
    return _sanitize_mapping(value, options, 0)


def _enter(depth: int, options: SanitizeOptions) -> int:
    depth += 1
    if depth > options.max_depth:
        raise DepthExceededError(options.max_depth)
    return depth


def _is_container(value: Any) -> bool:
    return classify(value) in (ValueKind.MAPPING, ValueKind.SEQUENCE)


def _sanitize_sequence(items: list[Any] | tuple[Any, ...], options: SanitizeOptions, depth: int):
    depth = _enter(depth, options)

    result = [
        item
        if not options.recursive and _is_container(item)
        else sanitize_value(item, options, True, _depth=depth)
        for item in items
    ]
    result = postprocess_array(result, options.array_options)

    if isinstance(items, tuple):
        return tuple(result)
    return result


def _sanitize_mapping(obj: dict[Any, Any], options: SanitizeOptions, depth: int) -> dict[Any, Any]:
    depth = _enter(depth, options)
    patterns = options.patterns
    result: dict[Any, Any] = {}

    for key, value in obj.items():
        if not is_key_allowed(key, options.allowed_keys, options.denied_keys):
            logger.debug("key_filtered", key=key)
            continue

        # A matching key drops the entry even when the value is an email
        if options.remove_matches and isinstance(key, str) and matches_any(key, patterns):
            logger.debug("key_removed_on_match", key=key)
            continue

        sanitized_key = sanitize_string(key, options, is_value=False)
        if options.remove_empty and sanitized_key == "":
            continue

        if is_email(value):
            result[sanitized_key] = value
            continue

        if options.remove_matches and isinstance(value, str) and matches_any(value, patterns):
            logger.debug("value_removed_on_match", key=key)
            continue

        if not options.recursive and _is_container(value):
            sanitized_value = value
        else:
            sanitized_value = sanitize_value(value, options, True, _depth=depth)

        if options.remove_empty and options.is_empty(sanitized_value):
            continue

        # Keys that collapse to the same sanitized key: the later entry wins
        result[sanitized_key] = sanitized_value

    return result


def _shallow_copy(value: Any) -> Any:
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return list(value)
    return value


def sanitize_fields(payload: MutableMapping[str, Any], options: SanitizeOptions) -> list[str]:
    """Replace each configured target field in payload with its sanitized copy.

    Fields are processed in configuration order. If one raises, the error
    propagates: fields already handled stay sanitized, the failing field and
    the ones after it stay raw.

    Returns the names of the fields that were replaced.
    """
    start = time.perf_counter()
    replaced: list[str] = []

    for name in options.sanitize_objects:
        original = payload.get(name)
        if not original:
            continue

        working = _shallow_copy(original)
        try:
            if options.custom_sanitizer is not None:
                sanitized = options.custom_sanitizer(working)
            else:
                sanitized = sanitize_value(working, options)
        except Exception as exc:
            logger.warning(
                "sanitize_field_failed",
                field=name,
                error=str(exc),
                sanitized_fields=replaced,
            )
            raise

        payload[name] = sanitized
        replaced.append(name)

        if options.debug.log_sanitized_values:
            logger.debug("field_sanitized", field=name, before=original, after=sanitized)

    logger.debug(
        "fields_sanitized",
        fields=replaced,
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    return replaced
