"""Sanitizer configuration: defaults, shallow merge and validation."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError

from scrubgate.sanitize.errors import ConfigurationError
from scrubgate.sanitize.patterns import DEFAULT_PATTERNS

DEFAULT_TARGET_FIELDS: tuple[str, ...] = ("body", "params", "query")

DEFAULT_MAX_DEPTH = 64

# Each nesting level costs a few interpreter frames; stay well inside the
# default recursion limit so the guard always fires first.
MAX_DEPTH_LIMIT = 200


class StringOptions(BaseModel):
    """Post-pattern string shaping: trim -> lowercase -> max_length."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    trim: StrictBool = False
    lowercase: StrictBool = False
    # Applies to values only, never to mapping keys; 0 or None means no cap
    max_length: Annotated[int, Field(ge=0, strict=True)] | None = None


class ArrayOptions(BaseModel):
    """Post-processing applied after element-wise sanitization.

    filter_null drops every falsy element, including 0, False and empty
    containers, not only None.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    filter_null: StrictBool = False
    distinct: StrictBool = False


class DebugOptions(BaseModel):
    """Verbose logging toggles. Logged values may contain raw user input."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    log_pattern_matches: StrictBool = False
    log_sanitized_values: StrictBool = False
    log_skipped_routes: StrictBool = False


class SanitizeOptions(BaseModel):
    """Immutable sanitizer configuration, shared by all requests."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    replace_with: StrictStr = ""
    remove_matches: StrictBool = False
    sanitize_objects: tuple[StrictStr, ...] = DEFAULT_TARGET_FIELDS
    mode: Literal["auto", "manual"] = "auto"
    skip_routes: tuple[StrictStr, ...] = ()
    custom_sanitizer: Callable[[Any], Any] | None = None
    recursive: StrictBool = True
    remove_empty: StrictBool = False
    # Replaces the blanket falsy check used by remove_empty
    empty_check: Callable[[Any], bool] | None = None
    patterns: tuple[re.Pattern, ...] = DEFAULT_PATTERNS
    allowed_keys: tuple[StrictStr, ...] | None = None
    denied_keys: tuple[StrictStr, ...] | None = None
    string_options: StringOptions = Field(default_factory=StringOptions)
    array_options: ArrayOptions = Field(default_factory=ArrayOptions)
    max_depth: int = Field(DEFAULT_MAX_DEPTH, ge=1, le=MAX_DEPTH_LIMIT, strict=True)
    debug: DebugOptions = Field(default_factory=DebugOptions)

    def merge(self, overrides: Mapping[str, Any] | None) -> SanitizeOptions:
        """Return a new, validated config with overrides laid over this one."""
        return build_options(overrides, base=self)

    def is_empty(self, value: Any) -> bool:
        if self.empty_check is not None:
            return bool(self.empty_check(value))
        return not value


def build_options(
    overrides: Mapping[str, Any] | None = None,
    *,
    base: SanitizeOptions | None = None,
) -> SanitizeOptions:
    """Shallow-merge overrides over base (or the defaults) and validate.

    Nested option groups (string_options, array_options, debug) are replaced
    as a whole; fields omitted from a replacement group take that group's
    defaults.

    Raises ConfigurationError naming the first offending field.
    """
    if overrides is None:
        overrides = {}
    if isinstance(overrides, SanitizeOptions):
        overrides = dict(overrides)
    if not isinstance(overrides, Mapping):
        raise ConfigurationError("options", f"expected a mapping, got {type(overrides).__name__}")

    merged: dict[str, Any] = dict(base) if base is not None else {}
    merged.update(overrides)

    try:
        return SanitizeOptions.model_validate(merged)
    except ValidationError as exc:
        raise _to_configuration_error(exc) from exc


def _to_configuration_error(exc: ValidationError) -> ConfigurationError:
    error = exc.errors()[0]
    loc = error.get("loc") or ("options",)
    path = ".".join(str(part) for part in loc)
    return ConfigurationError(str(loc[0]), f"{path}: {error.get('msg', 'invalid value')}")
