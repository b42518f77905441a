"""Query-injection sanitization engine.

Scrubs operator keys ($ne, $gt...), field-path separators, delimiters,
control characters and interpolation sequences out of deserialized request
payloads. Pure and synchronous; the middleware package wires it into
the request pipeline.
"""

from scrubgate.sanitize.arrays import distinct, postprocess_array
from scrubgate.sanitize.classify import ValueKind, classify, is_email
from scrubgate.sanitize.engine import (
    sanitize_fields,
    sanitize_mapping,
    sanitize_sequence,
    sanitize_string,
    sanitize_value,
)
from scrubgate.sanitize.errors import (
    ConfigurationError,
    DepthExceededError,
    SanitizeError,
    TypeMismatchError,
)
from scrubgate.sanitize.keys import is_key_allowed
from scrubgate.sanitize.options import (
    MAX_DEPTH_LIMIT,
    ArrayOptions,
    DebugOptions,
    SanitizeOptions,
    StringOptions,
    build_options,
)
from scrubgate.sanitize.patterns import DEFAULT_PATTERNS, apply_patterns, matches_any
from scrubgate.sanitize.routes import SkipMatcher, clean_url

__all__ = [
    "ArrayOptions",
    "ConfigurationError",
    "DEFAULT_PATTERNS",
    "DebugOptions",
    "DepthExceededError",
    "MAX_DEPTH_LIMIT",
    "SanitizeError",
    "SanitizeOptions",
    "SkipMatcher",
    "StringOptions",
    "TypeMismatchError",
    "ValueKind",
    "apply_patterns",
    "build_options",
    "classify",
    "clean_url",
    "distinct",
    "is_email",
    "is_key_allowed",
    "matches_any",
    "postprocess_array",
    "sanitize_fields",
    "sanitize_mapping",
    "sanitize_sequence",
    "sanitize_string",
    "sanitize_value",
]
