"""Exception hierarchy for the sanitization engine."""

from __future__ import annotations


class SanitizeError(Exception):
    """Base exception for all sanitizer errors.

    Attributes:
        message: Error message
        type: Error classification (e.g. 'type_error', 'depth_error')
    """

    def __init__(self, message: str, type: str = "generic") -> None:
        super().__init__(message)
        self.message = message
        self.type = type


class ConfigurationError(SanitizeError):
    """Raised at setup when an option fails its shape check."""

    def __init__(self, field: str, detail: str | None = None) -> None:
        message = f"Invalid configuration: {field}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, "type_error")
        self.field = field


class TypeMismatchError(SanitizeError):
    """Raised when a mapping/sequence entry point gets the wrong shape."""

    def __init__(self, expected: str, actual: object) -> None:
        super().__init__(f"Input must be {expected}, got {type(actual).__name__}", "type_error")
        self.expected = expected


class DepthExceededError(SanitizeError):
    """Raised when a payload nests deeper than the configured limit."""

    def __init__(self, max_depth: int) -> None:
        super().__init__(f"Payload nesting exceeds maximum depth of {max_depth}", "depth_error")
        self.max_depth = max_depth
