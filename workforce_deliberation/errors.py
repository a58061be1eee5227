from __future__ import annotations


class DeliberationError(Exception):
    """Base class for deliberation failures."""


class DeliberationRequestError(DeliberationError, ValueError):
    """Raised before any I/O when a deliberation request is malformed."""


class CompletionError(DeliberationError):
    """Raised when the completion service returns no usable completion."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PositionParseError(DeliberationError):
    """Raised when a completion body does not satisfy the position schema."""
