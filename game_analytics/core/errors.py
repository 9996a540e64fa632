from __future__ import annotations

from typing import Any


class AnalyticsError(Exception):
    """Base class for errors raised by the analytics engine."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidParameterError(AnalyticsError):
    """A request parameter violates a constraint. Raised before any query runs."""

    def __init__(self, constraint: str, message: str, details: dict[str, Any] | None = None) -> None:
        self.constraint = constraint
        super().__init__(message, details)


class UpstreamQueryError(AnalyticsError):
    """The event store failed or returned a row the engine cannot interpret."""
