"""Error taxonomy for the calendar engine.

Only ``InvalidWindowError`` is meant to propagate: it signals a programming
error at the call site. ``NormalizationError`` is returned as data by the
normalizer, and ``FeedFetchError`` never leaves the feed synchronizer.
"""

from typing import Any


class CalendarEngineError(Exception):
    """Base class for calendar engine errors."""


class InvalidWindowError(CalendarEngineError, ValueError):
    """A date window whose end is not strictly after its start."""


class NormalizationError(CalendarEngineError):
    """A raw record that could not be converted into an occupancy interval."""

    def __init__(self, reason: str, *, source_kind: str, record_id: Any = None) -> None:
        self.reason = reason
        self.source_kind = source_kind
        self.record_id = record_id
        super().__init__(f"{source_kind} {record_id!r}: {reason}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NormalizationError):
            return NotImplemented
        return (self.reason, self.source_kind, self.record_id) == (
            other.reason,
            other.source_kind,
            other.record_id,
        )

    def __hash__(self) -> int:
        return hash((self.reason, self.source_kind, str(self.record_id)))


class FeedFetchError(CalendarEngineError):
    """Network, HTTP, or timeout failure while fetching one calendar feed."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        self.url = url
        super().__init__(message)


class FeedParseError(FeedFetchError):
    """The fetched payload is not a readable calendar document."""
