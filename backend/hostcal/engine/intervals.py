"""Occupancy intervals and the pure date-range helpers built around them.

All ranges are half-open ``[start, end)`` in whole days: the end date is the
checkout day, which is not an occupied night. A checkout and a check-in on
the same day therefore never overlap.
"""

import calendar
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Protocol

from hostcal.engine.errors import InvalidWindowError

PropertyId = uuid.UUID | str

ALL_PROPERTIES = "all"


class SourceKind(str, Enum):
    """Where an occupancy interval originated."""

    RESERVATION = "reservation"
    EXTERNAL_EVENT = "external_event"
    MANUAL_BLOCK = "manual_block"

    @property
    def priority(self) -> int:
        """Lower sorts first: the most authoritative record renders on top."""
        return _SOURCE_PRIORITY[self]


_SOURCE_PRIORITY = {
    SourceKind.RESERVATION: 0,
    SourceKind.EXTERNAL_EVENT: 1,
    SourceKind.MANUAL_BLOCK: 2,
}

# Statuses
CONFIRMED = "confirmed"
PENDING = "pending"
CANCELLED = "cancelled"
BLOCK_STATUSES = frozenset({"maintenance", "personal", "unavailable"})
BOOKING_STATUSES = frozenset({CONFIRMED, PENDING, CANCELLED})


class DateRange(Protocol):
    start_date: date
    end_date: date


@dataclass(frozen=True)
class DateWindow:
    """A half-open range of calendar days ``[start, end)``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidWindowError(f"window end {self.end} must be after start {self.start}")

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def iter_days(self) -> Iterator[date]:
        day = self.start
        while day < self.end:
            yield day
            day += timedelta(days=1)

    @classmethod
    def month(cls, year: int, month: int) -> "DateWindow":
        """The window covering one calendar month."""
        last_day = calendar.monthrange(year, month)[1]
        return cls(date(year, month, 1), date(year, month, last_day) + timedelta(days=1))

    @classmethod
    def week_of(cls, day: date) -> "DateWindow":
        """The Monday-to-Sunday week containing ``day``."""
        monday = day - timedelta(days=day.weekday())
        return cls(monday, monday + timedelta(days=7))


@dataclass(frozen=True)
class OccupancyInterval:
    """A normalized record of a property being unavailable for a date range.

    Produced only by the normalizer, so ``start_date < end_date`` holds for
    every instance that reaches the aggregation engine.
    """

    source_kind: SourceKind
    property_id: PropertyId
    start_date: date
    end_date: date
    status: str
    source_id: str | None = None
    guest_name: str | None = None
    channel: str | None = None
    price: Decimal | None = None
    currency: str | None = None
    external_id: str | None = None
    feed_source_id: str | None = None
    reason: str | None = None
    guests_count: int | None = None
    limited_detail: bool = False

    @property
    def nights(self) -> int:
        return nights(self)

    @property
    def is_occupying(self) -> bool:
        """Everything except a cancelled booking keeps the property unavailable."""
        return self.status != CANCELLED

    @property
    def sort_key(self) -> tuple:
        return (
            self.start_date,
            self.source_kind.priority,
            self.end_date,
            str(self.property_id),
            self.source_id or "",
        )


def overlaps(a: DateRange, b: DateRange) -> bool:
    """True iff the two half-open ranges share at least one night."""
    return a.start_date < b.end_date and b.start_date < a.end_date


def nights(interval: DateRange) -> int:
    return (interval.end_date - interval.start_date).days


def day_offset(day: date, window_start: date) -> int:
    """Days since ``window_start``; negative when ``day`` precedes the window."""
    return (day - window_start).days


def clamp_to_window(
    interval: OccupancyInterval,
    window_start: date,
    window_end: date,
) -> OccupancyInterval | None:
    """Return the part of ``interval`` visible inside the window, or None if disjoint."""
    if window_end <= window_start:
        raise InvalidWindowError(f"window end {window_end} must be after start {window_start}")
    start = max(interval.start_date, window_start)
    end = min(interval.end_date, window_end)
    if start >= end:
        return None
    if start == interval.start_date and end == interval.end_date:
        return interval
    return replace(interval, start_date=start, end_date=end)


def intersects_window(interval: DateRange, window: DateWindow) -> bool:
    return interval.start_date < window.end and window.start < interval.end_date


def occupied_days(interval: DateRange, window: DateWindow) -> set[date]:
    """Nights of ``interval`` that fall inside ``window``."""
    start = max(interval.start_date, window.start)
    end = min(interval.end_date, window.end)
    days: set[date] = set()
    day = start
    while day < end:
        days.add(day)
        day += timedelta(days=1)
    return days
