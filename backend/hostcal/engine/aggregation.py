"""Aggregation engine: one conflict-aware timeline per property and window.

Pure and synchronous: it only sees intervals that were already normalized,
so the only failure mode is a malformed window (``InvalidWindowError``),
raised by ``DateWindow`` itself.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from hostcal.engine.intervals import (
    ALL_PROPERTIES,
    CONFIRMED,
    DateWindow,
    OccupancyInterval,
    PropertyId,
    SourceKind,
    intersects_window,
    occupied_days,
    overlaps,
)

logger = logging.getLogger(__name__)

DAY_BOOKED = "booked"
DAY_BLOCKED = "blocked"
DAY_AVAILABLE = "available"


@dataclass(frozen=True)
class Conflict:
    """Two occupying intervals from different origins sharing at least one night."""

    first: OccupancyInterval
    second: OccupancyInterval

    @property
    def property_id(self) -> PropertyId:
        return self.first.property_id

    @property
    def overlap_start(self) -> date:
        return max(self.first.start_date, self.second.start_date)

    @property
    def overlap_end(self) -> date:
        return min(self.first.end_date, self.second.end_date)

    @property
    def nights(self) -> int:
        return (self.overlap_end - self.overlap_start).days


@dataclass
class OccupancyStatistics:
    """Derived figures for an aggregated view."""

    days_in_window: int
    properties_considered: int
    booked_nights: int
    occupancy_rate: Decimal  # percentage 0.00–100.00
    revenue: Decimal
    counts_by_status: dict[str, int] = field(default_factory=dict)
    counts_by_source: dict[str, int] = field(default_factory=dict)
    limited_detail_count: int = 0


@dataclass
class AggregatedView:
    """The engine's output for a property (or all properties) and a date window."""

    scope: PropertyId | str
    window: DateWindow
    intervals: list[OccupancyInterval]
    conflicts: list[Conflict]
    statistics: OccupancyStatistics
    duplicates_removed: int = 0


def aggregate(
    scope: PropertyId | str,
    window: DateWindow,
    intervals: Iterable[OccupancyInterval],
    *,
    property_ids: Iterable[PropertyId] | None = None,
) -> AggregatedView:
    """Merge intervals into a single view for ``scope`` over ``window``.

    Args:
        scope: A property id, or ``"all"`` for every property in ``property_ids``.
        window: The requested date window.
        intervals: Normalized intervals from every source.
        property_ids: Properties the caller may see. Also the denominator of
            the occupancy rate for ``"all"``; defaults to the properties
            present in ``intervals``.
    """
    allowed = {str(p) for p in property_ids} if property_ids is not None else None
    in_scope = [
        interval
        for interval in intervals
        if _in_scope(interval, scope, allowed) and intersects_window(interval, window)
    ]

    unique, removed = deduplicate(in_scope)
    ordered = sorted(unique, key=lambda i: i.sort_key)
    conflicts = detect_conflicts(ordered)

    if scope != ALL_PROPERTIES:
        properties_considered = 1
    elif allowed is not None:
        properties_considered = max(len(allowed), 1)
    else:
        properties_considered = max(len({str(i.property_id) for i in ordered}), 1)

    statistics = compute_statistics(ordered, window, properties_considered)
    if conflicts:
        logger.info("Detected %d calendar conflicts for scope %s", len(conflicts), scope)

    return AggregatedView(
        scope=scope,
        window=window,
        intervals=ordered,
        conflicts=conflicts,
        statistics=statistics,
        duplicates_removed=removed,
    )


def _in_scope(interval: OccupancyInterval, scope: PropertyId | str, allowed: set[str] | None) -> bool:
    pid = str(interval.property_id)
    if allowed is not None and pid not in allowed:
        return False
    return scope == ALL_PROPERTIES or pid == str(scope)


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


def deduplicate(intervals: list[OccupancyInterval]) -> tuple[list[OccupancyInterval], int]:
    """Collapse the same stay reported by more than one source.

    Two passes, both per property:

    1. Records sharing an external identifier are one stay; the most
       authoritative source (reservation > external event > block) wins.
    2. An external event left unmatched whose dates equal a native
       reservation's dates and whose channel equals that reservation's
       channel is the reservation echoed back by its own OTA.

    Returns the surviving intervals (input order preserved) and the number
    removed.
    """
    by_identifier: dict[tuple[str, str], OccupancyInterval] = {}
    for interval in intervals:
        if interval.external_id is None:
            continue
        key = (str(interval.property_id), interval.external_id)
        current = by_identifier.get(key)
        if current is None or interval.source_kind.priority < current.source_kind.priority:
            by_identifier[key] = interval

    survivors = [
        interval
        for interval in intervals
        if interval.external_id is None
        or by_identifier[(str(interval.property_id), interval.external_id)] is interval
    ]

    reservation_stays = {
        (str(i.property_id), i.start_date, i.end_date, i.channel)
        for i in survivors
        if i.source_kind is SourceKind.RESERVATION
    }
    result = [
        interval
        for interval in survivors
        if not (
            interval.source_kind is SourceKind.EXTERNAL_EVENT
            and (str(interval.property_id), interval.start_date, interval.end_date, interval.channel)
            in reservation_stays
        )
    ]
    return result, len(intervals) - len(result)


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


def _different_origin(a: OccupancyInterval, b: OccupancyInterval) -> bool:
    return a.source_kind is not b.source_kind or (a.channel or "") != (b.channel or "")


def detect_conflicts(intervals: Iterable[OccupancyInterval]) -> list[Conflict]:
    """Flag every pair of occupying intervals on the same property that overlap
    and come from a different source kind or channel.

    Sweep over start dates per property, so the cost is proportional to the
    number of intervals plus the number of overlapping pairs.
    """
    by_property: dict[str, list[OccupancyInterval]] = defaultdict(list)
    for interval in intervals:
        if interval.is_occupying:
            by_property[str(interval.property_id)].append(interval)

    conflicts: list[Conflict] = []
    for items in by_property.values():
        items.sort(key=lambda i: i.sort_key)
        active: list[OccupancyInterval] = []
        for current in items:
            active = [a for a in active if a.end_date > current.start_date]
            for other in active:
                if _different_origin(other, current):
                    conflicts.append(Conflict(first=other, second=current))
            active.append(current)
    return conflicts


def find_conflicts_for(
    candidate: OccupancyInterval,
    intervals: Iterable[OccupancyInterval],
    *,
    exclude_source_id: str | None = None,
) -> list[OccupancyInterval]:
    """Occupying intervals on the candidate's property that it would overlap."""
    return sorted(
        (
            interval
            for interval in intervals
            if interval.is_occupying
            and str(interval.property_id) == str(candidate.property_id)
            and (exclude_source_id is None or interval.source_id != exclude_source_id)
            and overlaps(candidate, interval)
        ),
        key=lambda i: i.sort_key,
    )


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def _percentage(part: int, whole: int) -> Decimal:
    if whole <= 0:
        return Decimal("0.00")
    rate = Decimal(part * 100) / Decimal(whole)
    return rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_statistics(
    intervals: list[OccupancyInterval],
    window: DateWindow,
    properties_considered: int = 1,
) -> OccupancyStatistics:
    """Occupancy, revenue and counts over already-deduplicated intervals.

    Booked nights are the union of occupied nights per property, so a stay
    reported by two overlapping sources is counted once.
    """
    booked_by_property: dict[str, set[date]] = defaultdict(set)
    revenue = Decimal("0.00")
    for interval in intervals:
        if interval.is_occupying:
            booked_by_property[str(interval.property_id)] |= occupied_days(interval, window)
        if interval.status == CONFIRMED and interval.price is not None and window.contains(interval.start_date):
            revenue += interval.price

    booked_nights = sum(len(days) for days in booked_by_property.values())
    return OccupancyStatistics(
        days_in_window=window.days,
        properties_considered=properties_considered,
        booked_nights=booked_nights,
        occupancy_rate=_percentage(booked_nights, window.days * properties_considered),
        revenue=revenue,
        counts_by_status=dict(sorted(Counter(i.status for i in intervals).items())),
        counts_by_source=dict(sorted(Counter(i.source_kind.value for i in intervals).items())),
        limited_detail_count=sum(1 for i in intervals if i.limited_detail),
    )


def day_statuses(
    intervals: Iterable[OccupancyInterval],
    window: DateWindow,
) -> dict[date, str]:
    """Per-day ``booked`` / ``blocked`` / ``available`` for a single-property strip.

    Guest stays win over blocks. Availability-only feed entries count as
    blocks since they carry no stay details.
    """
    booked: set[date] = set()
    blocked: set[date] = set()
    for interval in intervals:
        if not interval.is_occupying:
            continue
        days = occupied_days(interval, window)
        if interval.source_kind is SourceKind.MANUAL_BLOCK or interval.limited_detail:
            blocked |= days
        else:
            booked |= days

    statuses = {}
    for day in window.iter_days():
        if day in booked:
            statuses[day] = DAY_BOOKED
        elif day in blocked:
            statuses[day] = DAY_BLOCKED
        else:
            statuses[day] = DAY_AVAILABLE
    return statuses
