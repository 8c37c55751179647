"""Query/filter layer: stateless filtering and sorting over an aggregated view."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from hostcal.engine.aggregation import AggregatedView
from hostcal.engine.channels import normalize_channel
from hostcal.engine.intervals import DateWindow, OccupancyInterval, PropertyId, SourceKind

SORT_KEYS = ("start_date", "end_date", "guest_name", "price", "status", "channel", "nights", "property")
GRANULARITIES = ("week", "month", "timeline")

CHECK_IN = "check_in"
CHECK_OUT = "check_out"


@dataclass(frozen=True)
class CalendarFilters:
    """Filter and sort parameters. ``None`` means "do not filter on this"."""

    property_ids: frozenset[str] | None = None
    statuses: frozenset[str] | None = None
    channels: frozenset[str] | None = None
    source_kinds: frozenset[str] | None = None
    search: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    date_from: date | None = None
    date_to: date | None = None  # inclusive
    sort_by: str = "start_date"
    descending: bool = False

    def __post_init__(self) -> None:
        if self.sort_by not in SORT_KEYS:
            raise ValueError(f"sort_by must be one of: {', '.join(SORT_KEYS)}")
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")


@dataclass(frozen=True)
class AggregationRequest:
    """Everything needed to build one calendar view, passed explicitly."""

    scope: PropertyId | str
    window: DateWindow
    filters: CalendarFilters = field(default_factory=CalendarFilters)
    granularity: str = "timeline"

    def __post_init__(self) -> None:
        if self.granularity not in GRANULARITIES:
            raise ValueError(f"granularity must be one of: {', '.join(GRANULARITIES)}")


@dataclass(frozen=True)
class Movement:
    """An upcoming check-in or check-out."""

    kind: str
    day: date
    days_from_today: int
    interval: OccupancyInterval


def _matches(interval: OccupancyInterval, filters: CalendarFilters) -> bool:
    if filters.property_ids is not None and str(interval.property_id) not in filters.property_ids:
        return False
    if filters.statuses is not None and interval.status not in filters.statuses:
        return False
    if filters.channels is not None:
        wanted = {normalize_channel(c) for c in filters.channels}
        if normalize_channel(interval.channel) not in wanted:
            return False
    if filters.source_kinds is not None and interval.source_kind.value not in filters.source_kinds:
        return False
    if filters.min_price is not None and (interval.price is None or interval.price < filters.min_price):
        return False
    if filters.max_price is not None and (interval.price is None or interval.price > filters.max_price):
        return False
    if filters.date_from is not None and interval.end_date <= filters.date_from:
        return False
    if filters.date_to is not None and interval.start_date > filters.date_to:
        return False
    if filters.search:
        needle = filters.search.strip().lower()
        haystack = " ".join(
            value
            for value in (interval.guest_name, interval.external_id, interval.source_id, interval.reason)
            if value
        ).lower()
        if needle not in haystack:
            return False
    return True


def _sort_value(interval: OccupancyInterval, sort_by: str):
    if sort_by == "nights":
        return interval.nights
    if sort_by == "property":
        return str(interval.property_id)
    if sort_by == "guest_name":
        return interval.guest_name.lower() if interval.guest_name else None
    return getattr(interval, sort_by)


def apply_filters(
    view: AggregatedView | Iterable[OccupancyInterval],
    filters: CalendarFilters,
) -> list[OccupancyInterval]:
    """Return the matching intervals in the requested order.

    Deterministic: ties on the sort key fall back to the engine's canonical
    order, and missing values (no price, no guest name) always sort last.
    """
    intervals = view.intervals if isinstance(view, AggregatedView) else list(view)
    matched = sorted((i for i in intervals if _matches(i, filters)), key=lambda i: i.sort_key)

    present = [i for i in matched if _sort_value(i, filters.sort_by) is not None]
    missing = [i for i in matched if _sort_value(i, filters.sort_by) is None]
    present.sort(key=lambda i: _sort_value(i, filters.sort_by), reverse=filters.descending)
    return present + missing


def upcoming_movements(
    intervals: Iterable[OccupancyInterval],
    today: date,
    limit: int = 10,
    horizon_days: int | None = None,
) -> list[Movement]:
    """Next check-ins and check-outs from today on, soonest first.

    With ``horizon_days``, movements more than that many days out are dropped.
    """
    movements = []
    for interval in intervals:
        if interval.source_kind is SourceKind.MANUAL_BLOCK or not interval.is_occupying:
            continue
        for kind, day in ((CHECK_IN, interval.start_date), (CHECK_OUT, interval.end_date)):
            offset = (day - today).days
            if offset < 0 or (horizon_days is not None and offset > horizon_days):
                continue
            movements.append(Movement(kind, day, offset, interval))

    # Same-day turnovers list the departure first.
    movements.sort(key=lambda m: (m.day, 0 if m.kind == CHECK_OUT else 1, m.interval.sort_key))
    return movements[:limit]
