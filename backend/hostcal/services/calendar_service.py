"""Calendar service: wires the record store to the calendar engine.

Reads go store → normalizer → aggregation → query → layout. Refreshes go
synchronizer → store, one feed at a time so a failed feed keeps its last
good snapshot.
"""

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

from hostcal.engine.aggregation import AggregatedView, aggregate, day_statuses, find_conflicts_for
from hostcal.engine.errors import NormalizationError
from hostcal.engine.intervals import ALL_PROPERTIES, DateWindow, OccupancyInterval, SourceKind
from hostcal.engine.layout import GridLayout, layout_grid, layout_months, week_windows
from hostcal.engine.normalizer import normalize_many
from hostcal.engine.query import AggregationRequest, Movement, apply_filters, upcoming_movements
from hostcal.engine.sync import FeedSynchronizer, SyncResult, record_sync_outcome
from hostcal.models.feed_source import FeedSource
from hostcal.services.calendar_store import CalendarStore

logger = logging.getLogger(__name__)


@dataclass
class CalendarPage:
    """Everything the calendar endpoint renders for one request."""

    view: AggregatedView
    intervals: list[OccupancyInterval]  # filtered and sorted
    grids: list[GridLayout]
    day_statuses: dict[date, str] | None = None
    normalization_errors: list[NormalizationError] = field(default_factory=list)


async def load_intervals(
    store: CalendarStore,
    property_ids: Sequence[uuid.UUID],
    window: DateWindow,
) -> tuple[list[OccupancyInterval], list[NormalizationError]]:
    """Normalize every reservation, block and stored feed event touching ``window``."""
    reservations = await store.list_reservations(property_ids, window)
    blocks = await store.list_blocks(property_ids, window)
    events = await store.list_external_events(property_ids, window)

    intervals: list[OccupancyInterval] = []
    errors: list[NormalizationError] = []
    for records, kind in (
        (reservations, SourceKind.RESERVATION),
        (events, SourceKind.EXTERNAL_EVENT),
        (blocks, SourceKind.MANUAL_BLOCK),
    ):
        normalized, failed = normalize_many(records, kind)
        intervals.extend(normalized)
        errors.extend(failed)
    return intervals, errors


def _grids(intervals: list[OccupancyInterval], window: DateWindow, granularity: str) -> list[GridLayout]:
    if granularity == "month":
        return layout_months(intervals, window)
    if granularity == "week":
        return [layout_grid(intervals, week) for week in week_windows(window)]
    return [layout_grid(intervals, window)]


async def build_view(
    store: CalendarStore,
    request: AggregationRequest,
    property_ids: Sequence[uuid.UUID],
) -> CalendarPage:
    """Aggregate, filter and lay out the calendar for ``request``.

    ``property_ids`` are the properties the caller owns; a single-property
    scope must be one of them (the router checks this).

    Conflicts and statistics describe the whole scope; filters only narrow
    the listed and rendered intervals.
    """
    if request.scope == ALL_PROPERTIES:
        load_ids = list(property_ids)
    else:
        load_ids = [uuid.UUID(str(request.scope))]

    intervals, errors = await load_intervals(store, load_ids, request.window)
    view = aggregate(request.scope, request.window, intervals, property_ids=load_ids)
    filtered = apply_filters(view, request.filters)

    statuses = None
    if request.scope != ALL_PROPERTIES:
        statuses = day_statuses(view.intervals, request.window)

    return CalendarPage(
        view=view,
        intervals=filtered,
        grids=_grids(filtered, request.window, request.granularity),
        day_statuses=statuses,
        normalization_errors=errors,
    )


async def check_availability(
    store: CalendarStore,
    property_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    exclude_source_id: str | None = None,
) -> list[OccupancyInterval]:
    """Intervals a proposed stay ``[start_date, end_date)`` would collide with.

    Raises:
        InvalidWindowError: If ``end_date`` is not after ``start_date``.
    """
    window = DateWindow(start_date, end_date)
    candidate = OccupancyInterval(
        source_kind=SourceKind.RESERVATION,
        property_id=property_id,
        start_date=start_date,
        end_date=end_date,
        status="pending",
    )
    intervals, _ = await load_intervals(store, [property_id], window)
    view = aggregate(property_id, window, intervals)
    return find_conflicts_for(candidate, view.intervals, exclude_source_id=exclude_source_id)


async def upcoming(
    store: CalendarStore,
    property_ids: Sequence[uuid.UUID],
    today: date,
    *,
    days: int,
    limit: int = 10,
) -> list[Movement]:
    """Check-ins and check-outs in the next ``days`` days."""
    # A stay checking out today no longer occupies today; start the read window a day early.
    window = DateWindow(today - timedelta(days=1), today + timedelta(days=days + 1))
    intervals, _ = await load_intervals(store, property_ids, window)
    view = aggregate(ALL_PROPERTIES, window, intervals, property_ids=property_ids)
    return upcoming_movements(view.intervals, today, limit=limit, horizon_days=days)


async def refresh_feeds(
    store: CalendarStore,
    feeds: Sequence[FeedSource],
    synchronizer: FeedSynchronizer | None = None,
) -> list[SyncResult]:
    """Sync ``feeds`` and persist each outcome.

    A successful result replaces that feed's stored events; a failed one
    only updates its sync status, so the previous snapshot keeps showing.
    """
    synchronizer = synchronizer or FeedSynchronizer()
    results = await synchronizer.sync_feeds(feeds)

    for feed, result in zip(feeds, results):
        if result.ok:
            await store.replace_feed_events(feed, result.intervals)
        record_sync_outcome(feed, result)
    await store.flush()

    logger.info(
        "Refreshed %d feeds: %d ok, %d failed, %d skipped",
        len(results),
        sum(1 for r in results if r.ok),
        sum(1 for r in results if r.error is not None),
        sum(1 for r in results if r.skipped),
    )
    return results
