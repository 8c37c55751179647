"""Pydantic v2 response schemas for calendar endpoints."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from hostcal.engine.aggregation import AggregatedView, Conflict, OccupancyStatistics
from hostcal.engine.channels import Channel, channel_display_name
from hostcal.engine.intervals import OccupancyInterval
from hostcal.engine.layout import GridLayout, PositionedInterval
from hostcal.engine.query import Movement


class IntervalResponse(BaseModel):
    """One occupancy interval as rendered by the calendar."""

    source_kind: str
    property_id: str
    start_date: date
    end_date: date
    nights: int
    status: str
    source_id: str | None = None
    guest_name: str | None = None
    channel: str | None = None
    channel_name: str | None = None
    price: Decimal | None = None
    currency: str | None = None
    external_id: str | None = None
    feed_source_id: str | None = None
    reason: str | None = None
    guests_count: int | None = None
    limited_detail: bool = False

    @classmethod
    def from_interval(cls, interval: OccupancyInterval) -> "IntervalResponse":
        return cls(
            source_kind=interval.source_kind.value,
            property_id=str(interval.property_id),
            start_date=interval.start_date,
            end_date=interval.end_date,
            nights=interval.nights,
            status=interval.status,
            source_id=interval.source_id,
            guest_name=interval.guest_name,
            channel=interval.channel,
            channel_name=channel_display_name(interval.channel) if interval.channel else None,
            price=interval.price,
            currency=interval.currency,
            external_id=interval.external_id,
            feed_source_id=interval.feed_source_id,
            reason=interval.reason,
            guests_count=interval.guests_count,
            limited_detail=interval.limited_detail,
        )


class ConflictResponse(BaseModel):
    property_id: str
    overlap_start: date
    overlap_end: date
    nights: int
    first: IntervalResponse
    second: IntervalResponse

    @classmethod
    def from_conflict(cls, conflict: Conflict) -> "ConflictResponse":
        return cls(
            property_id=str(conflict.property_id),
            overlap_start=conflict.overlap_start,
            overlap_end=conflict.overlap_end,
            nights=conflict.nights,
            first=IntervalResponse.from_interval(conflict.first),
            second=IntervalResponse.from_interval(conflict.second),
        )


class StatisticsResponse(BaseModel):
    days_in_window: int
    properties_considered: int
    booked_nights: int
    occupancy_rate: Decimal  # percentage 0.00–100.00
    revenue: Decimal
    counts_by_status: dict[str, int]
    counts_by_source: dict[str, int]
    limited_detail_count: int

    @classmethod
    def from_statistics(cls, stats: OccupancyStatistics) -> "StatisticsResponse":
        return cls(
            days_in_window=stats.days_in_window,
            properties_considered=stats.properties_considered,
            booked_nights=stats.booked_nights,
            occupancy_rate=stats.occupancy_rate,
            revenue=stats.revenue,
            counts_by_status=stats.counts_by_status,
            counts_by_source=stats.counts_by_source,
            limited_detail_count=stats.limited_detail_count,
        )


class PositionedIntervalResponse(BaseModel):
    interval: IntervalResponse
    visible_start: date
    visible_end: date
    column_start: int
    column_span: int
    row: int
    left_pct: Decimal
    width_pct: Decimal
    top_offset: int
    continues_before: bool
    continues_after: bool

    @classmethod
    def from_positioned(cls, item: PositionedInterval) -> "PositionedIntervalResponse":
        return cls(
            interval=IntervalResponse.from_interval(item.interval),
            visible_start=item.visible_start,
            visible_end=item.visible_end,
            column_start=item.column_start,
            column_span=item.column_span,
            row=item.row,
            left_pct=item.left_pct,
            width_pct=item.width_pct,
            top_offset=item.top_offset,
            continues_before=item.continues_before,
            continues_after=item.continues_after,
        )


class GridResponse(BaseModel):
    """One rendered grid row: a week of a month view, or the whole timeline."""

    start: date
    end: date
    columns: int
    row_count: int
    items: list[PositionedIntervalResponse]

    @classmethod
    def from_layout(cls, grid: GridLayout) -> "GridResponse":
        return cls(
            start=grid.window.start,
            end=grid.window.end,
            columns=grid.columns,
            row_count=grid.row_count,
            items=[PositionedIntervalResponse.from_positioned(item) for item in grid.items],
        )


class CalendarResponse(BaseModel):
    """Aggregated calendar for a scope and window, with grid placement."""

    scope: str
    window_start: date
    window_end: date
    granularity: str
    intervals: list[IntervalResponse]
    conflicts: list[ConflictResponse]
    statistics: StatisticsResponse
    duplicates_removed: int = 0
    grids: list[GridResponse] = []
    day_statuses: dict[date, str] | None = None

    @classmethod
    def build(
        cls,
        view: AggregatedView,
        intervals: list[OccupancyInterval],
        granularity: str,
        grids: list[GridLayout],
        day_statuses: dict[date, str] | None = None,
    ) -> "CalendarResponse":
        return cls(
            scope=str(view.scope),
            window_start=view.window.start,
            window_end=view.window.end,
            granularity=granularity,
            intervals=[IntervalResponse.from_interval(i) for i in intervals],
            conflicts=[ConflictResponse.from_conflict(c) for c in view.conflicts],
            statistics=StatisticsResponse.from_statistics(view.statistics),
            duplicates_removed=view.duplicates_removed,
            grids=[GridResponse.from_layout(g) for g in grids],
            day_statuses=day_statuses,
        )


class AvailabilityResponse(BaseModel):
    """Whether a proposed stay fits, and which intervals it would collide with."""

    property_id: str
    start_date: date
    end_date: date
    nights: int
    available: bool
    conflicts: list[IntervalResponse]


class MovementResponse(BaseModel):
    kind: str  # check_in, check_out
    day: date
    days_from_today: int
    interval: IntervalResponse

    @classmethod
    def from_movement(cls, movement: Movement) -> "MovementResponse":
        return cls(
            kind=movement.kind,
            day=movement.day,
            days_from_today=movement.days_from_today,
            interval=IntervalResponse.from_interval(movement.interval),
        )


class UpcomingResponse(BaseModel):
    today: date
    items: list[MovementResponse]


class ChannelResponse(BaseModel):
    key: str
    display_name: str
    color: str

    @classmethod
    def from_channel(cls, channel: Channel) -> "ChannelResponse":
        return cls(key=channel.key, display_name=channel.display_name, color=channel.color)
