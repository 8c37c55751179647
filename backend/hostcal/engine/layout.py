"""Grid positioning: place intervals on week/month grids without visual collisions.

Rows are assigned by greedy interval-graph coloring: intervals are processed
by start date and each one takes the lowest row freed by an interval that
already ended. Processing in start order makes the row count equal to the
largest number of intervals sharing one night, which is the minimum
possible.
"""

import calendar
import heapq
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from hostcal.config import settings
from hostcal.engine.intervals import (
    DateWindow,
    OccupancyInterval,
    clamp_to_window,
    day_offset,
    nights,
)

_PCT_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class PositionedInterval:
    """An interval with its placement on one grid window."""

    interval: OccupancyInterval
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


@dataclass
class GridLayout:
    window: DateWindow
    items: list[PositionedInterval]
    row_count: int

    @property
    def columns(self) -> int:
        return self.window.days


def _pct(columns_before: int, total_columns: int) -> Decimal:
    return (Decimal(columns_before * 100) / Decimal(total_columns)).quantize(_PCT_QUANTUM, rounding=ROUND_HALF_UP)


def layout_grid(
    intervals: Iterable[OccupancyInterval],
    grid_window: DateWindow,
    *,
    row_height: int | None = None,
) -> GridLayout:
    """Position every interval that is visible inside ``grid_window``."""
    row_height = row_height or settings.layout_row_height
    columns = grid_window.days

    visible = []
    for interval in intervals:
        clamped = clamp_to_window(interval, grid_window.start, grid_window.end)
        if clamped is not None:
            visible.append((interval, clamped))
    visible.sort(key=lambda pair: (pair[1].start_date, pair[0].sort_key))

    active: list[tuple[date, int]] = []  # (visible end, row)
    free_rows: list[int] = []
    row_count = 0
    items: list[PositionedInterval] = []

    for original, clamped in visible:
        while active and active[0][0] <= clamped.start_date:
            _, released = heapq.heappop(active)
            heapq.heappush(free_rows, released)
        if free_rows:
            row = heapq.heappop(free_rows)
        else:
            row = row_count
            row_count += 1
        heapq.heappush(active, (clamped.end_date, row))

        column_start = day_offset(clamped.start_date, grid_window.start)
        column_span = nights(clamped)
        left = _pct(column_start, columns)
        right = _pct(column_start + column_span, columns)
        items.append(
            PositionedInterval(
                interval=original,
                visible_start=clamped.start_date,
                visible_end=clamped.end_date,
                column_start=column_start,
                column_span=column_span,
                row=row,
                left_pct=left,
                width_pct=right - left,
                top_offset=row * row_height,
                continues_before=original.start_date < grid_window.start,
                continues_after=original.end_date > grid_window.end,
            )
        )

    return GridLayout(window=grid_window, items=items, row_count=row_count)


def layout(
    intervals: Iterable[OccupancyInterval],
    grid_window: DateWindow,
    *,
    row_height: int | None = None,
) -> list[PositionedInterval]:
    """Positioned intervals for one grid window, in placement order."""
    return layout_grid(intervals, grid_window, row_height=row_height).items


def month_weeks(year: int, month: int) -> list[list[date]]:
    """Monday-first weeks covering a month, padded with neighbouring days."""
    return calendar.Calendar(firstweekday=calendar.MONDAY).monthdatescalendar(year, month)


def week_windows(window: DateWindow) -> list[DateWindow]:
    """Monday-first week windows covering ``window``."""
    weeks = []
    start = DateWindow.week_of(window.start).start
    while start < window.end:
        weeks.append(DateWindow(start, start + timedelta(days=7)))
        start += timedelta(days=7)
    return weeks


def layout_month(
    intervals: Iterable[OccupancyInterval],
    year: int,
    month: int,
    *,
    row_height: int | None = None,
) -> list[GridLayout]:
    """One layout per week row of a month grid; rows restart in every week."""
    intervals = list(intervals)
    return [
        layout_grid(intervals, DateWindow(week[0], week[-1] + timedelta(days=1)), row_height=row_height)
        for week in month_weeks(year, month)
    ]


def layout_months(
    intervals: Iterable[OccupancyInterval],
    window: DateWindow,
    *,
    row_height: int | None = None,
) -> list[GridLayout]:
    """Week-row layouts for every calendar month ``window`` touches.

    A week shared by two consecutive months is laid out once.
    """
    intervals = list(intervals)
    last_day = window.end - timedelta(days=1)
    year, month = window.start.year, window.start.month
    weeks: list[DateWindow] = []
    while (year, month) <= (last_day.year, last_day.month):
        for week in month_weeks(year, month):
            if not weeks or week[0] >= weeks[-1].end:
                weeks.append(DateWindow(week[0], week[-1] + timedelta(days=1)))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return [layout_grid(intervals, week, row_height=row_height) for week in weeks]


def max_overlap(intervals: Iterable[OccupancyInterval], window: DateWindow) -> int:
    """Largest number of intervals sharing a single night inside ``window``."""
    events: list[tuple[date, int]] = []
    for interval in intervals:
        clamped = clamp_to_window(interval, window.start, window.end)
        if clamped is not None:
            events.append((clamped.start_date, 1))
            events.append((clamped.end_date, -1))
    # Ends sort before starts on the same day: checkout and check-in do not collide.
    events.sort(key=lambda e: (e[0], e[1]))
    best = current = 0
    for _, delta in events:
        current += delta
        best = max(best, current)
    return best
