"""Tests for aggregation: dedupe, conflict detection, ordering and statistics."""

from datetime import date
from decimal import Decimal

from hostcal.engine.aggregation import (
    DAY_AVAILABLE,
    DAY_BLOCKED,
    DAY_BOOKED,
    aggregate,
    day_statuses,
    deduplicate,
    detect_conflicts,
    find_conflicts_for,
)
from hostcal.engine.intervals import DateWindow, OccupancyInterval, SourceKind
from hostcal.engine.layout import layout

MARCH = DateWindow.month(2024, 3)
APRIL = DateWindow.month(2024, 4)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _reservation(start, end, *, property_id="P", status="confirmed", channel="direct", **kwargs):
    return OccupancyInterval(
        source_kind=SourceKind.RESERVATION,
        property_id=property_id,
        start_date=start,
        end_date=end,
        status=status,
        channel=channel,
        **kwargs,
    )


def _feed_event(start, end, *, property_id="P", status="confirmed", channel="ota-x", **kwargs):
    return OccupancyInterval(
        source_kind=SourceKind.EXTERNAL_EVENT,
        property_id=property_id,
        start_date=start,
        end_date=end,
        status=status,
        channel=channel,
        **kwargs,
    )


def _block(start, end, *, property_id="P", status="maintenance"):
    return OccupancyInterval(
        source_kind=SourceKind.MANUAL_BLOCK,
        property_id=property_id,
        start_date=start,
        end_date=end,
        status=status,
        channel="manual",
    )


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------


class TestReferenceScenarios:
    def test_reservation_overlapped_by_ota_event(self):
        reservation = _reservation(date(2024, 3, 10), date(2024, 3, 15), price=Decimal("500.00"))
        event = _feed_event(date(2024, 3, 12), date(2024, 3, 14))

        view = aggregate("P", MARCH, [event, reservation])

        assert len(view.conflicts) == 1
        conflict = view.conflicts[0]
        assert {conflict.first, conflict.second} == {reservation, event}
        assert (conflict.overlap_start, conflict.overlap_end) == (date(2024, 3, 12), date(2024, 3, 14))

        rows = {p.interval: p.row for p in layout(view.intervals, MARCH)}
        assert rows[reservation] != rows[event]

        assert view.statistics.booked_nights == 5
        assert view.statistics.occupancy_rate == Decimal("16.13")  # 5 / 31
        assert view.statistics.revenue == Decimal("500.00")

    def test_single_maintenance_block(self):
        view = aggregate("P", APRIL, [_block(date(2024, 4, 1), date(2024, 4, 3))])

        assert view.conflicts == []
        assert view.statistics.booked_nights == 2
        assert view.statistics.occupancy_rate == Decimal("6.67")  # 2 / 30
        assert view.statistics.revenue == Decimal("0.00")


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class TestConflicts:
    def test_cancelled_intervals_never_conflict(self):
        reservation = _reservation(date(2024, 3, 10), date(2024, 3, 15), status="cancelled")
        event = _feed_event(date(2024, 3, 12), date(2024, 3, 14))
        assert detect_conflicts([reservation, event]) == []

    def test_same_source_and_channel_is_not_a_conflict(self):
        a = _feed_event(date(2024, 3, 1), date(2024, 3, 5), source_id="a")
        b = _feed_event(date(2024, 3, 3), date(2024, 3, 8), source_id="b")
        assert detect_conflicts([a, b]) == []

    def test_same_source_different_channel_conflicts(self):
        a = _feed_event(date(2024, 3, 1), date(2024, 3, 5), channel="airbnb")
        b = _feed_event(date(2024, 3, 3), date(2024, 3, 8), channel="booking.com")
        assert len(detect_conflicts([a, b])) == 1

    def test_back_to_back_stays_do_not_conflict(self):
        a = _reservation(date(2024, 3, 1), date(2024, 3, 5))
        b = _feed_event(date(2024, 3, 5), date(2024, 3, 8))
        assert detect_conflicts([a, b]) == []

    def test_different_properties_do_not_conflict(self):
        a = _reservation(date(2024, 3, 1), date(2024, 3, 5), property_id="P")
        b = _feed_event(date(2024, 3, 1), date(2024, 3, 5), property_id="Q")
        assert detect_conflicts([a, b]) == []

    def test_block_over_reservation_conflicts(self):
        a = _reservation(date(2024, 3, 1), date(2024, 3, 5))
        b = _block(date(2024, 3, 4), date(2024, 3, 6))
        [conflict] = detect_conflicts([a, b])
        assert conflict.nights == 1

    def test_every_overlapping_pair_is_reported(self):
        long_stay = _reservation(date(2024, 3, 1), date(2024, 3, 20))
        first = _feed_event(date(2024, 3, 2), date(2024, 3, 4), channel="airbnb")
        second = _feed_event(date(2024, 3, 10), date(2024, 3, 12), channel="vrbo")
        conflicts = detect_conflicts([long_stay, first, second])
        assert len(conflicts) == 2

    def test_find_conflicts_for_candidate(self):
        existing = _reservation(date(2024, 3, 10), date(2024, 3, 15), source_id="b-1")
        other = _block(date(2024, 3, 20), date(2024, 3, 22))
        candidate = _reservation(date(2024, 3, 12), date(2024, 3, 21))

        assert find_conflicts_for(candidate, [existing, other]) == [existing, other]
        assert find_conflicts_for(candidate, [existing, other], exclude_source_id="b-1") == [other]


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


class TestDeduplicate:
    def test_shared_external_id_keeps_reservation(self):
        reservation = _reservation(date(2024, 3, 10), date(2024, 3, 15), external_id="HM123", channel="airbnb")
        echo = _feed_event(date(2024, 3, 10), date(2024, 3, 15), external_id="HM123", channel="airbnb")

        view = aggregate("P", MARCH, [echo, reservation])

        assert view.intervals == [reservation]
        assert view.duplicates_removed == 1
        assert view.conflicts == []

    def test_same_dates_same_channel_is_an_echo(self):
        reservation = _reservation(date(2024, 3, 10), date(2024, 3, 15), channel="airbnb")
        echo = _feed_event(date(2024, 3, 10), date(2024, 3, 15), channel="airbnb", external_id="uid-9")
        survivors, removed = deduplicate([reservation, echo])
        assert survivors == [reservation]
        assert removed == 1

    def test_same_dates_different_channel_is_kept(self):
        reservation = _reservation(date(2024, 3, 10), date(2024, 3, 15), channel="direct")
        event = _feed_event(date(2024, 3, 10), date(2024, 3, 15), channel="airbnb")
        survivors, removed = deduplicate([reservation, event])
        assert removed == 0
        assert len(survivors) == 2

    def test_same_id_on_different_properties_is_kept(self):
        a = _feed_event(date(2024, 3, 1), date(2024, 3, 2), property_id="P", external_id="x")
        b = _feed_event(date(2024, 3, 1), date(2024, 3, 2), property_id="Q", external_id="x")
        assert deduplicate([a, b]) == ([a, b], 0)


# ---------------------------------------------------------------------------
# Ordering, scope and statistics
# ---------------------------------------------------------------------------


class TestAggregate:
    def test_ordering_start_then_source_priority(self):
        block = _block(date(2024, 3, 5), date(2024, 3, 6))
        event = _feed_event(date(2024, 3, 5), date(2024, 3, 7))
        reservation = _reservation(date(2024, 3, 5), date(2024, 3, 9))
        earlier = _block(date(2024, 3, 1), date(2024, 3, 2))

        view = aggregate("P", MARCH, [block, event, reservation, earlier])
        assert view.intervals == [earlier, reservation, event, block]

    def test_intervals_outside_window_are_dropped_but_edges_kept_unclamped(self):
        straddling = _reservation(date(2024, 2, 25), date(2024, 3, 3))
        outside = _reservation(date(2024, 2, 1), date(2024, 2, 5))
        view = aggregate("P", MARCH, [straddling, outside])
        assert view.intervals == [straddling]
        assert view.intervals[0].start_date == date(2024, 2, 25)
        assert view.statistics.booked_nights == 2

    def test_scope_limits_to_one_property(self):
        p = _reservation(date(2024, 3, 1), date(2024, 3, 3), property_id="P")
        q = _reservation(date(2024, 3, 1), date(2024, 3, 3), property_id="Q")
        assert aggregate("Q", MARCH, [p, q]).intervals == [q]

    def test_all_scope_uses_every_allowed_property_as_denominator(self):
        p = _reservation(date(2024, 3, 1), date(2024, 3, 11), property_id="P")
        q = _reservation(date(2024, 3, 1), date(2024, 3, 2), property_id="Q")
        foreign = _reservation(date(2024, 3, 1), date(2024, 3, 31), property_id="X")

        view = aggregate("all", MARCH, [p, q, foreign], property_ids=["P", "Q", "R"])

        assert view.intervals == [p, q]
        assert view.statistics.properties_considered == 3
        assert view.statistics.booked_nights == 11
        assert view.statistics.occupancy_rate == Decimal("11.83")  # 11 / (31 * 3)

    def test_overlapping_sources_are_not_double_counted(self):
        a = _reservation(date(2024, 3, 1), date(2024, 3, 6))
        b = _feed_event(date(2024, 3, 4), date(2024, 3, 9))
        assert aggregate("P", MARCH, [a, b]).statistics.booked_nights == 8

    def test_revenue_counts_confirmed_stays_starting_in_window(self):
        intervals = [
            _reservation(date(2024, 3, 1), date(2024, 3, 3), price=Decimal("100.00")),
            _reservation(date(2024, 3, 5), date(2024, 3, 7), price=Decimal("80.00"), status="pending"),
            _reservation(date(2024, 3, 9), date(2024, 3, 11), price=Decimal("60.00"), status="cancelled"),
            _reservation(date(2024, 2, 27), date(2024, 3, 2), price=Decimal("999.00")),
        ]
        view = aggregate("P", MARCH, intervals)
        assert view.statistics.revenue == Decimal("100.00")

    def test_counts(self):
        intervals = [
            _reservation(date(2024, 3, 1), date(2024, 3, 3)),
            _reservation(date(2024, 3, 5), date(2024, 3, 7), status="cancelled"),
            _feed_event(date(2024, 3, 10), date(2024, 3, 12), limited_detail=True),
            _block(date(2024, 3, 20), date(2024, 3, 21)),
        ]
        stats = aggregate("P", MARCH, intervals).statistics
        assert stats.counts_by_status == {"cancelled": 1, "confirmed": 2, "maintenance": 1}
        assert stats.counts_by_source == {"external_event": 1, "manual_block": 1, "reservation": 2}
        assert stats.limited_detail_count == 1
        assert stats.booked_nights == 5

    def test_empty(self):
        view = aggregate("P", MARCH, [])
        assert view.intervals == []
        assert view.statistics.occupancy_rate == Decimal("0.00")


class TestDayStatuses:
    def test_booked_beats_blocked(self):
        window = DateWindow(date(2024, 3, 1), date(2024, 3, 6))
        intervals = [
            _reservation(date(2024, 3, 1), date(2024, 3, 3)),
            _block(date(2024, 3, 2), date(2024, 3, 4)),
            _feed_event(date(2024, 3, 4), date(2024, 3, 5), limited_detail=True),
        ]
        statuses = day_statuses(intervals, window)
        assert statuses == {
            date(2024, 3, 1): DAY_BOOKED,
            date(2024, 3, 2): DAY_BOOKED,
            date(2024, 3, 3): DAY_BLOCKED,
            date(2024, 3, 4): DAY_BLOCKED,
            date(2024, 3, 5): DAY_AVAILABLE,
        }
