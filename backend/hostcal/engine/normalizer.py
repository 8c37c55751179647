"""Event normalizer: one canonical ``OccupancyInterval`` per heterogeneous record.

Raw records arrive as ORM rows (``Booking``, ``CalendarBlock``,
``ExternalEvent``), parsed ``RawFeedEvent`` objects, or plain dicts. This is
the only place that probes record shapes; everything downstream matches on
``source_kind``.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from hostcal.engine.channels import normalize_channel
from hostcal.engine.errors import NormalizationError
from hostcal.engine.ics import is_availability_only
from hostcal.engine.intervals import (
    BLOCK_STATUSES,
    CANCELLED,
    CONFIRMED,
    PENDING,
    OccupancyInterval,
    PropertyId,
    SourceKind,
)

logger = logging.getLogger(__name__)

_RESERVATION_STATUSES = {
    "confirmed": CONFIRMED,
    "checked_in": CONFIRMED,
    "checked_out": CONFIRMED,
    "pending": PENDING,
    "tentative": PENDING,
    "cancelled": CANCELLED,
    "canceled": CANCELLED,
}

_FEED_STATUSES = {
    "CANCELLED": CANCELLED,
    "TENTATIVE": PENDING,
    "PENDING": PENDING,
}

_MISSING = object()


def normalize(
    raw: Any,
    source_kind: SourceKind | str,
    property_id: PropertyId | None = None,
    *,
    channel: str | None = None,
    feed_source_id: Any = None,
) -> OccupancyInterval | NormalizationError:
    """Convert one raw record into an ``OccupancyInterval``.

    Never raises for bad data: an invalid record comes back as a
    ``NormalizationError`` and the caller decides whether to skip it.

    Args:
        raw: The source record (ORM object, dataclass, or mapping).
        source_kind: Which kind of record ``raw`` is.
        property_id: Owning property. Falls back to ``raw.property_id``.
        channel: Channel label to tag the interval with (feed events).
        feed_source_id: Feed that produced the record (feed events).
    """
    try:
        kind = SourceKind(source_kind)
    except ValueError:
        return NormalizationError(f"unknown source kind {source_kind!r}", source_kind=str(source_kind))

    record_id = _str_or_none(_get(raw, "id", "uid"))
    if property_id is None:
        property_id = _get(raw, "property_id")
    if property_id is None:
        return NormalizationError("missing property_id", source_kind=kind.value, record_id=record_id)

    try:
        if kind is SourceKind.RESERVATION:
            return _normalize_reservation(raw, property_id, record_id)
        if kind is SourceKind.EXTERNAL_EVENT:
            return _normalize_feed_event(raw, property_id, record_id, channel, feed_source_id)
        return _normalize_block(raw, property_id, record_id)
    except (TypeError, ValueError, InvalidOperation) as exc:
        return NormalizationError(str(exc), source_kind=kind.value, record_id=record_id)


def normalize_many(
    records: Iterable[Any],
    source_kind: SourceKind | str,
    property_id: PropertyId | None = None,
    *,
    channel: str | None = None,
    feed_source_id: Any = None,
) -> tuple[list[OccupancyInterval], list[NormalizationError]]:
    """Normalize a batch, skipping (and logging) records that fail."""
    intervals: list[OccupancyInterval] = []
    errors: list[NormalizationError] = []
    for raw in records:
        result = normalize(
            raw,
            source_kind,
            property_id,
            channel=channel,
            feed_source_id=feed_source_id,
        )
        if isinstance(result, NormalizationError):
            logger.warning("Skipping record that could not be normalized: %s", result)
            errors.append(result)
        else:
            intervals.append(result)
    return intervals, errors


# ---------------------------------------------------------------------------
# Per-kind mapping
# ---------------------------------------------------------------------------


def _normalize_reservation(raw: Any, property_id: PropertyId, record_id: str | None) -> OccupancyInterval | NormalizationError:
    start = coerce_date(_get(raw, "check_in", "start_date"))
    end = coerce_date(_get(raw, "check_out", "end_date"))
    error = _check_range(start, end, SourceKind.RESERVATION, record_id)
    if error is not None:
        return error

    raw_status = str(_get(raw, "status") or PENDING).strip().lower()
    status = _RESERVATION_STATUSES.get(raw_status)
    if status is None:
        return NormalizationError(
            f"unknown reservation status {raw_status!r}",
            source_kind=SourceKind.RESERVATION.value,
            record_id=record_id,
        )

    return OccupancyInterval(
        source_kind=SourceKind.RESERVATION,
        property_id=property_id,
        start_date=start,
        end_date=end,
        status=status,
        source_id=record_id,
        guest_name=_str_or_none(_get(raw, "guest_name")),
        channel=normalize_channel(_get(raw, "channel") or "direct"),
        price=_decimal_or_none(_get(raw, "total_price", "price")),
        currency=_str_or_none(_get(raw, "currency")),
        external_id=_str_or_none(_get(raw, "external_id")),
        guests_count=_get(raw, "num_guests", "guests_count"),
    )


def _normalize_feed_event(
    raw: Any,
    property_id: PropertyId,
    record_id: str | None,
    channel: str | None,
    feed_source_id: Any,
) -> OccupancyInterval | NormalizationError:
    start = coerce_date(_get(raw, "start_date", "start", "dtstart"))
    end = coerce_date(_get(raw, "end_date", "end", "dtend"))
    if start is not None and end is None:
        # DTEND is optional in RFC 5545; fall back to DURATION, else one night.
        end = start + timedelta(days=_get(raw, "duration_days") or 1)
    error = _check_range(start, end, SourceKind.EXTERNAL_EVENT, record_id)
    if error is not None:
        return error

    summary = _str_or_none(_get(raw, "summary", "title"))
    raw_status = str(_get(raw, "status") or "").strip().upper()
    feed_id = _str_or_none(feed_source_id if feed_source_id is not None else _get(raw, "feed_source_id"))
    uid = _str_or_none(_get(raw, "uid", "external_id"))

    return OccupancyInterval(
        source_kind=SourceKind.EXTERNAL_EVENT,
        property_id=property_id,
        start_date=start,
        end_date=end,
        status=_FEED_STATUSES.get(raw_status, CONFIRMED),
        source_id=f"{feed_id}:{uid}" if feed_id and uid else (uid or record_id),
        guest_name=_str_or_none(_get(raw, "guest_name")),
        channel=normalize_channel(channel or _get(raw, "channel")),
        external_id=uid,
        feed_source_id=feed_id,
        reason=summary,
        guests_count=_get(raw, "guests_count"),
        limited_detail=is_availability_only(summary),
    )


def _normalize_block(raw: Any, property_id: PropertyId, record_id: str | None) -> OccupancyInterval | NormalizationError:
    start = coerce_date(_get(raw, "start_date"))
    end = coerce_date(_get(raw, "end_date"))
    error = _check_range(start, end, SourceKind.MANUAL_BLOCK, record_id)
    if error is not None:
        return error

    block_type = str(_get(raw, "block_type") or "unavailable").strip().lower()
    return OccupancyInterval(
        source_kind=SourceKind.MANUAL_BLOCK,
        property_id=property_id,
        start_date=start,
        end_date=end,
        status=block_type if block_type in BLOCK_STATUSES else "unavailable",
        source_id=record_id,
        channel="manual",
        reason=_str_or_none(_get(raw, "reason")),
    )


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _get(raw: Any, *names: str) -> Any:
    """First non-None value among ``names`` on a mapping or an object."""
    for name in names:
        if isinstance(raw, Mapping):
            value = raw.get(name, _MISSING)
        else:
            value = getattr(raw, name, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return None


def _check_range(start: date | None, end: date | None, kind: SourceKind, record_id: str | None) -> NormalizationError | None:
    if start is None or end is None:
        return NormalizationError("missing start or end date", source_kind=kind.value, record_id=record_id)
    if end <= start:
        return NormalizationError(
            f"end date {end} is not after start date {start}",
            source_kind=kind.value,
            record_id=record_id,
        )
    return None


def coerce_date(value: Any) -> date | None:
    """Accept ``date``, ``datetime``, ISO ``YYYY-MM-DD[THH:MM...]`` or ``YYYYMMDD[THHMMSS]``.

    Raises:
        ValueError: If ``value`` is a string that is not a recognizable date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if len(text) >= 8 and text[:8].isdigit():
            return date(int(text[:4]), int(text[4:6]), int(text[6:8]))
        return date.fromisoformat(text[:10])
    raise TypeError(f"cannot interpret {type(value).__name__} as a date")


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))
