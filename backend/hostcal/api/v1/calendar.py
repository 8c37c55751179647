"""Calendar API router — aggregated multi-source calendar, availability and movements.

Ownership rule: every query is limited to properties owned by the current
user. A ``property_id`` the user does not own is reported as 404.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hostcal.api.deps import get_calendar_store, get_active_host
from hostcal.config import settings
from hostcal.engine.channels import CHANNELS
from hostcal.engine.intervals import ALL_PROPERTIES, DateWindow
from hostcal.engine.query import SORT_KEYS, AggregationRequest, CalendarFilters
from hostcal.models.user import User
from hostcal.schemas.calendar import (
    AvailabilityResponse,
    CalendarResponse,
    ChannelResponse,
    IntervalResponse,
    MovementResponse,
    UpcomingResponse,
)
from hostcal.services import calendar_service
from hostcal.services.calendar_store import CalendarStore

router = APIRouter(prefix="/api/v1/calendar", tags=["calendar"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _owned_property_ids(
    store: CalendarStore,
    host: User,
    property_id: uuid.UUID | None,
) -> list[uuid.UUID]:
    """All of the host's property ids, or just ``property_id`` if they own it."""
    owned = [p.id for p in await store.list_properties_for_host(host.id)]
    if property_id is None:
        return owned
    if property_id not in owned:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Property not found",
        )
    return [property_id]


def _resolve_window(start: date | None, end: date | None, granularity: str) -> DateWindow:
    """Fill in a missing start/end from the granularity and validate the size.

    An inverted range raises ``InvalidWindowError``, answered with 400 by the
    app-level handler.
    """
    anchor = start or date.today()
    if end is not None:
        window = DateWindow(anchor, end)
    elif granularity == "month":
        window = DateWindow.month(anchor.year, anchor.month)
    elif granularity == "week":
        window = DateWindow.week_of(anchor)
    else:
        window = DateWindow(anchor, anchor + timedelta(days=settings.calendar_default_window_days))

    if window.days > settings.calendar_max_window_days:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Window may span at most {settings.calendar_max_window_days} days",
        )
    return window


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=CalendarResponse, summary="Aggregated calendar for a window")
async def get_calendar(
    property_id: uuid.UUID | None = Query(None, description="Single property; omit for all properties"),
    start: date | None = Query(None, description="First day of the window (default: today)"),
    end: date | None = Query(None, description="Day after the last day of the window"),
    granularity: str = Query("timeline", pattern="^(week|month|timeline)$"),
    statuses: list[str] | None = Query(None, alias="status", description="Keep only these statuses"),
    channels: list[str] | None = Query(None, alias="channel", description="Keep only these channels"),
    source_kinds: list[str] | None = Query(
        None,
        alias="source_kind",
        description="reservation, external_event and/or manual_block",
    ),
    search: str | None = Query(None, max_length=200, description="Guest name, reference or reason"),
    min_price: Decimal | None = Query(None, ge=0),
    max_price: Decimal | None = Query(None, ge=0),
    sort_by: str = Query("start_date", pattern=f"^({'|'.join(SORT_KEYS)})$"),
    descending: bool = Query(False),
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> CalendarResponse:
    """Merge reservations, synced feed events and manual blocks into one view.

    The response carries conflicts and statistics for the whole scope, the
    filtered interval list, and grid placement for the requested
    granularity (one grid per week row for ``week``/``month``).
    """
    window = _resolve_window(start, end, granularity)
    property_ids = await _owned_property_ids(store, host, property_id)

    try:
        filters = CalendarFilters(
            statuses=frozenset(statuses) if statuses else None,
            channels=frozenset(channels) if channels else None,
            source_kinds=frozenset(source_kinds) if source_kinds else None,
            search=search,
            min_price=min_price,
            max_price=max_price,
            sort_by=sort_by,
            descending=descending,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None

    request = AggregationRequest(
        scope=property_id if property_id is not None else ALL_PROPERTIES,
        window=window,
        filters=filters,
        granularity=granularity,
    )
    page = await calendar_service.build_view(store, request, property_ids)
    return CalendarResponse.build(
        page.view,
        page.intervals,
        granularity,
        page.grids,
        page.day_statuses,
    )


@router.get("/availability", response_model=AvailabilityResponse, summary="Check a proposed stay")
async def get_availability(
    property_id: uuid.UUID = Query(..., description="Property to check"),
    start_date: date = Query(..., description="Check-in day"),
    end_date: date = Query(..., description="Check-out day"),
    exclude_source_id: str | None = Query(None, description="Ignore this record, e.g. the booking being edited"),
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> AvailabilityResponse:
    """Report every interval the stay would overlap. Overlaps are not enforced."""
    await _owned_property_ids(store, host, property_id)
    conflicts = await calendar_service.check_availability(
        store,
        property_id,
        start_date,
        end_date,
        exclude_source_id=exclude_source_id,
    )

    return AvailabilityResponse(
        property_id=str(property_id),
        start_date=start_date,
        end_date=end_date,
        nights=(end_date - start_date).days,
        available=not conflicts,
        conflicts=[IntervalResponse.from_interval(i) for i in conflicts],
    )


@router.get("/upcoming", response_model=UpcomingResponse, summary="Next check-ins and check-outs")
async def get_upcoming(
    property_id: uuid.UUID | None = Query(None, description="Filter by property"),
    days: int = Query(14, ge=1, le=366, description="How far ahead to look"),
    limit: int = Query(10, ge=1, le=100),
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> UpcomingResponse:
    property_ids = await _owned_property_ids(store, host, property_id)
    today = date.today()
    movements = await calendar_service.upcoming(store, property_ids, today, days=days, limit=limit)
    return UpcomingResponse(today=today, items=[MovementResponse.from_movement(m) for m in movements])


@router.get("/channels", response_model=list[ChannelResponse], summary="Channel catalog for legends")
async def list_channels() -> list[ChannelResponse]:
    return [ChannelResponse.from_channel(channel) for channel in CHANNELS.values()]
