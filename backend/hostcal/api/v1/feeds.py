"""Feed sources API router — manage external iCalendar feeds and trigger refreshes.

Ownership rule: feeds are reachable only through properties owned by the
current user.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hostcal.api.deps import get_calendar_store, get_active_host, get_feed_synchronizer
from hostcal.engine.sync import FeedSynchronizer, SyncResult
from hostcal.models.feed_source import FeedSource
from hostcal.models.user import User
from hostcal.schemas.common import MessageResponse
from hostcal.schemas.feed import (
    FeedSourceCreate,
    FeedSourceListResponse,
    FeedSourceResponse,
    FeedSourceUpdate,
    RefreshResponse,
    SyncResultResponse,
)
from hostcal.services import calendar_service
from hostcal.services.calendar_store import CalendarStore

router = APIRouter(prefix="/api/v1/feeds", tags=["feeds"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_feed_with_ownership(feed_id: uuid.UUID, host: User, store: CalendarStore) -> FeedSource:
    feed = await store.get_feed_source(feed_id, host.id)
    if feed is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Feed not found",
        )
    return feed


async def _require_property(store: CalendarStore, property_id: uuid.UUID, host: User) -> None:
    if await store.get_property(property_id, host.id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Property not found",
        )


def _to_response(result: SyncResult) -> SyncResultResponse:
    return SyncResultResponse(
        feed_id=result.feed_id,
        property_id=str(result.property_id),
        channel=result.channel,
        ok=result.ok,
        skipped=result.skipped,
        error=result.error,
        event_count=len(result.intervals),
        skipped_records=len(result.normalization_errors),
        duration_ms=result.duration_ms,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=FeedSourceListResponse, summary="List feeds")
async def list_feeds(
    property_id: uuid.UUID | None = Query(None, description="Filter by property"),
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> dict:
    if property_id is not None:
        await _require_property(store, property_id, host)
        property_ids = [property_id]
    else:
        property_ids = [p.id for p in await store.list_properties_for_host(host.id)]
    feeds = await store.list_feed_sources(property_ids)
    return {"items": feeds, "total": len(feeds)}


@router.post(
    "",
    response_model=FeedSourceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Subscribe a property to a feed",
)
async def create_feed(
    body: FeedSourceCreate,
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> FeedSource:
    """Register a feed. It is fetched on the next refresh, not immediately."""
    await _require_property(store, body.property_id, host)
    return await store.add_feed_source(body.property_id, body.url, body.channel, body.is_active)


@router.patch("/{feed_id}", response_model=FeedSourceResponse, summary="Update a feed")
async def update_feed(
    feed_id: uuid.UUID,
    body: FeedSourceUpdate,
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> FeedSource:
    feed = await _get_feed_with_ownership(feed_id, host, store)

    update_data = body.model_dump(exclude_unset=True, exclude_none=True)
    relabelled = "channel" in update_data and update_data["channel"] != feed.channel
    for field, value in update_data.items():
        setattr(feed, field, value)

    await store.save(feed)
    if relabelled:
        # Stored events keep the channel of the sync that wrote them until relabelled.
        await store.relabel_feed_events(feed)
    return feed


@router.delete("/{feed_id}", response_model=MessageResponse, summary="Delete a feed")
async def delete_feed(
    feed_id: uuid.UUID,
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> dict:
    """Delete a feed together with its stored events."""
    feed = await _get_feed_with_ownership(feed_id, host, store)
    await store.delete(feed)
    return {"message": "Feed deleted"}


@router.post("/refresh", response_model=RefreshResponse, summary="Refresh all feeds")
async def refresh_all_feeds(
    property_id: uuid.UUID | None = Query(None, description="Only this property's feeds"),
    store: CalendarStore = Depends(get_calendar_store),
    synchronizer: FeedSynchronizer = Depends(get_feed_synchronizer),
    host: User = Depends(get_active_host),
) -> RefreshResponse:
    """Fetch every feed of the user's properties now.

    Always 200: per-feed failures are reported in ``results`` and leave the
    feed's previous events in place.
    """
    if property_id is not None:
        await _require_property(store, property_id, host)
        property_ids = [property_id]
    else:
        property_ids = [p.id for p in await store.list_properties_for_host(host.id)]

    feeds = await store.list_feed_sources(property_ids)
    results = await calendar_service.refresh_feeds(store, feeds, synchronizer)
    return RefreshResponse(
        results=[_to_response(r) for r in results],
        succeeded=sum(1 for r in results if r.ok),
        failed=sum(1 for r in results if r.error is not None),
        skipped=sum(1 for r in results if r.skipped),
    )


@router.post("/{feed_id}/refresh", response_model=SyncResultResponse, summary="Refresh one feed")
async def refresh_feed(
    feed_id: uuid.UUID,
    store: CalendarStore = Depends(get_calendar_store),
    synchronizer: FeedSynchronizer = Depends(get_feed_synchronizer),
    host: User = Depends(get_active_host),
) -> SyncResultResponse:
    feed = await _get_feed_with_ownership(feed_id, host, store)
    results = await calendar_service.refresh_feeds(store, [feed], synchronizer)
    return _to_response(results[0])
