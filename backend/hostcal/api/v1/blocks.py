"""Manual blocks API router — close and reopen dates on a property."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hostcal.api.deps import get_calendar_store, get_active_host
from hostcal.models.user import User
from hostcal.schemas.block import BlockCreate, BlockCreatedResponse, BlockListResponse, BlockResponse
from hostcal.schemas.calendar import IntervalResponse
from hostcal.schemas.common import MessageResponse
from hostcal.services import calendar_service
from hostcal.services.calendar_store import CalendarStore

router = APIRouter(prefix="/api/v1/blocks", tags=["blocks"])


@router.get("", response_model=BlockListResponse, summary="List manual blocks")
async def list_blocks(
    property_id: uuid.UUID | None = Query(None, description="Filter by property"),
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> dict:
    owned = [p.id for p in await store.list_properties_for_host(host.id)]
    if property_id is not None:
        if property_id not in owned:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
        owned = [property_id]
    blocks = await store.list_blocks(owned)
    return {"items": blocks, "total": len(blocks)}


@router.post(
    "",
    response_model=BlockCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Block dates on a property",
)
async def create_block(
    body: BlockCreate,
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> BlockCreatedResponse:
    """Create a block and report the stays it overlaps.

    Overlapping an existing stay is allowed; the overlap then shows up as a
    conflict in the calendar.
    """
    if await store.get_property(body.property_id, host.id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    overlapping = await calendar_service.check_availability(store, body.property_id, body.start_date, body.end_date)
    block = await store.add_block(body.property_id, body.start_date, body.end_date, body.block_type, body.reason)
    return BlockCreatedResponse(
        block=BlockResponse.model_validate(block),
        conflicts=[IntervalResponse.from_interval(i) for i in overlapping],
    )


@router.delete("/{block_id}", response_model=MessageResponse, summary="Delete a manual block")
async def delete_block(
    block_id: uuid.UUID,
    store: CalendarStore = Depends(get_calendar_store),
    host: User = Depends(get_active_host),
) -> dict:
    block = await store.get_block(block_id, host.id)
    if block is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Block not found")
    await store.delete(block)
    return {"message": "Block deleted"}
