"""Pydantic v2 request/response schemas for manual calendar blocks."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hostcal.schemas.calendar import IntervalResponse


class BlockCreate(BaseModel):
    """Schema for closing dates on a property."""

    property_id: uuid.UUID
    start_date: date
    end_date: date
    block_type: str = Field("unavailable", pattern="^(maintenance|personal|unavailable)$")
    reason: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_dates(self) -> "BlockCreate":
        """Validate that end_date is strictly after start_date."""
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class BlockResponse(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    start_date: date
    end_date: date
    block_type: str
    reason: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BlockCreatedResponse(BaseModel):
    """The new block plus any stays it overlaps. Overlaps are reported, not rejected."""

    block: BlockResponse
    conflicts: list[IntervalResponse] = []


class BlockListResponse(BaseModel):
    items: list[BlockResponse]
    total: int
