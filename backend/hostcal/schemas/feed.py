"""Pydantic v2 request/response schemas for external calendar feeds."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hostcal.engine.channels import normalize_channel

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class FeedSourceCreate(BaseModel):
    """Schema for subscribing a property to an iCalendar feed."""

    property_id: uuid.UUID
    url: str = Field(..., min_length=1, max_length=2048, pattern=r"^(https?|webcal)://")
    channel: str = Field("other", max_length=50)
    is_active: bool = True

    @field_validator("url")
    @classmethod
    def _webcal_to_https(cls, value: str) -> str:
        """OTAs hand out ``webcal://`` links; fetch them over https."""
        if value.startswith("webcal://"):
            return "https://" + value[len("webcal://") :]
        return value

    @field_validator("channel")
    @classmethod
    def _canonical_channel(cls, value: str) -> str:
        return normalize_channel(value)


class FeedSourceUpdate(BaseModel):
    """Partial update. All fields optional."""

    url: str | None = Field(None, min_length=1, max_length=2048, pattern=r"^(https?|webcal)://")
    channel: str | None = Field(None, max_length=50)
    is_active: bool | None = None

    @field_validator("url")
    @classmethod
    def _webcal_to_https(cls, value: str | None) -> str | None:
        if value is not None and value.startswith("webcal://"):
            return "https://" + value[len("webcal://") :]
        return value

    @field_validator("channel")
    @classmethod
    def _canonical_channel(cls, value: str | None) -> str | None:
        return normalize_channel(value) if value is not None else None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class FeedSourceResponse(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    url: str
    channel: str
    is_active: bool
    last_sync_at: datetime | None = None
    last_sync_status: str
    last_sync_error: str | None = None
    last_event_count: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FeedSourceListResponse(BaseModel):
    items: list[FeedSourceResponse]
    total: int


class SyncResultResponse(BaseModel):
    """Outcome of refreshing one feed."""

    feed_id: str
    property_id: str
    channel: str
    ok: bool
    skipped: bool = False
    error: str | None = None
    event_count: int = 0
    skipped_records: int = 0
    duration_ms: int = 0


class RefreshResponse(BaseModel):
    results: list[SyncResultResponse]
    succeeded: int
    failed: int
    skipped: int
