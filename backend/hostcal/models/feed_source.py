"""FeedSource model — external iCalendar subscriptions."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostcal.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class FeedSource(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One external calendar feed attached to a property."""

    __tablename__ = "feed_sources"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    channel: Mapped[str] = mapped_column(String(50), default="other", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sync_status: Mapped[str] = mapped_column(String(20), default="never", nullable=False)  # never, ok, error
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_event_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    property: Mapped["Property"] = relationship(back_populates="feed_sources", lazy="noload")  # type: ignore[name-defined]  # noqa: F821
    events: Mapped[list["ExternalEvent"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="feed_source", lazy="noload", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<FeedSource(id={self.id}, channel={self.channel!r}, status={self.last_sync_status!r})>"
