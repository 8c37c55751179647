"""ExternalEvent model — the last successful snapshot of a feed."""

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostcal.database import Base, UUIDPrimaryKeyMixin


class ExternalEvent(UUIDPrimaryKeyMixin, Base):
    """One event parsed from a feed. Replaced wholesale on every successful sync."""

    __tablename__ = "external_events"

    feed_source_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("feed_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    uid: Mapped[str | None] = mapped_column(String(512), nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="confirmed", nullable=False)
    guest_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guests_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    channel: Mapped[str] = mapped_column(String(50), nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    feed_source: Mapped["FeedSource"] = relationship(back_populates="events", lazy="noload")  # type: ignore[name-defined]  # noqa: F821

    __table_args__ = (Index("ix_external_events_property_dates", "property_id", "start_date", "end_date"),)

    def __repr__(self) -> str:
        return f"<ExternalEvent(id={self.id}, feed_source_id={self.feed_source_id}, uid={self.uid!r})>"
