"""CalendarBlock model — host-created unavailability."""

import uuid
from datetime import date

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostcal.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class CalendarBlock(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Dates a host has closed manually (maintenance, personal use, ...)."""

    __tablename__ = "calendar_blocks"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    block_type: Mapped[str] = mapped_column(String(50), default="unavailable", nullable=False)  # maintenance, personal, unavailable
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    property: Mapped["Property"] = relationship(back_populates="blocks", lazy="noload")  # type: ignore[name-defined]  # noqa: F821

    __table_args__ = (
        Index("ix_calendar_blocks_property_dates", "property_id", "start_date", "end_date"),
        CheckConstraint("end_date > start_date", name="dates"),
    )

    def __repr__(self) -> str:
        return f"<CalendarBlock(id={self.id}, property_id={self.property_id}, type={self.block_type!r})>"
