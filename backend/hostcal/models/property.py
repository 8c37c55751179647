"""Property model — rental units whose calendars are aggregated."""

import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostcal.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Property(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A rental unit owned by a host."""

    __tablename__ = "properties"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(255), default=None)
    address: Mapped[str | None] = mapped_column(String(512), default=None)
    status: Mapped[str] = mapped_column(String(50), server_default="active")  # active, inactive

    # Relationships
    owner: Mapped["User"] = relationship(back_populates="properties", lazy="noload")  # type: ignore[name-defined]  # noqa: F821
    bookings: Mapped[list["Booking"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="property", lazy="noload", cascade="all, delete-orphan", passive_deletes=True
    )
    blocks: Mapped[list["CalendarBlock"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="property", lazy="noload", cascade="all, delete-orphan", passive_deletes=True
    )
    feed_sources: Mapped[list["FeedSource"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="property", lazy="noload", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name={self.name!r})>"
