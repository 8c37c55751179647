"""Calendar record store: the queries the calendar engine runs against PostgreSQL.

Every read takes the set of property ids the caller is allowed to see;
ownership is resolved once, by ``list_properties_for_host`` / ``get_property``.
"""

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import date, datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hostcal.engine.intervals import DateWindow, OccupancyInterval
from hostcal.models.booking import Booking
from hostcal.models.calendar_block import CalendarBlock
from hostcal.models.external_event import ExternalEvent
from hostcal.models.feed_source import FeedSource
from hostcal.models.property import Property

logger = logging.getLogger(__name__)


class CalendarStore:
    """Thin async repository over one ``AsyncSession``.

    The store never commits; the session owner (``get_db`` or the refresh
    loop) does.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    async def list_properties_for_host(self, host_id: uuid.UUID) -> list[Property]:
        result = await self.db.execute(
            select(Property).where(Property.owner_id == host_id).order_by(Property.name, Property.id)
        )
        return list(result.scalars().all())

    async def get_property(self, property_id: uuid.UUID, host_id: uuid.UUID) -> Property | None:
        """Return the property only if ``host_id`` owns it."""
        result = await self.db.execute(
            select(Property).where(Property.id == property_id, Property.owner_id == host_id)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Interval sources
    # ------------------------------------------------------------------

    async def list_reservations(self, property_ids: Sequence[uuid.UUID], window: DateWindow) -> list[Booking]:
        """Bookings on ``property_ids`` that share at least one night with ``window``."""
        if not property_ids:
            return []
        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.property_id.in_(property_ids),
                Booking.check_in < window.end,
                Booking.check_out > window.start,
            )
            .order_by(Booking.check_in, Booking.id)
        )
        return list(result.scalars().all())

    async def list_blocks(
        self,
        property_ids: Sequence[uuid.UUID],
        window: DateWindow | None = None,
    ) -> list[CalendarBlock]:
        if not property_ids:
            return []
        query = select(CalendarBlock).where(CalendarBlock.property_id.in_(property_ids))
        if window is not None:
            query = query.where(CalendarBlock.start_date < window.end, CalendarBlock.end_date > window.start)
        result = await self.db.execute(query.order_by(CalendarBlock.start_date, CalendarBlock.id))
        return list(result.scalars().all())

    async def list_external_events(
        self,
        property_ids: Sequence[uuid.UUID],
        window: DateWindow,
    ) -> list[ExternalEvent]:
        """Stored feed events in the window, from active feeds only."""
        if not property_ids:
            return []
        result = await self.db.execute(
            select(ExternalEvent)
            .join(FeedSource, ExternalEvent.feed_source_id == FeedSource.id)
            .where(
                ExternalEvent.property_id.in_(property_ids),
                FeedSource.is_active.is_(True),
                ExternalEvent.start_date < window.end,
                ExternalEvent.end_date > window.start,
            )
            .order_by(ExternalEvent.start_date, ExternalEvent.id)
        )
        return list(result.scalars().all())

    async def replace_feed_events(self, feed: FeedSource, intervals: Iterable[OccupancyInterval]) -> int:
        """Swap the stored snapshot of ``feed`` for ``intervals``.

        Keyed by feed id, so applying the same sync result twice leaves the
        same rows behind.
        """
        await self.db.execute(delete(ExternalEvent).where(ExternalEvent.feed_source_id == feed.id))
        rows = [
            ExternalEvent(
                feed_source_id=feed.id,
                property_id=feed.property_id,
                uid=interval.external_id,
                summary=interval.reason,
                start_date=interval.start_date,
                end_date=interval.end_date,
                status=interval.status,
                guest_name=interval.guest_name,
                guests_count=interval.guests_count,
                channel=interval.channel or feed.channel,
            )
            for interval in intervals
        ]
        self.db.add_all(rows)
        await self.db.flush()
        logger.debug("Stored %d events for feed %s", len(rows), feed.id)
        return len(rows)

    async def relabel_feed_events(self, feed: FeedSource) -> int:
        """Copy the feed's current channel onto its stored events."""
        result = await self.db.execute(
            update(ExternalEvent).where(ExternalEvent.feed_source_id == feed.id).values(channel=feed.channel)
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Feed sources
    # ------------------------------------------------------------------

    async def list_feed_sources(
        self,
        property_ids: Sequence[uuid.UUID],
        *,
        active_only: bool = False,
    ) -> list[FeedSource]:
        if not property_ids:
            return []
        query = select(FeedSource).where(FeedSource.property_id.in_(property_ids))
        if active_only:
            query = query.where(FeedSource.is_active.is_(True))
        result = await self.db.execute(query.order_by(FeedSource.created_at, FeedSource.id))
        return list(result.scalars().all())

    async def list_due_feed_sources(self, synced_before: datetime) -> list[FeedSource]:
        """Active feeds across all hosts never synced, or last synced before ``synced_before``."""
        result = await self.db.execute(
            select(FeedSource)
            .where(
                FeedSource.is_active.is_(True),
                or_(FeedSource.last_sync_at.is_(None), FeedSource.last_sync_at < synced_before),
            )
            .order_by(FeedSource.last_sync_at.asc().nulls_first(), FeedSource.id)
        )
        return list(result.scalars().all())

    async def get_feed_source(self, feed_id: uuid.UUID, host_id: uuid.UUID) -> FeedSource | None:
        result = await self.db.execute(
            select(FeedSource)
            .join(Property, FeedSource.property_id == Property.id)
            .where(FeedSource.id == feed_id, Property.owner_id == host_id)
        )
        return result.scalar_one_or_none()

    async def add_feed_source(self, property_id: uuid.UUID, url: str, channel: str, is_active: bool = True) -> FeedSource:
        feed = FeedSource(property_id=property_id, url=url, channel=channel, is_active=is_active)
        self.db.add(feed)
        await self.db.flush()
        await self.db.refresh(feed)
        return feed

    # ------------------------------------------------------------------
    # Manual blocks
    # ------------------------------------------------------------------

    async def get_block(self, block_id: uuid.UUID, host_id: uuid.UUID) -> CalendarBlock | None:
        result = await self.db.execute(
            select(CalendarBlock)
            .join(Property, CalendarBlock.property_id == Property.id)
            .where(CalendarBlock.id == block_id, Property.owner_id == host_id)
        )
        return result.scalar_one_or_none()

    async def add_block(
        self,
        property_id: uuid.UUID,
        start_date: date,
        end_date: date,
        block_type: str,
        reason: str | None = None,
    ) -> CalendarBlock:
        block = CalendarBlock(
            property_id=property_id,
            start_date=start_date,
            end_date=end_date,
            block_type=block_type,
            reason=reason,
        )
        self.db.add(block)
        await self.db.flush()
        await self.db.refresh(block)
        return block

    async def delete(self, record: CalendarBlock | FeedSource) -> None:
        await self.db.delete(record)
        await self.db.flush()

    async def save(self, record: CalendarBlock | FeedSource) -> None:
        """Flush pending changes on ``record`` and reload server-side defaults."""
        await self.db.flush()
        await self.db.refresh(record)

    async def flush(self) -> None:
        await self.db.flush()
