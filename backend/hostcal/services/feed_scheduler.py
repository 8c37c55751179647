"""Background feed refresh: re-syncs feeds whose last sync is older than the refresh interval.

Started from the application lifespan when ``FEED_AUTO_REFRESH_ENABLED`` is
set; a single asyncio task per process.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hostcal.config import settings
from hostcal.database import async_session_factory, session_scope
from hostcal.engine.sync import FeedSynchronizer, SyncResult
from hostcal.services.calendar_service import refresh_feeds
from hostcal.services.calendar_store import CalendarStore

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 60
STARTUP_DELAY_SECONDS = 10

_refresh_task: asyncio.Task | None = None


async def refresh_due_feeds(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    synchronizer: FeedSynchronizer | None = None,
    now: datetime | None = None,
) -> list[SyncResult]:
    """Sync every active feed that is due and commit the outcome."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=settings.feed_refresh_interval_minutes)

    async with session_scope(session_factory) as session:
        store = CalendarStore(session)
        feeds = await store.list_due_feed_sources(cutoff)
        if not feeds:
            logger.debug("No feeds due for refresh")
            return []
        logger.info("Refreshing %d due feeds", len(feeds))
        return await refresh_feeds(store, feeds, synchronizer)


async def feed_refresh_loop() -> None:
    """Run ``refresh_due_feeds`` forever; one failed cycle never stops the loop."""
    logger.info("Feed refresh loop started (interval %d min)", settings.feed_refresh_interval_minutes)
    await asyncio.sleep(STARTUP_DELAY_SECONDS)

    while True:
        try:
            await refresh_due_feeds()
        except asyncio.CancelledError:
            logger.info("Feed refresh loop cancelled")
            raise
        except Exception:
            logger.exception("Feed refresh cycle failed")

        await asyncio.sleep(CHECK_INTERVAL_SECONDS)


def start_feed_refresh() -> None:
    """Start the background refresh task if enabled and not already running."""
    global _refresh_task

    if not settings.feed_auto_refresh_enabled:
        logger.info("Feed auto-refresh disabled")
        return

    if _refresh_task is not None and not _refresh_task.done():
        logger.warning("Feed refresh task already running")
        return

    _refresh_task = asyncio.create_task(feed_refresh_loop())


async def stop_feed_refresh() -> None:
    """Cancel the background refresh task and wait for it to finish."""
    global _refresh_task

    if _refresh_task is None or _refresh_task.done():
        return

    _refresh_task.cancel()
    try:
        await _refresh_task
    except asyncio.CancelledError:
        logger.info("Feed refresh task stopped")
    _refresh_task = None
