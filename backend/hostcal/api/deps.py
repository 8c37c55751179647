"""Shared API dependencies — single import point for all routers.

Re-exports database session and authentication dependencies and provides
the calendar store and feed synchronizer, so that router modules can import
everything they need from one place::

    from hostcal.api.deps import get_calendar_store, get_active_host
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hostcal.auth.dependencies import get_active_host, get_current_host
from hostcal.database import get_db
from hostcal.engine.sync import FeedSynchronizer
from hostcal.services.calendar_store import CalendarStore


async def get_calendar_store(db: AsyncSession = Depends(get_db)) -> CalendarStore:
    return CalendarStore(db)


def get_feed_synchronizer() -> FeedSynchronizer:
    """Synchronizer used by refresh endpoints. Tests override this dependency."""
    return FeedSynchronizer()


__all__ = [
    "get_db",
    "get_current_host",
    "get_active_host",
    "get_calendar_store",
    "get_feed_synchronizer",
]
