"""SQLAlchemy models for HostCal.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from hostcal.models.booking import Booking
from hostcal.models.calendar_block import CalendarBlock
from hostcal.models.external_event import ExternalEvent
from hostcal.models.feed_source import FeedSource
from hostcal.models.property import Property
from hostcal.models.user import User

__all__ = [
    "Booking",
    "CalendarBlock",
    "ExternalEvent",
    "FeedSource",
    "Property",
    "User",
]
