"""iCalendar feed parsing: turns an OTA calendar export into raw feed events.

OTA exports vary a lot: Airbnb publishes "Reserved" / "Not available"
entries, Booking.com uses "CLOSED - Not available", channel managers put the
guest in ``ATTENDEE;CN=...`` or in the DESCRIPTION. Everything here is
best-effort extraction; only the dates are required downstream.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from icalendar import Calendar

from hostcal.engine.channels import detect_channel
from hostcal.engine.errors import FeedParseError

logger = logging.getLogger(__name__)

_PLACEHOLDER_WORDS = frozenset(
    {"not", "available", "unavailable", "blocked", "block", "closed", "reserved", "busy", "occupied"}
)
_CHANNEL_WORDS = frozenset({"airbnb", "booking", "com", "vrbo", "expedia", "smoobu", "agoda", "ical"})

_GUEST_LINE = re.compile(r"(?:guest(?: name)?|ospite|name|nome)\s*[:=]\s*([^\n]+)", re.IGNORECASE)
_FROM_SUMMARY = re.compile(
    r"(?:airbnb|booking\.com|vrbo|smoobu|expedia)\s*[-:]\s*([A-Za-zÀ-ÖØ-öø-ÿ'. \-]+)",
    re.IGNORECASE,
)
_NAME_WITH_COUNT = re.compile(r"^(.+?)\s*\((\d+)\)\s*$")
_AIRBNB_CONFIRMED = re.compile(r"reservation\s+confirmed\s*[–-]\s*(.+)", re.IGNORECASE)
_PAX = re.compile(r"(?:guests?|ospiti|pax|persons?|people)\s*[:=]\s*(\d+)", re.IGNORECASE)
_ADULTS = re.compile(r"adults?\s*[:=]\s*(\d+)", re.IGNORECASE)
_CHILDREN = re.compile(r"(?:children|child|bambini)\s*[:=]\s*(\d+)", re.IGNORECASE)

_MAX_GUESTS = 50


@dataclass
class RawFeedEvent:
    """One VEVENT as read from a feed, before normalization."""

    uid: str | None
    start: date | None
    end: date | None
    summary: str | None = None
    description: str | None = None
    location: str | None = None
    status: str | None = None
    duration_days: int | None = None
    attendees: list[str] = field(default_factory=list)
    guest_name: str | None = None
    guests_count: int | None = None
    channel: str = "other"


def parse_calendar(payload: str | bytes) -> list[RawFeedEvent]:
    """Parse an iCalendar document into raw events.

    Events without a DTSTART, or whose properties cannot be read, are
    dropped with a log line; they never fail the whole document.

    Raises:
        FeedParseError: If the payload is not an iCalendar document.
    """
    text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
    if "BEGIN:VCALENDAR" not in text.upper():
        raise FeedParseError("payload is not an iCalendar document")

    try:
        cal = Calendar.from_ical(text)
    except ValueError as exc:
        raise FeedParseError(f"malformed iCalendar document: {exc}") from exc

    events: list[RawFeedEvent] = []
    for component in cal.walk("VEVENT"):
        try:
            event = _read_event(component)
        except (ValueError, AttributeError, TypeError) as exc:
            # icalendar keeps unparseable values as broken properties that raise on access.
            logger.warning("Skipping unreadable VEVENT (uid=%s): %s", _text(component.get("uid")), exc)
            continue
        if event.start is None:
            logger.debug("Dropping VEVENT without DTSTART (uid=%s)", event.uid)
            continue
        events.append(event)
    return events


def _read_event(component) -> RawFeedEvent:
    summary = _text(component.get("summary"))
    description = _text(component.get("description"))
    location = _text(component.get("location"))
    status = _text(component.get("status"))
    attendees = _attendee_names(component.get("attendee")) + _attendee_names(component.get("organizer"))

    duration_days = None
    duration = component.get("duration")
    if duration is not None and isinstance(duration.dt, timedelta):
        duration_days = duration_to_days(duration.dt)

    event = RawFeedEvent(
        uid=_text(component.get("uid")),
        start=_to_date(component.get("dtstart")),
        end=_to_date(component.get("dtend")),
        summary=summary,
        description=description,
        location=location,
        status=status.upper() if status else None,
        duration_days=duration_days,
        attendees=attendees,
    )
    event.channel = detect_channel(summary, description, location)
    event.guest_name = extract_guest_name(summary, description, attendees)
    event.guests_count = extract_guest_count(summary, description)
    return event


def _text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_date(prop) -> date | None:
    if prop is None:
        return None
    value = prop.dt
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def _attendee_names(prop) -> list[str]:
    if prop is None:
        return []
    props = prop if isinstance(prop, list) else [prop]
    names = []
    for item in props:
        cn = getattr(item, "params", {}).get("CN")
        if cn:
            names.append(str(cn).strip())
    return names


def duration_to_days(value: timedelta) -> int:
    """Whole days covered by a DURATION, rounding partial days up (minimum one)."""
    days = value.days + (1 if value.seconds or value.microseconds else 0)
    return max(1, days)


def is_availability_only(summary: str | None) -> bool:
    """True when the title carries no booking detail, e.g. "Airbnb (Not available)"."""
    if not summary:
        return True
    words = [w for w in re.findall(r"[a-z]+", summary.lower()) if w not in _CHANNEL_WORDS]
    return all(w in _PLACEHOLDER_WORDS for w in words)


def extract_guest_name(
    summary: str | None,
    description: str | None,
    attendees: list[str] | None = None,
) -> str | None:
    """Best-effort guest name from attendee CN, DESCRIPTION or SUMMARY."""
    if attendees:
        return attendees[0]

    if description:
        match = _GUEST_LINE.search(description.replace("\\n", "\n"))
        if match:
            return match.group(1).strip()

    if not summary or is_availability_only(summary):
        return None

    for pattern in (_FROM_SUMMARY, _NAME_WITH_COUNT, _AIRBNB_CONFIRMED):
        match = pattern.search(summary)
        if match:
            name = match.group(1).strip()
            if 2 <= len(name) <= 50:
                return name
    return None


def extract_guest_count(summary: str | None, description: str | None) -> int | None:
    if summary:
        match = _NAME_WITH_COUNT.match(summary)
        if match and 0 < int(match.group(2)) <= _MAX_GUESTS:
            return int(match.group(2))

    if not description:
        return None
    match = _PAX.search(description)
    if match:
        count = int(match.group(1))
        return count if 0 < count <= _MAX_GUESTS else None

    total = 0
    for pattern in (_ADULTS, _CHILDREN):
        match = pattern.search(description)
        if match:
            total += int(match.group(1))
    return total if 0 < total <= _MAX_GUESTS else None
