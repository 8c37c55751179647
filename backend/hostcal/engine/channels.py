"""Booking channel catalog: canonical labels and display names."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Channel:
    """A booking channel shown in calendar legends."""

    key: str
    display_name: str
    color: str  # HSL border color used by the calendar legend


CHANNELS: dict[str, Channel] = {
    "airbnb": Channel("airbnb", "Airbnb", "hsl(350, 84%, 60%)"),
    "booking.com": Channel("booking.com", "Booking.com", "hsl(223, 100%, 35%)"),
    "vrbo": Channel("vrbo", "Vrbo", "hsl(210, 65%, 40%)"),
    "expedia": Channel("expedia", "Expedia", "hsl(210, 65%, 40%)"),
    "smoobu": Channel("smoobu", "Smoobu", "hsl(262, 83%, 58%)"),
    "agoda": Channel("agoda", "Agoda", "hsl(215, 15%, 58%)"),
    "tripadvisor": Channel("tripadvisor", "TripAdvisor", "hsl(215, 15%, 58%)"),
    "direct": Channel("direct", "Direct", "hsl(142, 71%, 45%)"),
    "manual": Channel("manual", "Manual", "hsl(215, 15%, 58%)"),
    "other": Channel("other", "Other", "hsl(215, 15%, 58%)"),
}

# Checked in order; "booking.com" must win over a bare "booking" substring.
_DETECTION_ORDER = ("booking.com", "airbnb", "vrbo", "expedia", "smoobu", "agoda", "tripadvisor")

_ALIASES = {
    "booking": "booking.com",
    "bookingcom": "booking.com",
    "homeaway": "vrbo",
    "abritel": "vrbo",
}


def normalize_channel(label: str | None) -> str:
    """Map a free-form channel label to a catalog key.

    Unknown labels are kept (lower-cased) so that two different custom
    channels are still told apart by conflict detection.
    """
    if not label or not label.strip():
        return "other"
    key = label.strip().lower()
    key = _ALIASES.get(key.replace(" ", "").replace("-", ""), key)
    return key


def detect_channel(*texts: str | None) -> str:
    """Guess the channel from feed text such as SUMMARY, DESCRIPTION or the feed URL."""
    haystack = " ".join(t for t in texts if t).lower()
    for key in _DETECTION_ORDER:
        if key in haystack:
            return key
    return "other"


def channel_display_name(key: str | None) -> str:
    channel = CHANNELS.get(normalize_channel(key))
    if channel is not None:
        return channel.display_name
    return key.strip() if key else CHANNELS["other"].display_name
