"""Relative time expressions → absolute instants in a configured zone.

Everything here is pure: callers pass ``now`` and the zone explicitly, so
results are reproducible in tests.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC_ZONE = ZoneInfo("UTC")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_WEEKDAY_ALTERNATION = "|".join(WEEKDAYS)

# Candidate substrings, tried in order.
_TIME_PATTERNS = (
    re.compile(r"\bat\s+(\d{1,2}(?::\d{2})?\s*(?:am|pm))\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,2}(?::\d{2})?\s*(?:am|pm))\b", re.IGNORECASE),
    re.compile(r"\bat\s+(\d{1,2}(?::\d{2})?)\b", re.IGNORECASE),
)
_DATE_PATTERNS = (
    re.compile(r"\btomorrow\b", re.IGNORECASE),
    re.compile(rf"\bnext\s+(?:{_WEEKDAY_ALTERNATION})\b", re.IGNORECASE),
    re.compile(rf"\bon\s+(?:{_WEEKDAY_ALTERNATION})\b", re.IGNORECASE),
    re.compile(rf"\b(?:{_WEEKDAY_ALTERNATION})\b", re.IGNORECASE),
)
_DURATION_PATTERN = re.compile(
    r"\bfor\s+(\d+(?:\.\d+)?|an?|one|half\s+an?)\s*(hours?|hrs?|minutes?|mins?)\b",
    re.IGNORECASE,
)

# Accepted time shapes, in order: "3:04 pm", "3:04pm", "3 pm", "3pm", "15:04", "15".
_TWELVE_HOUR_MINUTES = re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)")
_TWELVE_HOUR = re.compile(r"(\d{1,2})\s*(am|pm)")
_TWENTY_FOUR_HOUR = re.compile(r"(\d{1,2}):(\d{2})")
_BARE_HOUR = re.compile(r"(?:at\s+)?(\d{1,2})")


class Unparseable(ValueError):
    """The expression is not a recognised time or date."""


def resolve_zone(name: str | None) -> tzinfo:
    """Load an IANA zone, falling back to UTC (with a warning) when unknown."""
    if not name:
        return UTC_ZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r; using UTC", name)
        return UTC_ZONE


def localize(now: datetime, zone: tzinfo) -> datetime:
    """Express *now* in *zone*; naive values are taken to already be in it."""
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def extract_time(text: str) -> str | None:
    for pattern in _TIME_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_date(text: str) -> str | None:
    for pattern in _DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def extract_duration(text: str) -> timedelta | None:
    """Find an explicit ``for N hours`` / ``for N minutes`` phrase."""
    match = _DURATION_PATTERN.search(text)
    if not match:
        return None
    amount_text, unit = match.group(1).lower(), match.group(2).lower()
    if amount_text.startswith("half"):
        amount = 0.5
    elif amount_text in ("a", "an", "one"):
        amount = 1.0
    else:
        amount = float(amount_text)
    if amount <= 0:
        return None
    if unit.startswith("h"):
        return timedelta(hours=amount)
    return timedelta(minutes=amount)


def _clock_time(text: str) -> time:
    value = text.strip().lower()

    if match := _TWELVE_HOUR_MINUTES.fullmatch(value):
        return _twelve_hour(int(match.group(1)), int(match.group(2)), match.group(3), text)
    if match := _TWELVE_HOUR.fullmatch(value):
        return _twelve_hour(int(match.group(1)), 0, match.group(2), text)
    if match := _TWENTY_FOUR_HOUR.fullmatch(value):
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise Unparseable(f"unable to parse time: {text}")
        return time(hour, minute)
    if match := _BARE_HOUR.fullmatch(value):
        hour = int(match.group(1))
        # Bare 1-7 almost always means afternoon; 8-12 stays morning.
        if 1 <= hour <= 7:
            hour += 12
        if hour > 23:
            raise Unparseable(f"unable to parse time: {text}")
        return time(hour, 0)
    raise Unparseable(f"unable to parse time: {text}")


def _twelve_hour(hour: int, minute: int, meridiem: str, original: str) -> time:
    if not 1 <= hour <= 12 or minute > 59:
        raise Unparseable(f"unable to parse time: {original}")
    if meridiem == "am":
        hour = 0 if hour == 12 else hour
    else:
        hour = 12 if hour == 12 else hour + 12
    return time(hour, minute)


def parse_time(text: str, now: datetime, zone: tzinfo) -> datetime:
    """Parse a clock time and place it on today's date in *zone*.

    Raises
    ------
    Unparseable
        If *text* matches none of the accepted shapes.
    """
    clock = _clock_time(text)
    today = localize(now, zone)
    return today.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)


def next_weekday(now: datetime, weekday: int) -> datetime:
    """Nearest strictly-future date with *weekday* (Monday is 0); same day gives +7."""
    days_until = (weekday - now.weekday()) % 7 or 7
    return now + timedelta(days=days_until)


def parse_date(text: str, now: datetime, zone: tzinfo) -> datetime:
    """Resolve ``tomorrow`` or a weekday name to 00:00 of that day in *zone*.

    Raises
    ------
    Unparseable
        If no date token is present.
    """
    value = text.strip().lower()
    local_now = localize(now, zone)

    if "tomorrow" in value:
        return start_of_day(local_now + timedelta(hours=24))
    if "today" in value:
        return start_of_day(local_now)
    for index, name in enumerate(WEEKDAYS):
        if name in value:
            return start_of_day(next_weekday(local_now, index))
    raise Unparseable(f"unable to parse date: {text}")


def combine(day: datetime, clock: datetime | None) -> datetime:
    """Put the time of day from *clock* (if any) onto the date of *day*."""
    if clock is None:
        return day
    return day.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)


def next_full_hour(now: datetime, zone: tzinfo) -> datetime:
    local_now = localize(now, zone)
    return local_now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def parse_iso_datetime(value: str, zone: tzinfo) -> datetime:
    """Parse an RFC 3339 / ISO 8601 timestamp; naive values are taken in *zone*.

    A bare date (``2026-03-02``) is read as midnight.

    Raises
    ------
    Unparseable
        If *value* is not a valid timestamp.
    """
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise Unparseable(f"invalid timestamp: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed


def event_window(text: str, now: datetime, zone: tzinfo) -> tuple[datetime, datetime, str]:
    """Derive the listing window named by temporal tokens in *text*.

    Returns ``(start, end, description)``:

    - ``today``: [midnight, +24h)
    - ``tomorrow``: [midnight + 24h, +48h)
    - ``this week``: [Sunday 00:00, +7d)
    - ``next week``: [next Sunday 00:00, +7d)
    - otherwise [now, now + 7d]
    """
    value = text.lower()
    local_now = localize(now, zone)
    midnight = start_of_day(local_now)
    # Python weeks start on Monday (0); these windows start on Sunday.
    days_since_sunday = (local_now.weekday() + 1) % 7

    if "today" in value:
        return midnight, midnight + timedelta(days=1), "today"
    if "tomorrow" in value:
        start = midnight + timedelta(days=1)
        return start, start + timedelta(days=1), "tomorrow"
    if "this week" in value:
        start = midnight - timedelta(days=days_since_sunday)
        return start, start + timedelta(days=7), "this week"
    if "next week" in value:
        start = midnight + timedelta(days=7 - days_since_sunday)
        return start, start + timedelta(days=7), "next week"
    return local_now, local_now + timedelta(days=7), "the next 7 days"


def format_clock(moment: datetime) -> str:
    """Render like ``3:04 PM``."""
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment.minute:02d} {'AM' if moment.hour < 12 else 'PM'}"


def format_day(moment: datetime) -> str:
    """Render like ``Monday, January 2``."""
    return f"{moment.strftime('%A, %B')} {moment.day}"


def format_full_date(moment: datetime) -> str:
    """Render like ``Monday, January 2, 2006``."""
    return f"{format_day(moment)}, {moment.year}"
