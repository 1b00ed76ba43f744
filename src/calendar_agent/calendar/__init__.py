"""Calendar backends: Google Calendar REST and an in-memory demo store."""

from calendar_agent.calendar.base import (
    CalendarBackend,
    CalendarBackendError,
    CalendarCredentialError,
    CalendarEvent,
    CalendarInfo,
    CalendarNotFoundError,
    CalendarRequestError,
    CalendarTokenRefreshError,
    EventStatus,
    find_conflicts,
)
from calendar_agent.calendar.demo import DemoCalendarBackend
from calendar_agent.calendar.google import GoogleCalendarBackend

__all__ = [
    "CalendarBackend",
    "CalendarBackendError",
    "CalendarCredentialError",
    "CalendarEvent",
    "CalendarInfo",
    "CalendarNotFoundError",
    "CalendarRequestError",
    "CalendarTokenRefreshError",
    "DemoCalendarBackend",
    "EventStatus",
    "GoogleCalendarBackend",
    "find_conflicts",
]
