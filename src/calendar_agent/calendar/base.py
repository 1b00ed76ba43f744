"""Canonical calendar types and the backend abstraction.

Every backend speaks in :class:`CalendarEvent` and :class:`CalendarInfo`
values.  Intervals are half-open: an event ending at 15:00 does not overlap
one starting at 15:00.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Iterable
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class CalendarBackendError(RuntimeError):
    """Base error raised by calendar backends."""


class CalendarCredentialError(CalendarBackendError):
    """Raised when credential JSON is missing, unreadable or of an unknown kind."""


class CalendarTokenRefreshError(CalendarBackendError):
    """Raised when an access token cannot be obtained."""


class CalendarRequestError(CalendarBackendError):
    """Raised when a calendar API request fails."""

    def __init__(self, *, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Google Calendar API request failed ({status_code}): {message}")


class CalendarNotFoundError(CalendarRequestError):
    """The requested event or calendar does not exist."""

    def __init__(self, message: str = "event not found") -> None:
        super().__init__(status_code=404, message=message)


class EventStatus(StrEnum):
    confirmed = "confirmed"
    tentative = "tentative"
    cancelled = "cancelled"


class CalendarEvent(BaseModel):
    """Canonical event shape shared across backends."""

    id: str | None = None
    summary: str
    description: str | None = None
    location: str | None = None
    start: datetime
    end: datetime
    attendees: list[str] = Field(default_factory=list)
    status: EventStatus = EventStatus.confirmed

    @model_validator(mode="after")
    def _end_after_start(self) -> CalendarEvent:
        if self.end <= self.start:
            raise ValueError("event end must be after its start")
        return self

    @property
    def is_cancelled(self) -> bool:
        return self.status is EventStatus.cancelled

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test against ``[start, end)``."""
        return self.start < end and start < self.end


class CalendarInfo(BaseModel):
    """An entry of the caller's calendar list."""

    id: str
    summary: str
    description: str | None = None
    access_role: str = "reader"
    primary: bool = False


def find_conflicts(
    events: Iterable[CalendarEvent],
    start: datetime,
    end: datetime,
) -> list[CalendarEvent]:
    """Return the non-cancelled events overlapping ``[start, end)``, by start."""
    conflicts = [event for event in events if not event.is_cancelled and event.overlaps(start, end)]
    return sorted(conflicts, key=lambda event: event.start)


class CalendarBackend(abc.ABC):
    """Async calendar backend used by the executor."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Backend identifier (e.g., ``google``)."""
        ...

    @abc.abstractmethod
    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        """Return events overlapping ``[time_min, time_max)``, ordered by start."""
        ...

    @abc.abstractmethod
    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        ...

    @abc.abstractmethod
    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        """Replace the stored event with *event* and return the stored copy."""
        ...

    @abc.abstractmethod
    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        ...

    @abc.abstractmethod
    async def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent:
        """Fetch one event.

        Raises
        ------
        CalendarNotFoundError
            If no event with *event_id* exists.
        """
        ...

    @abc.abstractmethod
    async def list_calendars(self) -> list[CalendarInfo]:
        ...

    async def check_conflicts(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[CalendarEvent]:
        """Return existing events that would overlap a new ``[start, end)`` event."""
        events = await self.list_events(calendar_id, start, end)
        conflicts = find_conflicts(events, start, end)
        logger.debug(
            "Conflict check on %s for %s - %s found %d event(s)",
            calendar_id,
            start.isoformat(),
            end.isoformat(),
            len(conflicts),
        )
        return conflicts

    async def shutdown(self) -> None:  # noqa: B027
        """Release backend resources. Default is a no-op."""
