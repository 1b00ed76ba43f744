"""In-memory calendar backend for demo mode and tests.

Seeded with a handful of events today and tomorrow in the configured zone.
Nothing leaves the process and nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from calendar_agent import timeparse
from calendar_agent.calendar.base import (
    CalendarBackend,
    CalendarEvent,
    CalendarInfo,
    CalendarNotFoundError,
)

logger = logging.getLogger(__name__)

DEMO_CALENDARS = (
    CalendarInfo(
        id="primary",
        summary="Demo Calendar",
        description="In-memory calendar used in demo mode",
        access_role="owner",
        primary=True,
    ),
)


def _seed_events(now: datetime) -> list[CalendarEvent]:
    today = timeparse.start_of_day(now)
    tomorrow = today + timedelta(days=1)
    return [
        CalendarEvent(
            id="demo-event-1",
            summary="Team Standup",
            location="Conference Room A",
            start=today.replace(hour=9, minute=30),
            end=today.replace(hour=10),
        ),
        CalendarEvent(
            id="demo-event-2",
            summary="Lunch with Client",
            location="Downtown Bistro",
            start=today.replace(hour=12, minute=30),
            end=today.replace(hour=13, minute=30),
        ),
        CalendarEvent(
            id="demo-event-3",
            summary="Project Review",
            description="Quarterly review of the roadmap",
            start=tomorrow.replace(hour=14),
            end=tomorrow.replace(hour=15),
        ),
    ]


class DemoCalendarBackend(CalendarBackend):
    """Dict-backed backend keyed by ``(calendar_id, event_id)``."""

    def __init__(
        self,
        *,
        timezone: str = "UTC",
        seed: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._zone = timeparse.resolve_zone(timezone)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._events: dict[str, dict[str, CalendarEvent]] = {}
        self._lock = asyncio.Lock()
        if seed:
            now = timeparse.localize(self._clock(), self._zone)
            for event in _seed_events(now):
                self._calendar("primary")[event.id or ""] = event

    @property
    def name(self) -> str:
        return "demo"

    def _calendar(self, calendar_id: str) -> dict[str, CalendarEvent]:
        return self._events.setdefault(calendar_id, {})

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        events = [
            event
            for event in self._calendar(calendar_id).values()
            if event.overlaps(time_min, time_max)
        ]
        return sorted(events, key=lambda event: event.start)

    async def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent:
        event = self._calendar(calendar_id).get(event_id)
        if event is None:
            raise CalendarNotFoundError(f"event {event_id} not found")
        return event

    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        async with self._lock:
            stored = event.model_copy(update={"id": event.id or f"demo-{uuid.uuid4().hex[:12]}"})
            self._calendar(calendar_id)[stored.id or ""] = stored
        logger.info("Demo backend created event %s (%s)", stored.id, stored.summary)
        return stored

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        async with self._lock:
            calendar = self._calendar(calendar_id)
            if event_id not in calendar:
                raise CalendarNotFoundError(f"event {event_id} not found")
            stored = event.model_copy(update={"id": event_id})
            calendar[event_id] = stored
        return stored

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        async with self._lock:
            self._calendar(calendar_id).pop(event_id, None)

    async def list_calendars(self) -> list[CalendarInfo]:
        return list(DEMO_CALENDARS)
