"""Tests for the in-memory demo backend."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from calendar_agent.calendar.base import CalendarEvent, CalendarNotFoundError
from calendar_agent.calendar.demo import DemoCalendarBackend

pytestmark = pytest.mark.unit

DAY_START = datetime(2026, 3, 2, tzinfo=UTC)


class TestDemoCalendarBackend:
    async def test_seeded_events_today(self, demo_backend):
        events = await demo_backend.list_events(
            "primary", DAY_START, DAY_START + timedelta(days=1)
        )
        assert [event.summary for event in events] == ["Team Standup", "Lunch with Client"]
        assert events[0].start == datetime(2026, 3, 2, 9, 30, tzinfo=UTC)

    async def test_seeded_event_tomorrow(self, demo_backend):
        events = await demo_backend.list_events(
            "primary", DAY_START + timedelta(days=1), DAY_START + timedelta(days=2)
        )
        assert [event.id for event in events] == ["demo-event-3"]

    async def test_unseeded_store_is_empty(self):
        backend = DemoCalendarBackend(seed=False)
        assert await backend.list_events("primary", DAY_START, DAY_START + timedelta(days=30)) == []

    async def test_create_assigns_id_and_stores(self, demo_backend):
        event = CalendarEvent(
            summary="Coffee",
            start=datetime(2026, 3, 2, 16, tzinfo=UTC),
            end=datetime(2026, 3, 2, 17, tzinfo=UTC),
        )
        created = await demo_backend.create_event("primary", event)
        assert created.id is not None
        assert created.id.startswith("demo-")
        assert await demo_backend.get_event("primary", created.id) == created

    async def test_update_replaces_event(self, demo_backend):
        current = await demo_backend.get_event("primary", "demo-event-1")
        changed = current.model_copy(update={"summary": "Daily Standup"})
        updated = await demo_backend.update_event("primary", "demo-event-1", changed)
        assert updated.summary == "Daily Standup"
        assert (await demo_backend.get_event("primary", "demo-event-1")).summary == "Daily Standup"

    async def test_update_missing_event(self, demo_backend):
        event = await demo_backend.get_event("primary", "demo-event-1")
        with pytest.raises(CalendarNotFoundError):
            await demo_backend.update_event("primary", "missing", event)

    async def test_delete_is_idempotent(self, demo_backend):
        await demo_backend.delete_event("primary", "demo-event-2")
        await demo_backend.delete_event("primary", "demo-event-2")
        with pytest.raises(CalendarNotFoundError):
            await demo_backend.get_event("primary", "demo-event-2")

    async def test_calendars_are_separate(self, demo_backend):
        assert await demo_backend.list_events(
            "team@example.com", DAY_START, DAY_START + timedelta(days=2)
        ) == []

    async def test_conflict_check(self, demo_backend):
        conflicts = await demo_backend.check_conflicts(
            "primary",
            datetime(2026, 3, 2, 13, tzinfo=UTC),
            datetime(2026, 3, 2, 14, tzinfo=UTC),
        )
        assert [event.summary for event in conflicts] == ["Lunch with Client"]

    async def test_list_calendars(self, demo_backend):
        calendars = await demo_backend.list_calendars()
        assert [calendar.id for calendar in calendars] == ["primary"]
        assert calendars[0].primary is True
        assert demo_backend.name == "demo"
