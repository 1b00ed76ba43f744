"""Carry out a resolved :class:`Intent` against a :class:`CalendarBackend`.

Every handler returns an :class:`ExecutionResult` (narration plus optional
structured data).  Backend failures are wrapped in
:class:`CalendarServiceError`; missing or malformed parameters raise
:class:`InvalidParamsError` before any backend call is made.

Creating an event always checks for conflicts first.  When the check finds
overlapping events nothing is written and three same-length alternative
windows are proposed instead.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any

from calendar_agent import timeparse
from calendar_agent.a2a.errors import A2AError, CalendarServiceError, InvalidParamsError
from calendar_agent.calendar.base import CalendarBackend, CalendarEvent, CalendarInfo
from calendar_agent.intents.models import Intent, IntentKind, IntentSource
from calendar_agent.intents.patterns import HELP_TEXT, PatternStrategy

logger = logging.getLogger(__name__)

DEFAULT_EVENT_DURATION = timedelta(hours=1)
DEFAULT_AVAILABILITY_MINUTES = 60
SEARCH_WINDOW = timedelta(days=30)
SHARED_CALENDAR_PROBE = timedelta(hours=24)
ALTERNATIVE_DAY_OFFSET = timedelta(hours=24)

DIRECT_SKILLS: dict[str, IntentKind] = {
    "list_events": IntentKind.LIST_EVENTS,
    "create_event": IntentKind.CREATE_EVENT,
    "update_event": IntentKind.UPDATE_EVENT,
    "delete_event": IntentKind.DELETE_EVENT,
    "search_events": IntentKind.SEARCH_EVENTS,
    "get_availability": IntentKind.GET_AVAILABILITY,
    "list_calendars": IntentKind.LIST_CALENDARS,
    "get_event": IntentKind.GET_EVENT,
}

EMPTY_CALENDARS_TEXT = (
    "No calendars found. Make sure to:\n"
    "1. Share your Google Calendar with the service account email\n"
    "2. Grant 'See all event details' permission\n"
    "3. Set the GOOGLE_CALENDAR_ID environment variable to the calendar ID"
)


@dataclass(frozen=True)
class ExecutionResult:
    text: str
    data: dict[str, Any] | None = None


def intent_for_skill(skill: str, arguments: dict[str, Any]) -> Intent:
    """Build the intent for a direct tool call.

    Raises
    ------
    InvalidParamsError
        If *skill* is not one of :data:`DIRECT_SKILLS`.
    """
    kind = DIRECT_SKILLS.get(skill)
    if kind is None:
        raise InvalidParamsError(f"unsupported skill: {skill}")
    return Intent(kind=kind, confidence=1.0, parameters=arguments, source=IntentSource.DIRECT)


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------


def _param(params: dict[str, Any], *names: str) -> Any:
    for name in names:
        value = params.get(name)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        return value
    return None


def _text_param(params: dict[str, Any], *names: str) -> str | None:
    value = _param(params, *names)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidParamsError(f"invalid params: {names[0]} must be a string")
    return value


def _require_event_id(params: dict[str, Any]) -> str:
    event_id = _text_param(params, "eventId", "event_id")
    if event_id is None:
        raise InvalidParamsError("invalid params: eventId is required")
    return event_id


def _minutes_param(params: dict[str, Any]) -> int | None:
    raw = _param(params, "duration")
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise InvalidParamsError("invalid params: duration must be a number of minutes")
    try:
        minutes = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidParamsError("invalid params: duration must be a number of minutes") from exc
    if minutes <= 0:
        raise InvalidParamsError("invalid params: duration must be positive")
    return minutes


def _event_payload(event: CalendarEvent, zone: tzinfo) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": event.id,
        "summary": event.summary,
        "start_time": timeparse.localize(event.start, zone).isoformat(),
        "end_time": timeparse.localize(event.end, zone).isoformat(),
        "status": event.status.value,
    }
    if event.description:
        payload["description"] = event.description
    if event.location:
        payload["location"] = event.location
    if event.attendees:
        payload["attendees"] = list(event.attendees)
    return payload


def _calendar_payload(calendar: CalendarInfo) -> dict[str, Any]:
    return calendar.model_dump(exclude_none=True)


def _clock_range(start: datetime, end: datetime) -> str:
    return f"{timeparse.format_clock(start)} - {timeparse.format_clock(end)}"


def merge_busy_blocks(events: list[CalendarEvent]) -> list[tuple[datetime, datetime]]:
    """Collapse overlapping or touching events into sorted busy intervals."""
    blocks: list[tuple[datetime, datetime]] = []
    for event in sorted(events, key=lambda item: item.start):
        if blocks and event.start <= blocks[-1][1]:
            start, end = blocks[-1]
            blocks[-1] = (start, max(end, event.end))
        else:
            blocks.append((event.start, event.end))
    return blocks


def free_slots(
    events: list[CalendarEvent],
    window_start: datetime,
    window_end: datetime,
    minimum: timedelta,
) -> list[tuple[datetime, datetime]]:
    """Gaps of at least *minimum* inside ``[window_start, window_end)``."""
    slots: list[tuple[datetime, datetime]] = []
    cursor = window_start
    busy = [event for event in events if not event.is_cancelled]
    for start, end in merge_busy_blocks(busy):
        slot_end = min(start, window_end)
        if slot_end - cursor >= minimum:
            slots.append((cursor, slot_end))
        cursor = max(cursor, end)
        if cursor >= window_end:
            break
    if window_end - cursor >= minimum:
        slots.append((cursor, window_end))
    return slots


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class CalendarExecutor:
    """Dispatch intents to calendar operations and render their narration."""

    def __init__(
        self,
        backend: CalendarBackend,
        *,
        calendar_id: str = "primary",
        zone: tzinfo = timeparse.UTC_ZONE,
        read_only: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._calendar_id = calendar_id
        self._zone = zone
        self._read_only = read_only
        self._clock = clock or (lambda: datetime.now(UTC))
        self._patterns = PatternStrategy(zone, clock=self._clock)
        self._handlers: dict[IntentKind, Callable[[Intent], Awaitable[ExecutionResult]]] = {
            IntentKind.LIST_CALENDARS: self._list_calendars,
            IntentKind.LIST_EVENTS: self._list_events,
            IntentKind.CREATE_EVENT: self._create_event,
            IntentKind.UPDATE_EVENT: self._update_event,
            IntentKind.DELETE_EVENT: self._delete_event,
            IntentKind.GET_EVENT: self._get_event,
            IntentKind.SEARCH_EVENTS: self._search_events,
            IntentKind.GET_AVAILABILITY: self._get_availability,
            IntentKind.HELP: self._narrate,
            IntentKind.CLARIFY: self._narrate,
        }

    async def execute(self, intent: Intent) -> ExecutionResult:
        logger.info(
            "Executing %s intent from %s (confidence %.2f)",
            intent.kind.value,
            intent.source.value,
            intent.confidence,
        )
        return await self._handlers[intent.kind](intent)

    # -- shared helpers ------------------------------------------------------

    def _now(self) -> datetime:
        return timeparse.localize(self._clock(), self._zone)

    def _local(self, moment: datetime) -> datetime:
        return timeparse.localize(moment, self._zone)

    def _resolve_calendar_id(self, params: dict[str, Any]) -> str:
        return _text_param(params, "calendar_id", "calendarId") or self._calendar_id

    def _time_param(self, params: dict[str, Any], *names: str) -> datetime | None:
        value = _text_param(params, *names)
        if value is None:
            return None
        try:
            return timeparse.parse_iso_datetime(value, self._zone)
        except timeparse.Unparseable as exc:
            raise InvalidParamsError(
                f"invalid params: {names[0]} must be an ISO 8601 timestamp"
            ) from exc

    def _ensure_writable(self, operation: str, calendar_id: str) -> None:
        if self._read_only:
            raise CalendarServiceError(
                "calendar is read-only", operation=operation, calendar_id=calendar_id
            )

    @contextlib.contextmanager
    def _backend_call(self, operation: str, calendar_id: str) -> Iterator[None]:
        try:
            yield
        except A2AError:
            raise
        except Exception as exc:
            logger.error(
                "Calendar %s failed for calendar %s: %s", operation, calendar_id, exc
            )
            raise CalendarServiceError(
                f"failed to {operation.replace('_', ' ')}: {exc}",
                operation=operation,
                calendar_id=calendar_id,
            ) from exc

    def _render_event_lines(self, events: list[CalendarEvent]) -> str:
        lines = ""
        for index, event in enumerate(events, start=1):
            lines += f"{index}. {event.summary}\n"
            lines += f"   Time: {_clock_range(self._local(event.start), self._local(event.end))}\n"
            if event.location:
                lines += f"   Location: {event.location}\n"
            lines += "\n"
        return lines

    # -- handlers ------------------------------------------------------------

    async def _narrate(self, intent: Intent) -> ExecutionResult:
        return ExecutionResult(text=intent.narration or HELP_TEXT)

    async def _list_calendars(self, intent: Intent) -> ExecutionResult:
        configured = self._resolve_calendar_id(intent.parameters)
        with self._backend_call("list_calendars", configured):
            calendars = await self._backend.list_calendars()

        if configured != "primary" and all(calendar.id != configured for calendar in calendars):
            now = self._now()
            try:
                await self._backend.list_events(
                    configured, now - SHARED_CALENDAR_PROBE, now + SHARED_CALENDAR_PROBE
                )
            except Exception as exc:
                logger.warning("Configured calendar %s is not accessible: %s", configured, exc)
            else:
                calendars.append(
                    CalendarInfo(
                        id=configured,
                        summary="Shared Calendar (Configured)",
                        description="This calendar is shared with the service account",
                        access_role="reader",
                    )
                )

        if not calendars:
            return ExecutionResult(text=EMPTY_CALENDARS_TEXT)

        text = "📅 Here are your available calendars:\n\n"
        for index, calendar in enumerate(calendars, start=1):
            text += f"{index}. **{calendar.summary}**\n"
            text += f"   ID: `{calendar.id}`\n"
            if calendar.description:
                text += f"   Description: {calendar.description}\n"
            if calendar.access_role:
                text += f"   Access: {calendar.access_role}\n"
            text += "\n"
        text += "💡 **How to use a specific calendar:**\n"
        text += "Set the `GOOGLE_CALENDAR_ID` environment variable to one of the IDs above.\n"
        text += f"For example: `GOOGLE_CALENDAR_ID={calendars[0].id}`\n\n"
        text += f"📌 **Currently configured calendar:** `{configured}`"

        return ExecutionResult(
            text=text,
            data={
                "calendars": [_calendar_payload(calendar) for calendar in calendars],
                "configured_calendar_id": configured,
            },
        )

    def _listing_window(self, intent: Intent) -> tuple[datetime, datetime, str]:
        params = intent.parameters
        start = self._time_param(params, "start_date", "start_time", "start")
        end = self._time_param(params, "end_date", "end_time", "end")
        if start is None and end is None:
            return timeparse.event_window(intent.utterance, self._clock(), self._zone)

        if start is None:
            start = self._now()
        if end is None:
            end = start + timedelta(days=7)
        if end <= start:
            raise InvalidParamsError("invalid params: end_date must be after start_date")
        description = f"{start.strftime('%b')} {start.day}, {start.year} to "
        description += f"{end.strftime('%b')} {end.day}, {end.year}"
        return start, end, f"from {description}"

    async def _list_events(self, intent: Intent) -> ExecutionResult:
        calendar_id = self._resolve_calendar_id(intent.parameters)
        start, end, description = self._listing_window(intent)
        logger.debug("Listing events in %s for %s (%s - %s)", calendar_id, description, start, end)

        with self._backend_call("list_events", calendar_id):
            events = await self._backend.list_events(calendar_id, start, end)
        events = sorted(
            (event for event in events if not event.is_cancelled), key=lambda event: event.start
        )

        if not events:
            return ExecutionResult(text=f"No events found for {description}.")

        text = f"Here are your events for {description}:\n\n" + self._render_event_lines(events)
        return ExecutionResult(
            text=text,
            data={"events": [_event_payload(event, self._zone) for event in events]},
        )

    def _proposed_event(self, intent: Intent) -> CalendarEvent:
        params = dict(intent.parameters)
        missing_title = _param(params, "title", "summary") is None
        missing_start = _param(params, "start_time", "start") is None
        if (missing_title or missing_start) and intent.utterance:
            extracted = self._patterns.create_parameters(intent.utterance)
            if missing_title:
                params["title"] = extracted["title"]
            # An extracted end only pairs with the extracted start.
            if missing_start:
                params["start_time"] = extracted["start_time"]
                if _param(params, "end_time", "end", "duration") is None:
                    params["end_time"] = extracted["end_time"]

        start = self._time_param(params, "start_time", "start")
        if start is None:
            raise InvalidParamsError("invalid params: start_time is required")
        end = self._time_param(params, "end_time", "end")
        if end is None:
            minutes = _minutes_param(params)
            end = start + (timedelta(minutes=minutes) if minutes else DEFAULT_EVENT_DURATION)
        if end <= start:
            raise InvalidParamsError("invalid params: end_time must be after start_time")

        attendees = _param(params, "attendees") or []
        if not isinstance(attendees, list):
            raise InvalidParamsError("invalid params: attendees must be a list of emails")

        return CalendarEvent(
            summary=_text_param(params, "title", "summary") or "Event",
            description=_text_param(params, "description"),
            location=_text_param(params, "location"),
            start=start,
            end=end,
            attendees=[str(email) for email in attendees],
        )

    async def _create_event(self, intent: Intent) -> ExecutionResult:
        calendar_id = self._resolve_calendar_id(intent.parameters)
        self._ensure_writable("create_event", calendar_id)
        proposed = self._proposed_event(intent)

        with self._backend_call("check_conflicts", calendar_id):
            conflicts = await self._backend.check_conflicts(
                calendar_id, proposed.start, proposed.end
            )
        if conflicts:
            logger.info(
                "Found %d conflict(s) for %r at %s; not creating",
                len(conflicts),
                proposed.summary,
                proposed.start.isoformat(),
            )
            return self._conflict_result(calendar_id, proposed, conflicts)

        with self._backend_call("create_event", calendar_id):
            created = await self._backend.create_event(calendar_id, proposed)

        start, end = self._local(proposed.start), self._local(proposed.end)
        text = "✅ Event created successfully!\n\n"
        text += f"Title: {created.summary}\n"
        text += f"Date: {timeparse.format_full_date(start)}\n"
        text += f"Time: {_clock_range(start, end)}\n"
        if created.location:
            text += f"Location: {created.location}\n"
        return ExecutionResult(text=text, data=_event_payload(created, self._zone))

    def alternative_windows(
        self, start: datetime, end: datetime
    ) -> list[tuple[datetime, datetime, str]]:
        """Three same-length windows: two right after *end*, one a day later."""
        duration = end - start
        start, end = self._local(start), self._local(end)
        next_day_start = start + ALTERNATIVE_DAY_OFFSET
        next_day_end = end + ALTERNATIVE_DAY_OFFSET
        return [
            (end, end + duration, _clock_range(end, end + duration)),
            (
                end + duration,
                end + 2 * duration,
                _clock_range(end + duration, end + 2 * duration),
            ),
            (
                next_day_start,
                next_day_end,
                f"{_clock_range(next_day_start, next_day_end)} "
                f"({timeparse.format_day(next_day_start)})",
            ),
        ]

    def _conflict_result(
        self,
        calendar_id: str,
        proposed: CalendarEvent,
        conflicts: list[CalendarEvent],
    ) -> ExecutionResult:
        start, end = self._local(proposed.start), self._local(proposed.end)
        alternatives = self.alternative_windows(proposed.start, proposed.end)

        text = "⚠️ **Scheduling Conflict Detected!**\n\n"
        text += (
            f"You already have {len(conflicts)} event(s) scheduled during "
            f"{_clock_range(start, end)}:\n\n"
        )
        for index, conflict in enumerate(conflicts, start=1):
            text += f"{index}. **{conflict.summary}**\n"
            text += (
                f"   Time: {_clock_range(self._local(conflict.start), self._local(conflict.end))}\n"
            )
            if conflict.location:
                text += f"   Location: {conflict.location}\n"
            text += "\n"
        text += "**Suggested alternative times:**\n"
        for _, _, display in alternatives:
            text += f"• {display}\n"
        text += "\nWould you like me to schedule it at one of these alternative times instead?"

        return ExecutionResult(
            text=text,
            data={
                "conflicts": [_event_payload(event, self._zone) for event in conflicts],
                "alternative_times": [
                    {
                        "start_time": alt_start.isoformat(),
                        "end_time": alt_end.isoformat(),
                        "display": display,
                    }
                    for alt_start, alt_end, display in alternatives
                ],
                "proposed_event": _event_payload(proposed, self._zone),
                "calendar_id": calendar_id,
            },
        )

    async def _update_event(self, intent: Intent) -> ExecutionResult:
        params = intent.parameters
        event_id = _require_event_id(params)
        calendar_id = self._resolve_calendar_id(params)
        self._ensure_writable("update_event", calendar_id)

        start = self._time_param(params, "start_time", "start")
        end = self._time_param(params, "end_time", "end")

        with self._backend_call("get_event", calendar_id):
            current = await self._backend.get_event(calendar_id, event_id)

        if start is not None and end is None:
            end = start + (current.end - current.start)
        changes: dict[str, Any] = {
            "summary": _text_param(params, "title", "summary"),
            "description": _text_param(params, "description"),
            "location": _text_param(params, "location"),
            "start": start,
            "end": end,
        }
        merged = current.model_dump()
        merged.update({key: value for key, value in changes.items() if value is not None})
        try:
            updated_event = CalendarEvent.model_validate(merged)
        except ValueError as exc:
            raise InvalidParamsError("invalid params: end_time must be after start_time") from exc

        with self._backend_call("update_event", calendar_id):
            updated = await self._backend.update_event(calendar_id, event_id, updated_event)

        start_local, end_local = self._local(updated.start), self._local(updated.end)
        text = "✅ Event updated successfully!\n\n"
        text += f"Event ID: {updated.id or event_id}\n"
        text += f"Title: {updated.summary}\n"
        text += f"Date: {timeparse.format_full_date(start_local)}\n"
        text += f"Time: {_clock_range(start_local, end_local)}\n"
        if updated.location:
            text += f"Location: {updated.location}\n"
        return ExecutionResult(text=text, data=_event_payload(updated, self._zone))

    async def _delete_event(self, intent: Intent) -> ExecutionResult:
        params = intent.parameters
        event_id = _require_event_id(params)
        calendar_id = self._resolve_calendar_id(params)
        self._ensure_writable("delete_event", calendar_id)

        title: str | None = None
        try:
            title = (await self._backend.get_event(calendar_id, event_id)).summary
        except Exception as exc:
            logger.warning("Could not retrieve event %s before deletion: %s", event_id, exc)

        with self._backend_call("delete_event", calendar_id):
            await self._backend.delete_event(calendar_id, event_id)

        text = f"✅ Event deleted successfully!\n\nEvent ID: {event_id}\n"
        if title:
            text += f"Title: {title}\n"
        return ExecutionResult(
            text=text,
            data={"event_id": event_id, "calendar_id": calendar_id, "status": "deleted"},
        )

    async def _get_event(self, intent: Intent) -> ExecutionResult:
        params = intent.parameters
        event_id = _require_event_id(params)
        calendar_id = self._resolve_calendar_id(params)

        with self._backend_call("get_event", calendar_id):
            event = await self._backend.get_event(calendar_id, event_id)

        start, end = self._local(event.start), self._local(event.end)
        text = f"📅 **{event.summary}**\n\n"
        text += f"Event ID: {event.id or event_id}\n"
        text += f"Date: {timeparse.format_full_date(start)}\n"
        text += f"Time: {_clock_range(start, end)}\n"
        if event.location:
            text += f"Location: {event.location}\n"
        if event.description:
            text += f"Description: {event.description}\n"
        return ExecutionResult(text=text, data=_event_payload(event, self._zone))

    async def _search_events(self, intent: Intent) -> ExecutionResult:
        params = intent.parameters
        query = _text_param(params, "query")
        if query is None:
            raise InvalidParamsError("invalid params: query is required")
        calendar_id = self._resolve_calendar_id(params)

        start = self._time_param(params, "start_date", "start_time", "start") or self._now()
        end = self._time_param(params, "end_date", "end_time", "end") or start + SEARCH_WINDOW
        if end <= start:
            raise InvalidParamsError("invalid params: end_date must be after start_date")

        with self._backend_call("search_events", calendar_id):
            events = await self._backend.list_events(calendar_id, start, end)

        needle = query.lower()
        matches = sorted(
            (
                event
                for event in events
                if not event.is_cancelled
                and (
                    needle in event.summary.lower()
                    or (event.description is not None and needle in event.description.lower())
                )
            ),
            key=lambda event: event.start,
        )

        if not matches:
            return ExecutionResult(text=f"No events found matching '{query}'.")

        text = f"Found {len(matches)} event(s) matching '{query}':\n\n"
        text += self._render_event_lines(matches)
        return ExecutionResult(
            text=text,
            data={
                "query": query,
                "events": [_event_payload(event, self._zone) for event in matches],
            },
        )

    async def _get_availability(self, intent: Intent) -> ExecutionResult:
        params = intent.parameters
        start = self._time_param(params, "start", "start_time", "start_date")
        end = self._time_param(params, "end", "end_time", "end_date")
        if start is None or end is None:
            raise InvalidParamsError("invalid params: start and end are required")
        if end <= start:
            raise InvalidParamsError("invalid params: end must be after start")

        minutes = _minutes_param(params) or DEFAULT_AVAILABILITY_MINUTES
        calendar_id = self._resolve_calendar_id(params)
        with self._backend_call("get_availability", calendar_id):
            events = await self._backend.list_events(calendar_id, start, end)

        slots = free_slots(events, start, end, timedelta(minutes=minutes))
        start_local, end_local = self._local(start), self._local(end)
        span = (
            f"{timeparse.format_day(start_local)} {timeparse.format_clock(start_local)} and "
            f"{timeparse.format_day(end_local)} {timeparse.format_clock(end_local)}"
        )

        if not slots:
            return ExecutionResult(
                text=f"No free slots of at least {minutes} minutes between {span}.",
                data={"free_slots": [], "duration_minutes": minutes},
            )

        text = f"Available time slots of at least {minutes} minutes between {span}:\n\n"
        for slot_start, slot_end in slots:
            local_start, local_end = self._local(slot_start), self._local(slot_end)
            day = timeparse.format_day(local_start)
            text += f"• {day}: {_clock_range(local_start, local_end)}\n"
        return ExecutionResult(
            text=text,
            data={
                "free_slots": [
                    {
                        "start_time": self._local(slot_start).isoformat(),
                        "end_time": self._local(slot_end).isoformat(),
                    }
                    for slot_start, slot_end in slots
                ],
                "duration_minutes": minutes,
            },
        )
