"""End-to-end tests for the FastAPI app over ``httpx.ASGITransport``."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI

from calendar_agent.api.app import create_app
from calendar_agent.calendar.base import (
    CalendarBackend,
    CalendarEvent,
    CalendarRequestError,
    EventStatus,
)
from calendar_agent.calendar.demo import DemoCalendarBackend
from calendar_agent.config import load_config
from calendar_agent.intents.llm import LanguageModel

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _clock() -> datetime:
    return NOW


def _assign_id(calendar_id: str, event: CalendarEvent) -> CalendarEvent:
    return event.model_copy(update={"id": "evt-1"})


@pytest.fixture
def backend() -> MagicMock:
    mock = MagicMock(spec=CalendarBackend)
    mock.list_events = AsyncMock(return_value=[])
    mock.check_conflicts = AsyncMock(return_value=[])
    mock.create_event = AsyncMock(side_effect=_assign_id)
    mock.get_event = AsyncMock()
    mock.update_event = AsyncMock()
    mock.delete_event = AsyncMock()
    mock.list_calendars = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def app(demo_config, backend) -> FastAPI:
    return create_app(demo_config, backend=backend, clock=_clock)


async def _post(app: FastAPI, body: str | bytes | dict) -> httpx.Response:
    content = json.dumps(body) if isinstance(body, dict) else body
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        return await client.post(
            "/a2a", content=content, headers={"Content-Type": "application/json"}
        )


def _send(text: str, request_id: object = "req-1", method: str = "message/send") -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": {
            "message": {
                "role": "user",
                "messageId": "msg-1",
                "parts": [{"kind": "text", "text": text}],
            }
        },
    }


# ============================================================================
# Discovery and HTTP surface
# ============================================================================


class TestDiscovery:
    async def test_health(self, app):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_agent_card(self, app):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/.well-known/agent.json")

        card = response.json()
        assert response.status_code == 200
        assert card["name"] == "google-calendar-agent"
        assert card["url"] == "http://0.0.0.0:8080"
        assert card["capabilities"] == {
            "streaming": False,
            "pushNotifications": False,
            "stateTransitionHistory": False,
        }
        assert card["defaultInputModes"] == ["text/plain"]
        assert [skill["id"] for skill in card["skills"]] == [
            "list-calendars",
            "list-events",
            "create-event",
            "update-event",
            "delete-event",
        ]
        assert "Schedule a meeting with John at 2pm tomorrow" in card["skills"][2]["examples"]


class TestHttpErrors:
    async def test_wrong_method_on_a2a(self, app):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/a2a")

        assert response.status_code == 405
        assert response.json() == {
            "error": "Method Not Allowed",
            "message": "Only POST requests are supported on this endpoint",
            "allowed_methods": ["POST"],
            "endpoint": "/a2a",
        }

    async def test_unknown_path(self, app):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/nope")

        assert response.status_code == 404
        body = response.json()
        assert body["path"] == "/nope"
        assert body["method"] == "GET"
        assert "POST /a2a" in body["available_endpoints"]

    async def test_unhandled_exception_is_json_500(self, app):
        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaboom")

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/boom")

        assert response.status_code == 500
        assert response.json() == {
            "error": "Internal Server Error",
            "message": "Internal server error",
        }


# ============================================================================
# JSON-RPC envelope handling
# ============================================================================


class TestEnvelope:
    async def test_invalid_json_body(self, app):
        response = await _post(app, '{"invalid": json}')
        assert response.status_code == 200
        assert response.json() == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "parse error"},
        }

    async def test_unknown_method(self, app):
        response = await _post(app, {"jsonrpc": "2.0", "id": "a", "method": "foo/bar"})
        assert response.status_code == 200
        assert response.json() == {
            "jsonrpc": "2.0",
            "id": "a",
            "error": {"code": -32601, "message": "method not found"},
        }

    @pytest.mark.parametrize("method", ["task/get", "task/cancel"])
    async def test_task_methods_not_implemented(self, app, method):
        response = await _post(app, {"jsonrpc": "2.0", "id": 1, "method": method, "params": {}})
        assert response.json()["error"] == {
            "code": -32601,
            "message": f"{method} not implemented",
        }

    @pytest.mark.parametrize("request_id", [7, "abc-123", None, 0])
    async def test_id_echoed_verbatim(self, app, request_id):
        response = await _post(app, _send("hello", request_id=request_id))
        assert response.json()["id"] == request_id

    async def test_missing_id_is_generated(self, app):
        body = _send("hello")
        del body["id"]
        response = await _post(app, body)
        assert isinstance(response.json()["id"], str)

    async def test_params_must_be_an_object(self, app):
        response = await _post(
            app, {"jsonrpc": "2.0", "id": 1, "method": "message/send", "params": [1]}
        )
        assert response.json()["error"]["code"] == -32602

    async def test_empty_text_part(self, app, backend):
        response = await _post(app, _send(""))
        assert response.json()["error"] == {
            "code": -32602,
            "message": "message text cannot be empty",
        }
        backend.list_events.assert_not_awaited()

    async def test_whitespace_text_part(self, app):
        response = await _post(app, _send("   "))
        assert response.json()["error"]["message"] == "message text cannot be empty"


# ============================================================================
# message/send scenarios
# ============================================================================


class TestMessageSend:
    async def test_create_without_conflict(self, app, backend):
        response = await _post(app, _send("schedule meeting with John at 2pm tomorrow"))

        task = response.json()["result"]
        assert task["kind"] == "task"
        assert task["status"]["state"] == "completed"
        assert len(task["history"]) == 2
        assert task["history"][0]["messageId"] == "msg-1"
        text = task["artifacts"][0]["parts"][0]["text"]
        assert text.startswith("✅ Event created successfully")
        assert "Title: Meeting with John" in text
        backend.create_event.assert_awaited_once()
        _, created = backend.create_event.call_args.args
        assert created.start == datetime(2026, 3, 3, 14, tzinfo=UTC)

    async def test_create_with_conflict(self, app, backend):
        backend.check_conflicts.return_value = [
            CalendarEvent(
                id="busy",
                summary="Existing",
                start=datetime(2026, 3, 2, 14, tzinfo=UTC),
                end=datetime(2026, 3, 2, 15, tzinfo=UTC),
            )
        ]

        response = await _post(app, _send("schedule meeting with John at 2pm today for 1 hour"))

        backend.create_event.assert_not_awaited()
        task = response.json()["result"]
        assert task["status"]["state"] == "completed"
        data = task["artifacts"][0]["parts"][1]["data"]
        assert {"conflicts", "alternative_times", "proposed_event"} <= set(data)
        alternatives = data["alternative_times"]
        assert len(alternatives) == 3
        assert "3:00 PM - 4:00 PM" in alternatives[0]["display"]
        assert "Tuesday, March 3" in alternatives[2]["display"]

    async def test_cancelled_conflict_is_ignored(self, demo_config):
        backend = DemoCalendarBackend(seed=False, clock=_clock)
        await backend.create_event(
            "primary",
            CalendarEvent(
                id="gone",
                summary="Cancelled sync",
                start=datetime(2026, 3, 2, 14, tzinfo=UTC),
                end=datetime(2026, 3, 2, 15, tzinfo=UTC),
                status=EventStatus.cancelled,
            ),
        )
        app = create_app(demo_config, backend=backend, clock=_clock)

        response = await _post(app, _send("schedule meeting with John at 2pm today"))

        task = response.json()["result"]
        assert task["status"]["state"] == "completed"
        assert task["artifacts"][0]["parts"][0]["text"].startswith("✅ Event created successfully")
        stored = await backend.list_events(
            "primary", datetime(2026, 3, 2, tzinfo=UTC), datetime(2026, 3, 3, tzinfo=UTC)
        )
        assert sorted(event.summary for event in stored) == ["Cancelled sync", "Meeting with John"]

    async def test_message_stream_behaves_like_send(self, app):
        response = await _post(app, _send("hello there", method="message/stream"))
        task = response.json()["result"]
        assert task["status"]["state"] == "completed"
        assert task["artifacts"][0]["parts"][0]["text"].startswith("I can help you")

    async def test_list_events_today(self, app, backend):
        backend.list_events.return_value = [
            CalendarEvent(
                id="e1",
                summary="Standup",
                start=datetime(2026, 3, 2, 9, tzinfo=UTC),
                end=datetime(2026, 3, 2, 9, 15, tzinfo=UTC),
            )
        ]

        response = await _post(app, _send("show my events today"))

        text = response.json()["result"]["artifacts"][0]["parts"][0]["text"]
        assert text.startswith("Here are your events for today:")
        _, start, end = backend.list_events.call_args.args
        assert start == datetime(2026, 3, 2, tzinfo=UTC)
        assert end == datetime(2026, 3, 3, tzinfo=UTC)

    async def test_backend_failure_is_a_failed_task(self, app, backend):
        backend.list_events.side_effect = CalendarRequestError(status_code=500, message="down")

        response = await _post(app, _send("show my events today"))

        body = response.json()
        assert "error" not in body
        task = body["result"]
        assert task["status"]["state"] == "failed"
        text, data = task["artifacts"][0]["parts"]
        assert text["text"].startswith("❌ Error: failed to list events")
        assert data["data"]["error"]["code"] == -32004
        assert data["data"]["error"]["data"]["operation"] == "list_events"


class TestDirectToolCalls:
    def _direct(self, skill: str, arguments: dict | None) -> dict:
        metadata: dict = {"skill": skill}
        if arguments is not None:
            metadata["arguments"] = arguments
        return {
            "jsonrpc": "2.0",
            "id": "d-1",
            "method": "message/send",
            "params": {"message": {"role": "user", "parts": []}, "metadata": metadata},
        }

    async def test_list_calendars(self, demo_config):
        app = create_app(demo_config, clock=_clock)
        response = await _post(app, self._direct("list_calendars", {}))

        task = response.json()["result"]
        assert task["status"]["state"] == "completed"
        assert task["history"][0]["parts"][0]["data"] == {
            "skill": "list_calendars",
            "arguments": {},
        }
        assert "Demo Calendar" in task["artifacts"][0]["parts"][0]["text"]

    async def test_update_without_event_id(self, app, backend):
        response = await _post(app, self._direct("update_event", {"title": "x"}))
        assert response.json()["error"] == {
            "code": -32602,
            "message": "invalid params: eventId is required",
        }
        backend.get_event.assert_not_awaited()

    async def test_unsupported_skill(self, app):
        response = await _post(app, self._direct("send_email", {}))
        assert response.json()["error"]["message"] == "unsupported skill: send_email"

    async def test_missing_arguments(self, app):
        response = await _post(app, self._direct("list_events", None))
        assert response.json()["error"]["code"] == -32602


class _HungModel(LanguageModel):
    async def generate(self, *, provider, model, messages, tools):
        await asyncio.sleep(5)


class TestLanguageModelDeadline:
    async def test_hung_model_falls_back_within_request_deadline(self, backend):
        config = load_config(
            {"APP_DEMO_MODE": "true", "LLM_TIMEOUT": "0.4s", "APP_REQUEST_TIMEOUT": "0.4s"}
        )
        app = create_app(config, backend=backend, language_model=_HungModel(), clock=_clock)

        response = await _post(app, _send("show my events today"))

        task = response.json()["result"]
        assert task["status"]["state"] == "completed"
        assert task["artifacts"][0]["parts"][0]["text"] == "No events found for today."
        backend.list_events.assert_awaited_once()
