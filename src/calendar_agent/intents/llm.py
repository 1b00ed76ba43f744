"""Tool-calling intent resolution through an OpenAI-compatible inference gateway.

The gateway is called with a single chat turn: a system prompt stamped with
the current date, time and zone, the user's utterance, and one tool per
calendar operation.  A tool call maps directly onto an :class:`Intent`;
free text becomes ``clarify`` or ``help``.
"""

from __future__ import annotations

import abc
import json
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime, tzinfo
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from calendar_agent import timeparse
from calendar_agent.config import LLMConfig
from calendar_agent.intents.models import Intent, IntentKind, IntentSource

logger = logging.getLogger(__name__)

TOOL_CALL_CONFIDENCE = 0.95
CLARIFY_CONFIDENCE = 0.9
FREE_TEXT_CONFIDENCE = 0.8

CLARIFY_MARKERS = (
    "?",
    "need more",
    "clarify",
    "specify",
    "which",
    "when",
    "what time",
    "could you",
    "please provide",
)

TOOL_INTENTS: dict[str, IntentKind] = {
    "create_event": IntentKind.CREATE_EVENT,
    "list_events": IntentKind.LIST_EVENTS,
    "update_event": IntentKind.UPDATE_EVENT,
    "delete_event": IntentKind.DELETE_EVENT,
    "search_events": IntentKind.SEARCH_EVENTS,
    "get_availability": IntentKind.GET_AVAILABILITY,
}


class LanguageModelError(RuntimeError):
    """The inference gateway call failed or returned something unusable."""


# ---------------------------------------------------------------------------
# Wire models (OpenAI chat-completions shape)
# ---------------------------------------------------------------------------


class ToolFunction(BaseModel):
    name: str
    arguments: str | dict[str, Any] = "{}"


class ToolCall(BaseModel):
    id: str | None = None
    type: str = "function"
    function: ToolFunction


class ChatMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = None


class ChatUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: ChatUsage | None = None


# ---------------------------------------------------------------------------
# Tool manifest
# ---------------------------------------------------------------------------


def _tool(name: str, description: str, properties: dict, required: list[str]) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


def _string(description: str) -> dict:
    return {"type": "string", "description": description}


CALENDAR_TOOLS: list[dict] = [
    _tool(
        "create_event",
        "Create a new calendar event",
        {
            "title": _string("The title of the event"),
            "description": _string("The description of the event"),
            "start_time": _string("The start time of the event in ISO 8601 format"),
            "end_time": _string("The end time of the event in ISO 8601 format"),
            "location": _string("The location of the event"),
            "attendees": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of attendee email addresses",
            },
        },
        ["title", "start_time", "end_time"],
    ),
    _tool(
        "list_events",
        "List calendar events in a time range",
        {
            "start_date": _string("The start date for listing events in ISO 8601 format"),
            "end_date": _string("The end date for listing events in ISO 8601 format"),
        },
        ["start_date", "end_date"],
    ),
    _tool(
        "update_event",
        "Update an existing calendar event",
        {
            "event_id": _string("The ID of the event to update"),
            "title": _string("The new title of the event"),
            "description": _string("The new description of the event"),
            "start_time": _string("The new start time of the event in ISO 8601 format"),
            "end_time": _string("The new end time of the event in ISO 8601 format"),
            "location": _string("The new location of the event"),
        },
        ["event_id"],
    ),
    _tool(
        "delete_event",
        "Delete a calendar event",
        {"event_id": _string("The ID of the event to delete")},
        ["event_id"],
    ),
    _tool(
        "search_events",
        "Search for calendar events by criteria",
        {
            "query": _string("The search query to find events"),
            "start_date": _string("The start date for searching events in ISO 8601 format"),
            "end_date": _string("The end date for searching events in ISO 8601 format"),
        },
        ["query"],
    ),
    _tool(
        "get_availability",
        "Check availability (free/busy time) in a time range",
        {
            "start_time": _string("The start time for checking availability in ISO 8601 format"),
            "end_time": _string("The end time for checking availability in ISO 8601 format"),
            "duration": {
                "type": "integer",
                "description": "Minimum free slot length in minutes (default 60)",
            },
        },
        ["start_time", "end_time"],
    ),
]

_SYSTEM_PROMPT = """\
You are a helpful calendar assistant that can manage calendar events. \
You have access to calendar tools to help users with their requests.

Current date and time information:
- Current date: {date} ({weekday})
- Current time: {time}
- Timezone: {timezone}

When users ask about calendar operations, use the appropriate tool to help them:
- create_event: Create new calendar events
- list_events: List events in a time range
- update_event: Modify existing events
- delete_event: Remove events
- search_events: Find events by criteria
- get_availability: Check free/busy times

Guidelines for time handling:
- Use the current date/time above as reference for relative time calculations
- For relative times (like "tomorrow", "next week"), calculate absolute dates \
based on the current date
- All times should be in ISO 8601 format in the specified timezone ({timezone})
- If no specific time is mentioned, use reasonable defaults \
(e.g., 1-hour meetings starting at next available hour)

Always be helpful and use the tools to assist with calendar requests. \
If a request is ambiguous, ask for clarification rather than making assumptions."""


# ---------------------------------------------------------------------------
# LanguageModel capability
# ---------------------------------------------------------------------------


class LanguageModel(abc.ABC):
    """Chat-with-tools capability."""

    @abc.abstractmethod
    async def generate(
        self,
        *,
        provider: str,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ChatCompletion: ...

    async def shutdown(self) -> None:  # noqa: B027
        """Release held resources. Default is a no-op."""


class InferenceGatewayClient(LanguageModel):
    """``POST {gateway_url}/chat/completions?provider=...`` over httpx."""

    def __init__(self, config: LLMConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=config.timeout_s)

    @property
    def completions_url(self) -> str:
        return f"{self._config.gateway_url.rstrip('/')}/chat/completions"

    async def generate(
        self,
        *,
        provider: str,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ChatCompletion:
        body = {
            "model": model,
            "messages": messages,
            "tools": tools,
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }
        try:
            response = await self._http_client.post(
                self.completions_url,
                params={"provider": provider},
                json=body,
                timeout=self._config.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise TimeoutError(
                f"inference gateway timed out after {self._config.timeout_s}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise LanguageModelError(f"inference gateway request failed: {exc}") from exc

        if response.status_code >= 400:
            raise LanguageModelError(
                f"inference gateway returned {response.status_code}: {response.text[:200]}"
            )

        try:
            completion = ChatCompletion.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise LanguageModelError("inference gateway returned an invalid completion") from exc

        if completion.usage is not None:
            logger.debug(
                "LLM usage: prompt=%d completion=%d total=%d",
                completion.usage.prompt_tokens,
                completion.usage.completion_tokens,
                completion.usage.total_tokens,
            )
        return completion

    async def shutdown(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class LLMStrategy:
    """Resolve utterances with a single tool-calling chat turn.

    Errors propagate to the caller (:class:`IntentResolver`), which owns the
    fallback policy.
    """

    def __init__(
        self,
        model: LanguageModel | None,
        config: LLMConfig,
        *,
        zone: tzinfo,
        zone_name: str = "UTC",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._model = model
        self._config = config
        self._zone = zone
        self._zone_name = zone_name
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def enabled(self) -> bool:
        return self._model is not None and self._config.enabled

    @property
    def timeout_s(self) -> float:
        return self._config.timeout_s

    def build_system_prompt(self) -> str:
        now = timeparse.localize(self._clock(), self._zone)
        return _SYSTEM_PROMPT.format(
            date=now.strftime("%Y-%m-%d"),
            weekday=now.strftime("%A"),
            time=now.strftime("%H:%M:%S"),
            timezone=self._zone_name,
        )

    async def resolve(self, utterance: str) -> Intent:
        if self._model is None or not self._config.enabled:
            raise LanguageModelError("LLM service is disabled")

        started = time.monotonic()
        messages = [
            {"role": "system", "content": self.build_system_prompt()},
            {"role": "user", "content": utterance},
        ]
        completion = await self._model.generate(
            provider=self._config.provider,
            model=self._config.model,
            messages=messages,
            tools=CALENDAR_TOOLS,
        )
        intent = self.interpret(completion, utterance)
        logger.info(
            "LLM resolved intent %s (confidence %.2f) in %.0fms",
            intent.kind.value,
            intent.confidence,
            (time.monotonic() - started) * 1000,
        )
        return intent

    def interpret(self, completion: ChatCompletion, utterance: str) -> Intent:
        """Turn a chat completion into an :class:`Intent`.

        Raises
        ------
        LanguageModelError
            No choices, an unknown tool, or undecodable tool arguments.
        """
        if not completion.choices:
            raise LanguageModelError("no response choices returned from LLM")
        message = completion.choices[0].message

        if message.tool_calls:
            call = message.tool_calls[0].function
            kind = TOOL_INTENTS.get(call.name)
            if kind is None:
                raise LanguageModelError(f"unknown tool call: {call.name}")
            return Intent(
                kind=kind,
                confidence=TOOL_CALL_CONFIDENCE,
                parameters=_decode_arguments(call.arguments),
                narration=message.content or None,
                utterance=utterance,
                source=IntentSource.LLM,
            )

        content = (message.content or "").strip()
        lowered = content.lower()
        if any(marker in lowered for marker in CLARIFY_MARKERS):
            kind, confidence = IntentKind.CLARIFY, CLARIFY_CONFIDENCE
        else:
            kind, confidence = IntentKind.HELP, FREE_TEXT_CONFIDENCE
        return Intent(
            kind=kind,
            confidence=confidence,
            narration=content,
            utterance=utterance,
            source=IntentSource.LLM,
        )


def _decode_arguments(arguments: str | dict[str, Any]) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    if not arguments.strip():
        return {}
    try:
        decoded = json.loads(arguments)
    except ValueError as exc:
        raise LanguageModelError(f"failed to parse tool arguments: {exc}") from exc
    if not isinstance(decoded, dict):
        raise LanguageModelError("tool arguments must be a JSON object")
    return decoded
