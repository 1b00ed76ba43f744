"""The structured form of a calendar request."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IntentKind(StrEnum):
    LIST_CALENDARS = "list_calendars"
    LIST_EVENTS = "list_events"
    CREATE_EVENT = "create_event"
    UPDATE_EVENT = "update_event"
    DELETE_EVENT = "delete_event"
    GET_EVENT = "get_event"
    SEARCH_EVENTS = "search_events"
    GET_AVAILABILITY = "get_availability"
    HELP = "help"
    CLARIFY = "clarify"


NARRATION_ONLY_KINDS = frozenset({IntentKind.HELP, IntentKind.CLARIFY})


class IntentSource(StrEnum):
    LLM = "llm"
    PATTERN = "pattern"
    DIRECT = "direct"


class Intent(BaseModel):
    """A resolved request.

    ``parameters`` uses the tool-argument vocabulary (``title``,
    ``start_time``, ``event_id`` ...) regardless of which strategy produced
    the intent, so the executor has a single input shape.  ``utterance``
    keeps the original text for handlers that read temporal phrases from it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: IntentKind
    confidence: float = Field(ge=0.0, le=1.0)
    parameters: dict[str, Any] = Field(default_factory=dict)
    narration: str | None = None
    utterance: str = ""
    source: IntentSource = IntentSource.PATTERN

    @model_validator(mode="after")
    def _narration_only_kinds_have_no_parameters(self) -> Intent:
        if self.kind in NARRATION_ONLY_KINDS and self.parameters:
            raise ValueError(f"{self.kind.value} intents carry narration only, not parameters")
        return self
