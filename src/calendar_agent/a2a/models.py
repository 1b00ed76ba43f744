"""Pydantic models for the A2A wire format.

Field names are snake_case in Python and camelCase on the wire
(``message_id`` ↔ ``messageId``).  Always serialise through :func:`dump`
so aliases are applied and unset optional fields are omitted.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextPart(_WireModel):
    kind: Literal["text"] = "text"
    text: str


class DataPart(_WireModel):
    kind: Literal["data"] = "data"
    data: dict[str, Any]


Part = Annotated[TextPart | DataPart, Field(discriminator="kind")]


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(_WireModel):
    kind: Literal["message"] = "message"
    role: Role
    message_id: str
    parts: list[Part]
    context_id: str | None = None
    task_id: str | None = None


class TaskState(StrEnum):
    SUBMITTED = "submitted"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskStatus(_WireModel):
    state: TaskState
    timestamp: str
    message: Message | None = None


class Artifact(_WireModel):
    artifact_id: str
    parts: list[Part]
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None


class Task(_WireModel):
    id: str
    context_id: str
    kind: Literal["task"] = "task"
    status: TaskStatus
    artifacts: list[Artifact] = Field(default_factory=list)
    history: list[Message] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Agent card
# ---------------------------------------------------------------------------


class AgentCapabilities(_WireModel):
    streaming: bool = False
    push_notifications: bool = False
    state_transition_history: bool = False


class AgentSkill(_WireModel):
    id: str
    name: str
    description: str
    input_modes: list[str] = Field(default_factory=lambda: ["text/plain"])
    output_modes: list[str] = Field(default_factory=lambda: ["text/plain", "application/json"])
    examples: list[str] = Field(default_factory=list)


class AgentCard(_WireModel):
    name: str
    description: str
    url: str
    version: str
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    default_input_modes: list[str] = Field(default_factory=lambda: ["text/plain"])
    default_output_modes: list[str] = Field(
        default_factory=lambda: ["text/plain", "application/json"]
    )
    skills: list[AgentSkill] = Field(default_factory=list)


def dump(model: BaseModel) -> dict[str, Any]:
    """Serialise a wire model to a JSON-ready dict with camelCase keys."""
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")
