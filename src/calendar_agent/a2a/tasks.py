"""Assemble A2A ``Task`` records from execution results.

A task is created per ``message/send``, reaches a terminal state in the same
request and is never stored.  Both outcomes share one shape:

- ``completed``: one ``calendar-response`` artifact holding the narration
  (plus a data part when the executor produced structured data).
- ``failed``: the assistant message is ``"❌ Error: <message>"`` and the
  artifact carries the JSON-RPC error object as data.

History is always ``[user message, assistant message]``.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from calendar_agent.a2a.models import (
    Artifact,
    DataPart,
    Message,
    Part,
    Role,
    Task,
    TaskState,
    TaskStatus,
    TextPart,
)

if TYPE_CHECKING:
    from calendar_agent.a2a.errors import A2AError
    from calendar_agent.executor import ExecutionResult

ARTIFACT_NAME = "calendar-response"
ERROR_PREFIX = "❌ Error: "


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TaskAssembler:
    def __init__(
        self,
        *,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._new_id = id_factory or _new_id
        self._clock = clock or _utc_now

    def user_message(
        self,
        text: str = "",
        *,
        message_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> Message:
        """Build the user side of the history.

        Direct tool calls have no text; their skill and arguments are kept
        as a data part instead.
        """
        parts: list[Part] = []
        if text or data is None:
            parts.append(TextPart(text=text))
        if data is not None:
            parts.append(DataPart(data=data))
        return Message(role=Role.USER, message_id=message_id or self._new_id(), parts=parts)

    def completed(self, user_message: Message, result: ExecutionResult) -> Task:
        parts: list[Part] = [TextPart(text=result.text)]
        if result.data is not None:
            parts.append(DataPart(data=result.data))
        return self._build(user_message, TaskState.COMPLETED, parts)

    def failed(self, user_message: Message, error: A2AError) -> Task:
        parts: list[Part] = [
            TextPart(text=f"{ERROR_PREFIX}{error.message}"),
            DataPart(data={"error": error.to_error_object()}),
        ]
        return self._build(user_message, TaskState.FAILED, parts)

    def _build(self, user_message: Message, state: TaskState, parts: list[Part]) -> Task:
        task_id = self._new_id()
        context_id = self._new_id()

        assistant = Message(
            role=Role.ASSISTANT,
            message_id=self._new_id(),
            context_id=context_id,
            task_id=task_id,
            parts=[part.model_copy(deep=True) for part in parts],
        )
        user = user_message.model_copy(update={"context_id": context_id, "task_id": task_id})

        return Task(
            id=task_id,
            context_id=context_id,
            status=TaskStatus(
                state=state,
                timestamp=self._clock().isoformat(),
                message=assistant,
            ),
            artifacts=[
                Artifact(
                    artifact_id=self._new_id(),
                    name=ARTIFACT_NAME,
                    parts=[part.model_copy(deep=True) for part in parts],
                )
            ],
            history=[user, assistant],
        )
