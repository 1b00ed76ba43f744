"""Pull the user utterance (or a direct tool call) out of ``message/send`` params."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from calendar_agent.a2a.errors import EmptyMessageError, InvalidParamsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectToolCall:
    """A structured ``metadata.skill`` + ``metadata.arguments`` request."""

    skill: str
    arguments: dict[str, Any] = field(default_factory=dict)


class MessageExtractor:
    """Reads ``params.message.parts`` in order and returns the first text part.

    Data parts and malformed parts are skipped.  A message with no text, or
    only whitespace, is rejected with :class:`EmptyMessageError`; callers
    that support direct tool calls catch it and consult
    :meth:`direct_tool_call` instead.
    """

    def extract(self, params: Any) -> str:
        message = self._message(params)
        parts = message.get("parts")
        if not isinstance(parts, list):
            raise InvalidParamsError("invalid params: missing message parts")

        for index, part in enumerate(parts):
            if not isinstance(part, Mapping):
                logger.debug("Skipping non-object message part at index %d", index)
                continue
            if part.get("kind") != "text":
                continue
            text = part.get("text")
            if isinstance(text, str):
                if not text.strip():
                    raise EmptyMessageError()
                return text

        raise EmptyMessageError()

    def message_id(self, params: Any) -> str | None:
        """Return the client-supplied ``messageId``, if any."""
        if not isinstance(params, Mapping):
            return None
        message = params.get("message")
        if not isinstance(message, Mapping):
            return None
        value = message.get("messageId")
        return value if isinstance(value, str) and value else None

    def direct_tool_call(self, params: Any) -> DirectToolCall | None:
        """Return the direct tool call in ``params.metadata``, or ``None``.

        Raises
        ------
        InvalidParamsError
            If a skill is named but ``arguments`` is missing or not an object.
        """
        if not isinstance(params, Mapping):
            return None
        metadata = params.get("metadata")
        if not isinstance(metadata, Mapping):
            return None
        skill = metadata.get("skill")
        if not isinstance(skill, str) or not skill.strip():
            return None
        arguments = metadata.get("arguments")
        if not isinstance(arguments, Mapping):
            raise InvalidParamsError("invalid params: direct tool call missing arguments")
        return DirectToolCall(skill=skill.strip(), arguments=dict(arguments))

    @staticmethod
    def _message(params: Any) -> Mapping[str, Any]:
        if not isinstance(params, Mapping):
            raise InvalidParamsError("invalid params: params must be an object")
        message = params.get("message")
        if not isinstance(message, Mapping):
            raise InvalidParamsError("invalid params: missing message")
        return message
