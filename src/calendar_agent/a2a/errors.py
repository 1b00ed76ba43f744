"""JSON-RPC error codes and the exception hierarchy of the A2A layer.

Every failure the agent reports to a client is an :class:`A2AError` carrying
its JSON-RPC ``code``, a human-readable ``message`` and optional ``data``.

Code mapping:
- ``ParseError`` → -32700 (malformed envelope)
- ``MethodNotFoundError`` → -32601 (unknown or unimplemented method)
- ``InvalidParamsError`` → -32602 (structurally invalid parameters)
- ``InternalError`` → -32603 (anything unexpected)
- ``TaskNotFoundError`` → -32000
- ``UnsupportedContentError`` → -32001
- ``CalendarServiceError`` → -32004 (calendar backend failures)
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TASK_NOT_FOUND = -32000
UNSUPPORTED_CONTENT = -32001
CALENDAR_SERVICE_ERROR = -32004


class A2AError(Exception):
    """Base class for errors that map onto a JSON-RPC error object."""

    code: int = INTERNAL_ERROR
    default_message: str = "internal error"

    def __init__(self, message: str | None = None, *, data: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def to_error_object(self) -> dict[str, Any]:
        """Render as the ``error`` member of a JSON-RPC response."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class ParseError(A2AError):
    code = PARSE_ERROR
    default_message = "parse error"


class MethodNotFoundError(A2AError):
    code = METHOD_NOT_FOUND
    default_message = "method not found"


class InvalidParamsError(A2AError):
    code = INVALID_PARAMS
    default_message = "invalid params"


class EmptyMessageError(InvalidParamsError):
    """The message carried no usable text part."""

    default_message = "message text cannot be empty"


class InternalError(A2AError):
    code = INTERNAL_ERROR
    default_message = "internal error"


class TaskNotFoundError(A2AError):
    code = TASK_NOT_FOUND
    default_message = "task not found"


class UnsupportedContentError(A2AError):
    code = UNSUPPORTED_CONTENT
    default_message = "unsupported content type"


class CalendarServiceError(A2AError):
    """A calendar backend call failed.

    ``data`` always carries ``operation``, ``calendarId`` and ``timestamp``
    so clients can correlate the failure with backend logs.
    """

    code = CALENDAR_SERVICE_ERROR
    default_message = "calendar service error"

    def __init__(
        self,
        message: str | None = None,
        *,
        operation: str,
        calendar_id: str,
        timestamp: datetime | None = None,
    ) -> None:
        self.operation = operation
        self.calendar_id = calendar_id
        moment = timestamp or datetime.now(UTC)
        super().__init__(
            message,
            data={
                "operation": operation,
                "calendarId": calendar_id,
                "timestamp": moment.isoformat(),
            },
        )
