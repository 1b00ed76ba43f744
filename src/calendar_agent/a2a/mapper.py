"""Central mapping from failures to JSON-RPC responses.

Two rendering paths exist:

- Decode, routing and parameter-validation failures become a JSON-RPC
  ``error`` envelope.
- Failures while executing a calendar operation become a ``success``
  envelope whose ``result`` is a ``failed`` task, so ``message/send``
  clients always observe a task.
"""

from __future__ import annotations

import logging
from typing import Any

from calendar_agent.a2a.envelope import EnvelopeCodec
from calendar_agent.a2a.errors import A2AError, InternalError, InvalidParamsError
from calendar_agent.a2a.models import Message, dump
from calendar_agent.a2a.tasks import TaskAssembler

logger = logging.getLogger(__name__)


class ErrorMapper:
    def __init__(self, codec: EnvelopeCodec, assembler: TaskAssembler) -> None:
        self._codec = codec
        self._assembler = assembler

    def classify(self, exc: BaseException) -> A2AError:
        """Return the :class:`A2AError` that represents *exc*."""
        if isinstance(exc, A2AError):
            return exc
        if isinstance(exc, TimeoutError):
            return InternalError("request timed out")
        logger.error("Unexpected error while handling request", exc_info=exc)
        return InternalError()

    def is_task_failure(self, error: A2AError) -> bool:
        """True when *error* should surface as a failed task rather than an error envelope."""
        return not isinstance(error, InvalidParamsError)

    def render_error(self, request_id: Any, exc: BaseException) -> dict[str, Any]:
        error = self.classify(exc)
        return self._codec.error(request_id, error.code, error.message, error.data)

    def render_failed_task(
        self,
        request_id: Any,
        exc: BaseException,
        user_message: Message,
    ) -> dict[str, Any]:
        error = self.classify(exc)
        logger.warning("Request failed with code %d: %s", error.code, error.message)
        task = self._assembler.failed(user_message, error)
        return self._codec.success(request_id, dump(task))

    def render_execution_failure(
        self,
        request_id: Any,
        exc: BaseException,
        user_message: Message,
    ) -> dict[str, Any]:
        """Render a failure raised after the user message was accepted."""
        error = self.classify(exc)
        if self.is_task_failure(error):
            return self.render_failed_task(request_id, error, user_message)
        logger.info("Rejected request parameters: %s", error.message)
        return self.render_error(request_id, error)
