"""JSON-RPC dispatch for the ``/a2a`` endpoint.

One request runs the whole pipeline in a single coroutine::

    decode -> route -> extract -> resolve -> execute -> assemble -> encode

Decode, routing and parameter failures become JSON-RPC error envelopes.
Anything that fails once execution has started becomes a ``failed`` task
(see :class:`~calendar_agent.a2a.mapper.ErrorMapper`).  The HTTP status is
always 200.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

from calendar_agent.a2a.envelope import Envelope, EnvelopeCodec, Method
from calendar_agent.a2a.errors import (
    EmptyMessageError,
    InvalidParamsError,
    MethodNotFoundError,
    ParseError,
)
from calendar_agent.a2a.extractor import DirectToolCall, MessageExtractor
from calendar_agent.a2a.mapper import ErrorMapper
from calendar_agent.a2a.models import Message, dump
from calendar_agent.a2a.tasks import TaskAssembler
from calendar_agent.core.logging import reset_request_context, set_request_context
from calendar_agent.executor import CalendarExecutor, intent_for_skill
from calendar_agent.intents.resolver import IntentResolver

logger = logging.getLogger(__name__)

UNIMPLEMENTED_METHODS = frozenset({Method.TASK_GET, Method.TASK_CANCEL})
MESSAGE_METHODS = frozenset({Method.MESSAGE_SEND, Method.MESSAGE_STREAM})


class A2AService:
    """Stateless request handler shared by every ``/a2a`` call."""

    def __init__(
        self,
        *,
        resolver: IntentResolver,
        executor: CalendarExecutor,
        request_timeout_s: float = 30.0,
        codec: EnvelopeCodec | None = None,
        extractor: MessageExtractor | None = None,
        assembler: TaskAssembler | None = None,
    ) -> None:
        self._resolver = resolver
        self._executor = executor
        self._request_timeout_s = request_timeout_s
        self._codec = codec or EnvelopeCodec()
        self._extractor = extractor or MessageExtractor()
        self._assembler = assembler or TaskAssembler()
        self._mapper = ErrorMapper(self._codec, self._assembler)

    async def handle(self, body: bytes) -> dict[str, Any]:
        """Turn a raw request body into a JSON-RPC response object."""
        try:
            envelope = self._codec.decode(body)
        except ParseError as exc:
            logger.info("Rejected unparseable request body")
            return self._mapper.render_error(None, exc)

        token = set_request_context(envelope.id)
        started = time.monotonic()
        try:
            response = await self._dispatch(envelope)
        finally:
            logger.info(
                "Handled %s in %.0fms",
                envelope.method,
                (time.monotonic() - started) * 1000,
            )
            reset_request_context(token)
        return response

    async def _dispatch(self, envelope: Envelope) -> dict[str, Any]:
        method = envelope.method
        if not isinstance(method, str):
            return self._mapper.render_error(envelope.id, MethodNotFoundError())
        if method in MESSAGE_METHODS:
            return await self._message_send(envelope)
        if method in UNIMPLEMENTED_METHODS:
            return self._mapper.render_error(
                envelope.id, MethodNotFoundError(f"{method} not implemented")
            )
        logger.info("Unknown JSON-RPC method %r", method)
        return self._mapper.render_error(envelope.id, MethodNotFoundError())

    def _read_request(self, params: Any) -> tuple[str, DirectToolCall | None]:
        """Return the utterance, or an empty utterance plus a direct tool call."""
        try:
            return self._extractor.extract(params), None
        except EmptyMessageError:
            call = self._extractor.direct_tool_call(params)
            if call is None:
                raise
            return "", call

    def _user_message(self, params: Any, text: str, call: DirectToolCall | None) -> Message:
        data = None
        if call is not None:
            data = {"skill": call.skill, "arguments": call.arguments}
        message_id = self._extractor.message_id(params) if isinstance(params, Mapping) else None
        return self._assembler.user_message(text, message_id=message_id, data=data)

    async def _message_send(self, envelope: Envelope) -> dict[str, Any]:
        params = envelope.params
        try:
            text, call = self._read_request(params)
        except InvalidParamsError as exc:
            logger.info("Rejected message: %s", exc.message)
            return self._mapper.render_error(envelope.id, exc)

        user_message = self._user_message(params, text, call)
        try:
            async with asyncio.timeout(self._request_timeout_s):
                if call is not None:
                    logger.info("Direct tool call %s", call.skill)
                    intent = intent_for_skill(call.skill, call.arguments)
                else:
                    intent = await self._resolver.resolve(text)
                result = await self._executor.execute(intent)
        except Exception as exc:
            return self._mapper.render_execution_failure(envelope.id, exc, user_message)

        task = self._assembler.completed(user_message, result)
        return self._codec.success(envelope.id, dump(task))
