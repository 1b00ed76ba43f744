"""JSON-RPC 2.0 envelope codec.

Decoding is deliberately lenient: ``jsonrpc`` defaults to ``"2.0"`` and a
missing ``id`` is replaced by a fresh UUID.  An ``id`` that *is* present (a
string, number or ``null``) is echoed back exactly as received.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from calendar_agent.a2a.errors import ParseError

JSONRPC_VERSION = "2.0"


class Method(StrEnum):
    MESSAGE_SEND = "message/send"
    MESSAGE_STREAM = "message/stream"
    TASK_GET = "task/get"
    TASK_CANCEL = "task/cancel"


@dataclass
class Envelope:
    """A decoded JSON-RPC request.

    ``params`` is kept as received; shape validation happens where the
    parameters are consumed so errors can still echo ``id``.
    """

    id: Any
    method: Any
    params: Any = field(default_factory=dict)
    jsonrpc: str = JSONRPC_VERSION
    id_synthesized: bool = False


class EnvelopeCodec:
    """Decode request bodies and encode JSON-RPC responses."""

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def decode(self, body: bytes | str) -> Envelope:
        """Parse a request body into an :class:`Envelope`.

        Raises
        ------
        ParseError
            If the body is not valid JSON or not a JSON object.
        """
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ParseError() from exc
        if not isinstance(payload, dict):
            raise ParseError()

        synthesized = "id" not in payload
        request_id = self._id_factory() if synthesized else payload["id"]
        params = payload.get("params")
        return Envelope(
            id=request_id,
            method=payload.get("method"),
            params={} if params is None else params,
            jsonrpc=payload.get("jsonrpc") or JSONRPC_VERSION,
            id_synthesized=synthesized,
        )

    def encode(self, envelope: Envelope) -> bytes:
        """Re-encode a decoded request envelope."""
        return self._dumps(
            {
                "jsonrpc": envelope.jsonrpc,
                "id": envelope.id,
                "method": envelope.method,
                "params": envelope.params,
            }
        )

    def success(self, request_id: Any, result: Any) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    def error(
        self,
        request_id: Any,
        code: int,
        message: str,
        data: Any = None,
    ) -> dict[str, Any]:
        error: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}

    def encode_success(self, request_id: Any, result: Any) -> bytes:
        return self._dumps(self.success(request_id, result))

    def encode_error(
        self,
        request_id: Any,
        code: int,
        message: str,
        data: Any = None,
    ) -> bytes:
        return self._dumps(self.error(request_id, code, message, data))

    @staticmethod
    def _dumps(payload: dict[str, Any]) -> bytes:
        return json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
