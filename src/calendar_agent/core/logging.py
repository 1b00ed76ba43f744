"""Structured logging for the calendar agent.

Uses structlog's ProcessorFormatter to transparently upgrade all existing
``logging.getLogger(__name__)`` call sites.

Two output formats:
- ``text``: Colored, human-readable console output (local development)
- ``json``: Machine-parseable JSON lines (default, for log aggregation)

The service name, the JSON-RPC request id of the request being handled and
the OTel trace context are injected automatically by processors that read
from ContextVars and the current OTel span.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar, Token

import structlog
from opentelemetry import trace

DEFAULT_SERVICE_NAME = "calendar-agent"

# ---------------------------------------------------------------------------
# Request context (asyncio-safe via ContextVar)
# ---------------------------------------------------------------------------

_service_context: ContextVar[str | None] = ContextVar("service_name", default=None)
_request_context: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_service_context(name: str) -> None:
    """Set the service name for the current async context."""
    _service_context.set(name)


def set_request_context(request_id: object) -> Token:
    """Bind the JSON-RPC request id to the current async context.

    Returns the token needed by :func:`reset_request_context`.
    """
    value = None if request_id is None else str(request_id)
    return _request_context.set(value)


def reset_request_context(token: Token) -> None:
    _request_context.reset(token)


def get_request_context() -> str | None:
    """Get the JSON-RPC request id for the current async context."""
    return _request_context.get()


# ---------------------------------------------------------------------------
# Structlog processors
# ---------------------------------------------------------------------------


def add_service_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``service`` from the ContextVar into the event dict."""
    event_dict["service"] = _service_context.get() or DEFAULT_SERVICE_NAME
    return event_dict


def add_request_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``request_id`` when a request is being handled."""
    request_id = _request_context.get()
    if request_id is not None:
        event_dict["request_id"] = request_id
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``trace_id`` and ``span_id`` from the current OTel span."""
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


# ---------------------------------------------------------------------------
# Noise suppression
# ---------------------------------------------------------------------------

_NOISE_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
)


def _build_processors(
    time_fmt: str,
) -> list[structlog.types.Processor]:
    """Build the pre-chain processor list with the given timestamp format."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt),
        add_service_context,
        add_request_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def resolve_level(level: str) -> int:
    """Map a configured level name (``debug``, ``info``, ``warn``, ``error``) to logging's."""
    return getattr(logging, level.upper(), logging.INFO)


# ---------------------------------------------------------------------------
# configure_logging()
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "info",
    fmt: str = "json",
    service_name: str | None = None,
) -> None:
    """Configure structured logging for the process.

    Parameters
    ----------
    level:
        Root log level (``"debug"``, ``"info"``, ``"warn"``, ``"error"``).
    fmt:
        Output format: ``"text"`` for colored console, ``"json"`` for JSON lines.
    service_name:
        Service identity stamped on every record.  Defaults to
        ``calendar-agent``.
    """
    if service_name:
        set_service_context(service_name)

    if fmt == "json":
        console_processors = _build_processors(time_fmt="iso")
        renderer = structlog.processors.JSONRenderer()
    else:
        console_processors = _build_processors(time_fmt="%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=console_processors,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    # Remove existing handlers to avoid duplicate output on reconfiguration
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(resolve_level(level))

    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *console_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
