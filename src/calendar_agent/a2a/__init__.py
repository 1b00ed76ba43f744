"""A2A protocol layer: JSON-RPC envelopes, message extraction, task assembly."""

from calendar_agent.a2a.envelope import Envelope, EnvelopeCodec, Method
from calendar_agent.a2a.errors import (
    A2AError,
    CalendarServiceError,
    EmptyMessageError,
    InternalError,
    InvalidParamsError,
    MethodNotFoundError,
    ParseError,
    TaskNotFoundError,
    UnsupportedContentError,
)
from calendar_agent.a2a.extractor import DirectToolCall, MessageExtractor
from calendar_agent.a2a.mapper import ErrorMapper
from calendar_agent.a2a.tasks import TaskAssembler

__all__ = [
    "A2AError",
    "CalendarServiceError",
    "DirectToolCall",
    "EmptyMessageError",
    "Envelope",
    "EnvelopeCodec",
    "ErrorMapper",
    "InternalError",
    "InvalidParamsError",
    "Method",
    "MessageExtractor",
    "MethodNotFoundError",
    "ParseError",
    "TaskAssembler",
    "TaskNotFoundError",
    "UnsupportedContentError",
]
