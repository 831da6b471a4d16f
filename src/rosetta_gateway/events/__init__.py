from rosetta_gateway.events.assembler import EnvelopeAssembler
from rosetta_gateway.events.emitter import BlockState, CanonicalEventEmitter
from rosetta_gateway.events.event_types import (
    CanonicalEvent,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    ErrorEvent,
    MessageDelta,
    MessageStart,
    MessageStop,
)
from rosetta_gateway.events.formatters import create_sse_response, format_sse

__all__ = [
    "BlockState",
    "CanonicalEvent",
    "CanonicalEventEmitter",
    "ContentBlockDelta",
    "ContentBlockStart",
    "ContentBlockStop",
    "EnvelopeAssembler",
    "ErrorEvent",
    "MessageDelta",
    "MessageStart",
    "MessageStop",
    "create_sse_response",
    "format_sse",
]
