"""Server-sent event formatting for canonical events."""

import json
from typing import Any, AsyncIterator, Dict

from sse_starlette.sse import EventSourceResponse

from rosetta_gateway.events.event_types import CanonicalEvent


def format_sse(event: CanonicalEvent) -> Dict[str, Any]:
    """Convert a canonical event into the mapping sse-starlette sends."""
    return {"event": event.event, "data": json.dumps(event.data, ensure_ascii=False)}


def create_sse_response(events: AsyncIterator[CanonicalEvent]) -> EventSourceResponse:
    """Create an SSE response using sse-starlette from an event generator."""

    async def generate():
        async for event in events:
            yield format_sse(event)

    return EventSourceResponse(generate())
