"""Rebuild a response envelope from a canonical event sequence."""

import json
from typing import Any, Dict, Iterable, List, Optional

from rosetta_gateway.errors import MalformedUnit, error_from_payload
from rosetta_gateway.events.event_types import (
    CanonicalEvent,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    ErrorEvent,
    MessageDelta,
    MessageStart,
)
from rosetta_gateway.schemas import ContentBlock, ResponseEnvelope, TextBlock, ToolUseBlock, Usage


class EnvelopeAssembler:
    """Collects events and formats the complete response they describe."""

    def __init__(self) -> None:
        self.message: Dict[str, Any] = {}
        self.stop_reason: Optional[str] = None
        self.output_tokens: Optional[int] = None
        self._blocks: Dict[int, Dict[str, Any]] = {}
        self._parts: Dict[int, List[str]] = {}
        self._order: List[int] = []

    def add(self, event: CanonicalEvent) -> None:
        if isinstance(event, ErrorEvent):
            raise error_from_payload(event.error)
        if isinstance(event, MessageStart):
            self.message = dict(event.message)
        elif isinstance(event, ContentBlockStart):
            self._blocks[event.index] = dict(event.content_block)
            self._parts[event.index] = []
            self._order.append(event.index)
        elif isinstance(event, ContentBlockDelta):
            if event.index not in self._blocks:
                raise MalformedUnit(f"Delta for unknown block {event.index}")
            delta = event.delta
            self._parts[event.index].append(delta.get("text") or delta.get("partial_json") or "")
        elif isinstance(event, ContentBlockStop):
            if event.index not in self._blocks:
                raise MalformedUnit(f"Stop for unknown block {event.index}")
        elif isinstance(event, MessageDelta):
            self.stop_reason = event.delta.get("stop_reason")
            if event.usage:
                self.output_tokens = event.usage.get("output_tokens")

    def format_complete_response(self, events: Iterable[CanonicalEvent]) -> ResponseEnvelope:
        for event in events:
            self.add(event)
        return self.envelope()

    def envelope(self) -> ResponseEnvelope:
        content: List[ContentBlock] = []
        for index in self._order:
            block = self._blocks[index]
            joined = "".join(self._parts[index])
            if block.get("type") == "tool_use":
                content.append(
                    ToolUseBlock(id=block["id"], name=block["name"], input=json.loads(joined) if joined else {})
                )
            else:
                content.append(TextBlock(text=joined))

        usage = None
        start_usage = self.message.get("usage") or {}
        # message_start always carries a usage object; all zeros means none was known.
        if self.output_tokens is not None or any(start_usage.values()):
            usage = Usage(
                input_tokens=start_usage.get("input_tokens", 0),
                output_tokens=self.output_tokens if self.output_tokens is not None else 0,
            )
        return ResponseEnvelope(
            id=self.message.get("id"),
            model=self.message.get("model"),
            content=content,
            usage=usage,
            terminal_reason=self.stop_reason,
        )
