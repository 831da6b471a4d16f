"""Emit the canonical event sequence for one message."""

import json
import logging
import uuid
from enum import Enum
from typing import Dict, List, Optional

from rosetta_gateway.errors import GatewayError, MalformedUnit
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
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.schemas import ResponseEnvelope, TextBlock, ToolUseBlock, Usage

logger = logging.getLogger(__name__)


class BlockState(str, Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    STOPPED = "stopped"


class CanonicalEventEmitter:
    """Per-request state machine producing Anthropic-style message events.

    Every block goes ``NOT_STARTED -> STARTED -> (delta)* -> STOPPED``. The
    message gets one ``message_start``, one ``message_delta`` with the
    terminal reason and, unless that reason is tool use, one ``message_stop``.
    Out-of-order calls raise ``MalformedUnit`` instead of producing a broken
    sequence.
    """

    def __init__(
        self,
        message_id: Optional[str] = None,
        model: Optional[str] = None,
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        self.message_id = message_id or f"msg_{uuid.uuid4().hex[:24]}"
        self.model = model
        self.log = request_logger or RequestLogger(logger)
        self._started = False
        self._closed = False
        self._blocks: Dict[int, BlockState] = {}
        self._open: Optional[int] = None
        self._open_kind: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, usage: Optional[Usage] = None) -> List[CanonicalEvent]:
        if self._started:
            raise MalformedUnit("message_start already emitted")
        self._started = True
        usage = usage or Usage()
        return [
            MessageStart(
                message={
                    "id": self.message_id,
                    "type": "message",
                    "role": "assistant",
                    "model": self.model,
                    "content": [],
                    "stop_reason": None,
                    "stop_sequence": None,
                    "usage": usage.model_dump(),
                }
            )
        ]

    def text(self, delta: str) -> List[CanonicalEvent]:
        """Append streamed text, opening a text block if none is open."""
        self._require_open_message()
        if not delta:
            return []
        events: List[CanonicalEvent] = []
        if self._open_kind != "text":
            events.extend(self._close_open())
            events.append(self._start_block({"type": "text", "text": ""}, "text"))
        events.append(self._delta({"type": "text_delta", "text": delta}))
        return events

    def text_block(self, text: str) -> List[CanonicalEvent]:
        """Emit one complete text block, never merged with a neighbour."""
        self._require_open_message()
        events = self._close_open()
        events.append(self._start_block({"type": "text", "text": ""}, "text"))
        if text:
            events.append(self._delta({"type": "text_delta", "text": text}))
        events.extend(self._close_open())
        return events

    def tool_use(self, block: ToolUseBlock) -> List[CanonicalEvent]:
        self._require_open_message()
        events = self._close_open()
        events.append(
            self._start_block({"type": "tool_use", "id": block.id, "name": block.name, "input": {}}, "tool_use")
        )
        events.append(self._delta({"type": "input_json_delta", "partial_json": json.dumps(block.input)}))
        events.extend(self._close_open())
        return events

    def finish(self, reason_token: str, is_tool_use: bool, usage: Optional[Usage] = None) -> List[CanonicalEvent]:
        """Close the message with the corrected terminal reason."""
        self._require_open_message()
        events = self._close_open()
        events.append(
            MessageDelta(
                delta={"stop_reason": reason_token, "stop_sequence": None},
                usage={"output_tokens": usage.output_tokens} if usage else None,
            )
        )
        if not is_tool_use:
            events.append(MessageStop())
        self._closed = True
        self.log.debug(f"[EMITTER] Message {self.message_id} finished with {reason_token}")
        return events

    def abort(self, error: Exception) -> List[CanonicalEvent]:
        """Replace the normal stop sequence with one terminal error event."""
        if self._closed:
            return []
        if isinstance(error, GatewayError):
            payload = error.to_dict()["error"]
        else:
            payload = {"type": "gateway_error", "message": str(error) or error.__class__.__name__}
        self.log.error(f"[EMITTER] Message {self.message_id} aborted: {payload['message']}", data=payload)
        self._release()
        self._closed = True
        return [ErrorEvent(error=payload)]

    def emit_envelope(self, envelope: ResponseEnvelope, reason_token: str, is_tool_use: bool) -> List[CanonicalEvent]:
        """Full event sequence for an already materialized response."""
        events = self.start(Usage(input_tokens=envelope.usage.input_tokens) if envelope.usage else None)
        for block in envelope.content:
            if isinstance(block, TextBlock):
                events.extend(self.text_block(block.text))
            else:
                events.extend(self.tool_use(block))
        events.extend(self.finish(reason_token, is_tool_use, envelope.usage))
        return events

    def _require_open_message(self) -> None:
        if not self._started:
            raise MalformedUnit("Content emitted before message_start")
        if self._closed:
            raise MalformedUnit("Content emitted after the message was finished")

    def _start_block(self, content_block: dict, kind: str) -> CanonicalEvent:
        index = len(self._blocks)
        self._blocks[index] = BlockState.STARTED
        self._open = index
        self._open_kind = kind
        return ContentBlockStart(index=index, content_block=content_block)

    def _delta(self, delta: dict) -> CanonicalEvent:
        if self._open is None or self._blocks[self._open] is not BlockState.STARTED:
            raise MalformedUnit("content_block_delta without an open block")
        return ContentBlockDelta(index=self._open, delta=delta)

    def _close_open(self) -> List[CanonicalEvent]:
        if self._open is None:
            return []
        index = self._open
        self._blocks[index] = BlockState.STOPPED
        self._open = None
        self._open_kind = None
        return [ContentBlockStop(index=index)]

    def _release(self) -> None:
        self._blocks.clear()
        self._open = None
        self._open_kind = None
