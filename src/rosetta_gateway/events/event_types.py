"""Canonical stream events using Pydantic for clean serialization."""

import time
import uuid
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

EventName = Literal[
    "message_start",
    "content_block_start",
    "content_block_delta",
    "content_block_stop",
    "message_delta",
    "message_stop",
    "error",
]


class CanonicalEvent(BaseModel):
    """Base class for every event the emitter produces.

    ``event`` is the wire event name; ``data`` is the payload the transport
    layer serializes, with its own ``type`` equal to the event name.
    """

    id: str = Field(default_factory=lambda: f"event_{uuid.uuid4().hex[:8]}")
    timestamp: float = Field(default_factory=time.time)
    event: EventName

    @property
    def data(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude={"id", "timestamp", "event"}, exclude_none=False)
        return {"type": self.event, **payload}

    def to_wire(self) -> Dict[str, Any]:
        return {"event": self.event, "data": self.data}


class MessageStart(CanonicalEvent):
    """First event of every message."""

    event: Literal["message_start"] = "message_start"
    message: Dict[str, Any] = Field(..., description="Message shell with id, model, role and empty content")


class ContentBlockStart(CanonicalEvent):
    event: Literal["content_block_start"] = "content_block_start"
    index: int = Field(..., ge=0)
    content_block: Dict[str, Any] = Field(..., description="Empty text block or tool_use block with id and name")


class ContentBlockDelta(CanonicalEvent):
    """Incremental content: ``text_delta`` for text, ``input_json_delta`` for tool input."""

    event: Literal["content_block_delta"] = "content_block_delta"
    index: int = Field(..., ge=0)
    delta: Dict[str, Any]


class ContentBlockStop(CanonicalEvent):
    event: Literal["content_block_stop"] = "content_block_stop"
    index: int = Field(..., ge=0)


class MessageDelta(CanonicalEvent):
    """Carries the corrected terminal reason."""

    event: Literal["message_delta"] = "message_delta"
    delta: Dict[str, Any] = Field(..., description="stop_reason and stop_sequence")
    usage: Optional[Dict[str, Any]] = None


class MessageStop(CanonicalEvent):
    event: Literal["message_stop"] = "message_stop"


class ErrorEvent(CanonicalEvent):
    """Terminal error; replaces the normal stop sequence."""

    event: Literal["error"] = "error"
    error: Dict[str, Any] = Field(..., description="type, message and optional remediation")
