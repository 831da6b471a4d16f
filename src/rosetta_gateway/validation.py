"""The last check before anything leaves the core: no empty or placeholder units."""

import logging
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple

from rosetta_gateway.errors import MalformedUnit, SilentFailureDetected
from rosetta_gateway.events.event_types import CanonicalEvent, MessageDelta
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.reasons import DEFAULT_SENTINELS
from rosetta_gateway.schemas import ResponseEnvelope

logger = logging.getLogger(__name__)

# Keys that carry a terminal reason or an event type in the supported dialects.
_REASON_KEYS = ("finish_reason", "stop_reason", "finishReason", "done_reason")
_TYPE_KEYS = ("type", "event", "object")


def _walk_reasons(unit: Mapping[str, Any]) -> Iterator[Tuple[str, Any]]:
    for key in _REASON_KEYS:
        if key in unit:
            yield key, unit[key]
    for nested in ("delta", "message"):
        value = unit.get(nested)
        if isinstance(value, Mapping):
            yield from _walk_reasons(value)
    for listed in ("choices", "candidates"):
        items = unit.get(listed)
        if isinstance(items, list):
            for item in items:
                if isinstance(item, Mapping):
                    yield from _walk_reasons(item)


class ValidationGate:
    """Raises instead of letting an ambiguous unit through."""

    def __init__(
        self, sentinel_values: Iterable[str] = DEFAULT_SENTINELS, request_logger: Optional[RequestLogger] = None
    ) -> None:
        self.sentinels = frozenset(value.strip().lower() for value in sentinel_values)
        self.log = request_logger or RequestLogger(logger)
        self.chunk_count = 0

    def is_sentinel(self, value: Any) -> bool:
        return isinstance(value, str) and value.strip().lower() in self.sentinels

    def validate(self, unit: Any) -> Any:
        if isinstance(unit, CanonicalEvent):
            return self.validate_event(unit)
        if isinstance(unit, ResponseEnvelope):
            return self.validate_envelope(unit)
        return self.validate_chunk(unit)

    def validate_chunk(self, unit: Any) -> Any:
        """Check one raw upstream chunk (or a raw buffered response body)."""
        if unit is None:
            raise SilentFailureDetected("Upstream unit is null")
        if isinstance(unit, bytes):
            if not unit:
                raise SilentFailureDetected("Upstream unit is empty")
        elif isinstance(unit, str):
            if not unit:
                raise SilentFailureDetected("Upstream unit is empty")
        elif isinstance(unit, Mapping):
            if not unit:
                raise SilentFailureDetected("Upstream unit is an empty object")
            self._check_mapping(unit)
        else:
            raise MalformedUnit(f"Upstream unit has unsupported type {type(unit).__name__}")
        self.chunk_count += 1
        return unit

    def validate_event(self, event: CanonicalEvent) -> CanonicalEvent:
        if self.is_sentinel(event.event):
            raise SilentFailureDetected(f"Event type is the placeholder '{event.event}'")
        if isinstance(event, MessageDelta):
            reason = event.delta.get("stop_reason")
            if reason is None:
                raise SilentFailureDetected("message_delta carries no terminal reason")
            if self.is_sentinel(reason):
                raise SilentFailureDetected(f"message_delta carries the placeholder reason '{reason}'")
        return event

    def validate_envelope(self, envelope: ResponseEnvelope) -> ResponseEnvelope:
        if not envelope.content:
            raise SilentFailureDetected(
                "Response has no content and no declared error",
                remediation="Check the upstream response; an empty success is never passed through.",
            )
        if envelope.terminal_reason is None:
            raise SilentFailureDetected("Response has no terminal reason")
        if self.is_sentinel(envelope.terminal_reason):
            raise SilentFailureDetected(f"Response terminal reason is the placeholder '{envelope.terminal_reason}'")
        return envelope

    def finish_stream(self) -> None:
        if self.chunk_count == 0:
            raise SilentFailureDetected("Streaming session produced zero chunks")
        self.log.debug(f"[GATE] Stream passed with {self.chunk_count} chunks")

    def _check_mapping(self, unit: Mapping[str, Any]) -> None:
        for key in _TYPE_KEYS:
            if self.is_sentinel(unit.get(key)):
                raise SilentFailureDetected(f"Upstream {key} is the placeholder '{unit[key]}'")
        for key, value in _walk_reasons(unit):
            if self.is_sentinel(value):
                raise SilentFailureDetected(f"Upstream {key} is the placeholder '{value}'")
