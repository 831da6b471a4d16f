"""Turn tool call candidates found in text into canonical tool-use blocks."""

import logging
import uuid
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from pydantic import BaseModel

from rosetta_gateway.errors import ExtractionFailure
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.schemas import ToolCallCandidate, ToolUseBlock
from rosetta_gateway.tools.repair import parse_json_with_repair

logger = logging.getLogger(__name__)


def generate_tool_id(prefix: str = "toolu_") -> str:
    return f"{prefix}{uuid.uuid4().hex[:24]}"


class TextFallback(BaseModel):
    """A candidate that could not become a tool call; its text is kept as-is."""

    text: str
    reason: str


def coerce_arguments(value: Any) -> Tuple[Dict[str, Any], bool]:
    """Return ``(mapping, changed)`` for a tool input given in any shape.

    Strings are parsed (with repair). Anything that does not end up as a
    mapping raises ``ExtractionFailure``.
    """
    if value is None:
        return {}, True
    if isinstance(value, Mapping):
        return dict(value), False
    if isinstance(value, str):
        if not value.strip():
            return {}, True
        parsed, _ = parse_json_with_repair(value)
        if isinstance(parsed, Mapping):
            return dict(parsed), True
        raise ExtractionFailure(f"Tool arguments decode to {type(parsed).__name__}, expected an object")
    raise ExtractionFailure(f"Tool arguments have type {type(value).__name__}, expected an object")


def tool_from_object(obj: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str], Any]:
    """Read ``(id, name, arguments)`` from any supported tool object shape.

    Supported: ``{"type": "tool_use", "id", "name", "input"}``,
    ``{"name", "input" | "arguments" | "parameters"}``, OpenAI
    ``{"id", "type": "function", "function": {"name", "arguments"}}`` and the
    ``function_name`` / ``tool_name`` spellings.
    """
    function = obj.get("function")
    if isinstance(function, Mapping):
        return obj.get("id"), function.get("name"), function.get("arguments")

    name = obj.get("name") or obj.get("function_name") or obj.get("tool_name")
    arguments: Any = None
    for key in ("input", "arguments", "parameters"):
        if key in obj:
            arguments = obj[key]
            break
    return obj.get("id"), name, arguments


class ToolCallExtractor:
    """Parse candidates into ``ToolUseBlock``s, falling back to plain text."""

    def __init__(
        self,
        min_confidence: float = 0.5,
        id_prefix: str = "toolu_",
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        self.min_confidence = min_confidence
        self.id_prefix = id_prefix
        self.log = request_logger or RequestLogger(logger)

    def extract(self, candidate: ToolCallCandidate) -> Union[ToolUseBlock, TextFallback]:
        if candidate.is_partial:
            return TextFallback(text=candidate.text, reason="partial_match")
        if candidate.confidence < self.min_confidence:
            return TextFallback(text=candidate.text, reason="below_threshold")
        try:
            block = self._build(candidate)
        except ExtractionFailure as e:
            self.log.warning(
                f"[EXTRACT] {candidate.method} at {candidate.start} kept as text: {e.message}",
                data={
                    "error_type": e.error_type,
                    "method": candidate.method,
                    "confidence": candidate.confidence,
                    "truncated": candidate.truncated,
                },
            )
            return TextFallback(text=candidate.text, reason=e.error_type)
        self.log.info(f"[EXTRACT] Tool call {block.name} ({block.id}) from {candidate.method}")
        return block

    def _build(self, candidate: ToolCallCandidate) -> ToolUseBlock:
        raw = candidate.raw_arguments
        if candidate.payload_kind == "arguments":
            if not candidate.name:
                raise ExtractionFailure("Tool call has no name")
            if not raw.strip():
                if candidate.truncated:
                    raise ExtractionFailure("Tool call arguments never started")
                raw = "{}"
            arguments, _ = coerce_arguments(raw)
            return ToolUseBlock(id=generate_tool_id(self.id_prefix), name=candidate.name, input=arguments)

        value, steps = parse_json_with_repair(raw)
        if steps:
            self.log.debug(f"[EXTRACT] Repaired tool object with {steps}")
        if not isinstance(value, Mapping):
            raise ExtractionFailure(f"Tool object decodes to {type(value).__name__}")
        tool_id, name, arguments = tool_from_object(value)
        if not name or not isinstance(name, str):
            raise ExtractionFailure("Tool object has no name")
        inputs, _ = coerce_arguments(arguments)
        if not isinstance(tool_id, str) or not tool_id:
            tool_id = generate_tool_id(self.id_prefix)
        return ToolUseBlock(id=tool_id, name=name, input=inputs)
