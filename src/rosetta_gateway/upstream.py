"""Parse upstream chunks and responses from the supported dialects."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Literal, Mapping, Optional, Protocol

from openai.types.chat import ChatCompletion, ChatCompletionChunk
from pydantic import BaseModel, Field, ValidationError

from rosetta_gateway.errors import MalformedUnit, SilentFailureDetected, TransportError
from rosetta_gateway.schemas import ChatRequest, Usage

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


class ToolCallDelta(BaseModel):
    """A structured tool call fragment; ``index`` is None for whole calls."""

    index: Optional[int] = None
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    input: Optional[Dict[str, Any]] = None


class UpstreamDelta(BaseModel):
    kind: Literal["content", "control", "done"] = "content"
    text: str = ""
    tool_calls: List[ToolCallDelta] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None
    message_id: Optional[str] = None
    model: Optional[str] = None


class UpstreamResponse(BaseModel):
    """A buffered response reduced to envelope-shaped raw data.

    Tool inputs may still be strings here; the fixer normalizes them.
    """

    id: Optional[str] = None
    model: Optional[str] = None
    content: List[Dict[str, Any]] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None

    def envelope_data(self) -> Dict[str, Any]:
        return {"id": self.id, "model": self.model, "content": self.content, "usage": self.usage}


class UpstreamTransport(Protocol):
    """Collaborator that talks to the model server. Errors surface as ``TransportError``."""

    def stream(self, request: ChatRequest) -> AsyncIterator[Any]: ...

    async def complete(self, request: ChatRequest) -> Any: ...


def _decode(raw: Any) -> Any:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedUnit(f"Upstream chunk is not valid UTF-8: {e}") from None
    if isinstance(raw, str) and raw.startswith("data:"):
        payload = raw[len("data:") :].strip()
        if payload == DONE_MARKER:
            return payload
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedUnit(f"SSE data line is not JSON: {e}") from None
    return raw


def _openai_usage(usage: Any) -> Optional[Usage]:
    if usage is None:
        return None
    return Usage(input_tokens=usage.prompt_tokens or 0, output_tokens=usage.completion_tokens or 0)


def _gemini_usage(raw: Mapping[str, Any]) -> Optional[Usage]:
    metadata = raw.get("usageMetadata")
    if not isinstance(metadata, Mapping):
        return None
    return Usage(
        input_tokens=metadata.get("promptTokenCount", 0) or 0,
        output_tokens=metadata.get("candidatesTokenCount", 0) or 0,
    )


def _loads_or_raw(arguments: Optional[str]) -> Any:
    if not arguments:
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        return arguments


def parse_stream_chunk(raw: Any) -> UpstreamDelta:
    """Turn one upstream streaming unit into an ``UpstreamDelta``.

    Plain strings are raw model text. Mappings are recognized as OpenAI
    ``chat.completion.chunk``, Anthropic stream events, Gemini candidates or
    Ollama chunks.
    """
    unit = _decode(raw)
    if isinstance(unit, str):
        if unit.strip() == DONE_MARKER:
            return UpstreamDelta(kind="done")
        return UpstreamDelta(text=unit)
    if not isinstance(unit, Mapping):
        raise MalformedUnit(f"Upstream chunk has unsupported type {type(unit).__name__}")

    if "choices" in unit:
        return _parse_openai_chunk(unit)
    if "candidates" in unit:
        return _parse_gemini(unit)
    if "type" in unit:
        return _parse_anthropic_event(unit)
    if "done" in unit and ("message" in unit or "response" in unit):
        return _parse_ollama(unit)
    raise MalformedUnit(f"Unrecognized upstream chunk with keys {sorted(unit)}")


def _parse_openai_chunk(unit: Mapping[str, Any]) -> UpstreamDelta:
    try:
        chunk = ChatCompletionChunk.model_validate(unit)
    except ValidationError as e:
        raise MalformedUnit(f"Invalid chat.completion.chunk: {e.error_count()} validation errors") from None

    delta = UpstreamDelta(message_id=chunk.id, model=chunk.model, usage=_openai_usage(chunk.usage))
    if not chunk.choices:
        delta.kind = "control"
        return delta
    choice = chunk.choices[0]
    delta.text = choice.delta.content or ""
    for call in choice.delta.tool_calls or []:
        delta.tool_calls.append(
            ToolCallDelta(
                index=call.index,
                id=call.id,
                name=call.function.name if call.function else None,
                arguments=call.function.arguments if call.function else None,
            )
        )
    delta.finish_reason = choice.finish_reason
    return delta


def _parse_anthropic_event(unit: Mapping[str, Any]) -> UpstreamDelta:
    event_type = unit["type"]
    if event_type == "message_start":
        message = unit.get("message") or {}
        usage = message.get("usage") or {}
        return UpstreamDelta(
            kind="control",
            message_id=message.get("id"),
            model=message.get("model"),
            usage=Usage(input_tokens=usage.get("input_tokens", 0), output_tokens=usage.get("output_tokens", 0)),
        )
    if event_type == "content_block_start":
        block = unit.get("content_block") or {}
        if block.get("type") == "tool_use":
            return UpstreamDelta(
                tool_calls=[ToolCallDelta(index=unit.get("index"), id=block.get("id"), name=block.get("name"))]
            )
        if block.get("type") == "text":
            return UpstreamDelta(text=block.get("text") or "")
        return UpstreamDelta(kind="control")
    if event_type == "content_block_delta":
        payload = unit.get("delta") or {}
        if payload.get("type") == "text_delta":
            return UpstreamDelta(text=payload.get("text") or "")
        if payload.get("type") == "input_json_delta":
            return UpstreamDelta(
                tool_calls=[ToolCallDelta(index=unit.get("index"), arguments=payload.get("partial_json") or "")]
            )
        return UpstreamDelta(kind="control")
    if event_type == "message_delta":
        usage = unit.get("usage") or {}
        return UpstreamDelta(
            finish_reason=(unit.get("delta") or {}).get("stop_reason"),
            usage=Usage(output_tokens=usage["output_tokens"]) if "output_tokens" in usage else None,
        )
    if event_type == "message_stop":
        return UpstreamDelta(kind="done")
    if event_type in ("ping", "content_block_stop"):
        return UpstreamDelta(kind="control")
    if event_type == "error":
        error = unit.get("error") or {}
        raise TransportError(f"Upstream stream error: {error.get('message', 'unknown error')}")
    raise MalformedUnit(f"Unknown stream event type '{event_type}'")


def _gemini_parts(unit: Mapping[str, Any]) -> Dict[str, Any]:
    candidates = unit.get("candidates") or []
    if not candidates:
        return {"text": "", "calls": [], "finish_reason": None}
    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    text: List[str] = []
    calls: List[ToolCallDelta] = []
    for part in parts:
        if "text" in part and not part.get("thought"):
            text.append(part["text"])
        elif "functionCall" in part:
            call = part["functionCall"]
            calls.append(ToolCallDelta(id=call.get("id"), name=call.get("name"), input=call.get("args") or {}))
    return {"text": "".join(text), "calls": calls, "finish_reason": candidate.get("finishReason")}


def _parse_gemini(unit: Mapping[str, Any]) -> UpstreamDelta:
    parts = _gemini_parts(unit)
    return UpstreamDelta(
        text=parts["text"],
        tool_calls=parts["calls"],
        finish_reason=parts["finish_reason"],
        usage=_gemini_usage(unit),
        model=unit.get("modelVersion"),
    )


def _parse_ollama(unit: Mapping[str, Any]) -> UpstreamDelta:
    message = unit.get("message") or {}
    delta = UpstreamDelta(text=message.get("content") or unit.get("response") or "", model=unit.get("model"))
    for call in message.get("tool_calls") or []:
        function = call.get("function") or {}
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            delta.tool_calls.append(ToolCallDelta(name=function.get("name"), arguments=arguments))
        else:
            delta.tool_calls.append(ToolCallDelta(name=function.get("name"), input=arguments or {}))
    if unit.get("done"):
        delta.finish_reason = unit.get("done_reason")
        if "eval_count" in unit:
            delta.usage = Usage(input_tokens=unit.get("prompt_eval_count", 0), output_tokens=unit["eval_count"])
    return delta


def parse_response(raw: Any) -> UpstreamResponse:
    """Reduce a buffered upstream response to envelope-shaped data."""
    unit = _decode(raw)
    if isinstance(unit, str):
        try:
            unit = json.loads(unit)
        except json.JSONDecodeError as e:
            raise MalformedUnit(f"Upstream response is not JSON: {e}") from None
    if not isinstance(unit, Mapping):
        raise MalformedUnit(f"Upstream response has unsupported type {type(unit).__name__}")

    if "choices" in unit:
        return _parse_openai_response(unit)
    if "candidates" in unit:
        parts = _gemini_parts(unit)
        content: List[Dict[str, Any]] = []
        if parts["text"]:
            content.append({"type": "text", "text": parts["text"]})
        for call in parts["calls"]:
            content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.input})
        return UpstreamResponse(
            model=unit.get("modelVersion"),
            content=content,
            finish_reason=parts["finish_reason"],
            usage=_gemini_usage(unit),
        )
    if unit.get("type") == "message" or ("content" in unit and "stop_reason" in unit):
        return _parse_anthropic_message(unit)
    if "done" in unit and ("message" in unit or "response" in unit):
        delta = _parse_ollama(unit)
        content = [{"type": "text", "text": delta.text}] if delta.text else []
        for call in delta.tool_calls:
            content.append(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.input or call.arguments}
            )
        return UpstreamResponse(model=delta.model, content=content, finish_reason=delta.finish_reason, usage=delta.usage)
    raise MalformedUnit(f"Unrecognized upstream response with keys {sorted(unit)}")


def _parse_openai_response(unit: Mapping[str, Any]) -> UpstreamResponse:
    choices = unit.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], Mapping) and choices[0].get("finish_reason") is None:
        raise SilentFailureDetected("chat.completion has no finish_reason")
    try:
        completion = ChatCompletion.model_validate(unit)
    except ValidationError as e:
        raise MalformedUnit(f"Invalid chat.completion: {e.error_count()} validation errors") from None
    if not completion.choices:
        raise MalformedUnit("chat.completion has no choices")

    choice = completion.choices[0]
    content: List[Dict[str, Any]] = []
    if choice.message.content:
        content.append({"type": "text", "text": choice.message.content})
    for call in choice.message.tool_calls or []:
        function = getattr(call, "function", None)
        content.append(
            {
                "type": "tool_use",
                "id": call.id,
                "name": function.name if function else None,
                "input": _loads_or_raw(function.arguments if function else None),
            }
        )
    return UpstreamResponse(
        id=completion.id,
        model=completion.model,
        content=content,
        finish_reason=choice.finish_reason,
        usage=_openai_usage(completion.usage),
    )


def _parse_anthropic_message(unit: Mapping[str, Any]) -> UpstreamResponse:
    blocks = unit.get("content")
    if not isinstance(blocks, list):
        raise MalformedUnit("Anthropic message content must be a list")
    content: List[Dict[str, Any]] = []
    for block in blocks:
        if isinstance(block, Mapping) and block.get("type") in ("text", "tool_use"):
            content.append(dict(block))
        else:
            logger.debug(f"[UPSTREAM] Skipping content block {block!r:.80}")
    usage = unit.get("usage") or {}
    return UpstreamResponse(
        id=unit.get("id"),
        model=unit.get("model"),
        content=content,
        finish_reason=unit.get("stop_reason"),
        usage=Usage(input_tokens=usage.get("input_tokens", 0), output_tokens=usage.get("output_tokens", 0)),
    )
