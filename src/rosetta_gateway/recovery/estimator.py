"""Character-count token estimate for outbound requests."""

import json
import math
from typing import Any

from rosetta_gateway.schemas import ChatRequest


def _content_chars(content: Any) -> int:
    if content is None:
        return 0
    if isinstance(content, str):
        return len(content)
    if isinstance(content, list):
        return sum(_content_chars(part) for part in content)
    if isinstance(content, dict):
        if "text" in content and isinstance(content["text"], str):
            return len(content["text"])
        if "input" in content:
            return len(json.dumps(content["input"], ensure_ascii=False))
        if "content" in content:
            return _content_chars(content["content"])
    return len(json.dumps(content, ensure_ascii=False, default=str))


def estimate_tokens(request: ChatRequest, chars_per_token: int = 4) -> int:
    """Roughly ``chars / chars_per_token`` over messages, system prompt and tools."""
    chars = _content_chars(request.system)
    for message in request.messages:
        chars += _content_chars(message.get("content"))
        for call in message.get("tool_calls") or []:
            chars += len(json.dumps(call, ensure_ascii=False, default=str))
    if request.tools:
        chars += len(json.dumps(request.tools, ensure_ascii=False, default=str))
    return math.ceil(chars / chars_per_token)
