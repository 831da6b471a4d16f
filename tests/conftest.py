from typing import Any, AsyncIterator, Generator, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from rosetta_gateway.pipeline import NormalizerFactory
from rosetta_gateway.settings import Settings
from rosetta_gateway.tools import PatternLibrary


def openai_chunk(
    content: Optional[str] = None,
    finish_reason: Optional[str] = None,
    tool_calls: Optional[List[dict]] = None,
) -> dict:
    delta: dict = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "qwen2.5-0.5b",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def openai_completion(content: Optional[str], finish_reason: Optional[str], tool_calls: Optional[List[dict]] = None) -> dict:
    message: dict = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-2",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "qwen2.5-0.5b",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 7, "total_tokens": 19},
    }


def anthropic_message(content: List[dict], stop_reason: Optional[str] = "end_turn") -> dict:
    return {
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": "claude-test",
        "content": content,
        "stop_reason": stop_reason,
        "usage": {"input_tokens": 10, "output_tokens": 4},
    }


async def replay(chunks: Iterable[Any]) -> AsyncIterator[Any]:
    for chunk in chunks:
        yield chunk


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def library() -> PatternLibrary:
    return PatternLibrary.default()


@pytest.fixture
def factory(settings: Settings, library: PatternLibrary) -> NormalizerFactory:
    return NormalizerFactory(settings, library)


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    from rosetta_gateway.app import create_app

    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
