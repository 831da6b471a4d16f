import json

import pytest

from rosetta_gateway.errors import MalformedUnit, SilentFailureDetected, UnrecoverableTokenLimit
from rosetta_gateway.events import (
    CanonicalEventEmitter,
    EnvelopeAssembler,
    ErrorEvent,
    MessageStop,
    format_sse,
)
from rosetta_gateway.schemas import ResponseEnvelope, TextBlock, ToolUseBlock, Usage


def names(events):
    return [event.event for event in events]


def test_streamed_text_then_tool_use():
    emitter = CanonicalEventEmitter(message_id="msg_1", model="m")
    events = emitter.start()
    events += emitter.text("Hello ")
    events += emitter.text("world")
    events += emitter.tool_use(ToolUseBlock(id="toolu_1", name="f", input={"a": 1}))
    events += emitter.finish("tool_use", is_tool_use=True)

    assert names(events) == [
        "message_start",
        "content_block_start",
        "content_block_delta",
        "content_block_delta",
        "content_block_stop",
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
    ]
    assert events[5].content_block == {"type": "tool_use", "id": "toolu_1", "name": "f", "input": {}}
    assert json.loads(events[6].delta["partial_json"]) == {"a": 1}
    assert events[-1].delta["stop_reason"] == "tool_use"


def test_message_stop_only_without_tool_use():
    emitter = CanonicalEventEmitter()
    emitter.start()
    emitter.text("Hi")

    events = emitter.finish("end_turn", is_tool_use=False, usage=Usage(output_tokens=2))

    assert names(events) == ["content_block_stop", "message_delta", "message_stop"]
    assert events[1].usage == {"output_tokens": 2}
    assert emitter.closed


def test_block_indexes_are_sequential():
    emitter = CanonicalEventEmitter()
    emitter.start()
    events = emitter.text_block("one") + emitter.text_block("two") + emitter.text("three")

    starts = [event.index for event in events if event.event == "content_block_start"]
    assert starts == [0, 1, 2]


def test_envelope_round_trip():
    envelope = ResponseEnvelope(
        id="msg_1",
        model="m",
        content=[
            TextBlock(text="Checking."),
            TextBlock(text="Still checking."),
            ToolUseBlock(id="toolu_1", name="f", input={"a": [1, 2]}),
        ],
        usage=Usage(input_tokens=3, output_tokens=5),
        terminal_reason="tool_use",
    )
    events = CanonicalEventEmitter(message_id="msg_1", model="m").emit_envelope(envelope, "tool_use", True)

    assert EnvelopeAssembler().format_complete_response(events) == envelope


def test_envelope_round_trip_without_usage():
    envelope = ResponseEnvelope(id="msg_2", model="m", content=[TextBlock(text="Hi")], terminal_reason="end_turn")
    events = CanonicalEventEmitter(message_id="msg_2", model="m").emit_envelope(envelope, "end_turn", False)

    rebuilt = EnvelopeAssembler().format_complete_response(events)

    assert rebuilt.usage is None
    assert rebuilt == envelope


def test_abort_emits_one_error_event():
    emitter = CanonicalEventEmitter()
    emitter.start()
    emitter.text("partial")

    events = emitter.abort(SilentFailureDetected("Response has no content"))

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert events[0].error == {"type": "silent_failure_detected", "message": "Response has no content"}
    assert emitter.abort(SilentFailureDetected("again")) == []
    with pytest.raises(MalformedUnit):
        emitter.text("more")


def test_abort_with_unclassified_error():
    events = CanonicalEventEmitter().abort(RuntimeError("boom"))

    assert events[0].error == {"type": "gateway_error", "message": "boom"}


@pytest.mark.parametrize("call", ["text", "finish"])
def test_content_before_start_is_rejected(call):
    emitter = CanonicalEventEmitter()

    with pytest.raises(MalformedUnit):
        if call == "text":
            emitter.text("x")
        else:
            emitter.finish("end_turn", False)


def test_start_twice_is_rejected():
    emitter = CanonicalEventEmitter()
    emitter.start()

    with pytest.raises(MalformedUnit):
        emitter.start()


def test_assembler_raises_classified_error():
    error = UnrecoverableTokenLimit("too long")

    with pytest.raises(UnrecoverableTokenLimit) as exc_info:
        EnvelopeAssembler().add(ErrorEvent(error=error.to_dict()["error"]))

    assert exc_info.value.remediation == error.remediation


def test_format_sse():
    assert format_sse(MessageStop()) == {"event": "message_stop", "data": '{"type": "message_stop"}'}


def test_event_data_carries_type():
    emitter = CanonicalEventEmitter(message_id="msg_7", model="m")
    start = emitter.start(Usage(input_tokens=4))[0]

    assert start.data["type"] == "message_start"
    assert start.data["message"]["id"] == "msg_7"
    assert start.data["message"]["usage"] == {"input_tokens": 4, "output_tokens": 0}
    assert "timestamp" not in start.data
