import pytest

from rosetta_gateway.errors import MalformedUnit, SilentFailureDetected
from rosetta_gateway.events import MessageDelta, MessageStop
from rosetta_gateway.schemas import ResponseEnvelope, TextBlock
from rosetta_gateway.validation import ValidationGate


def test_empty_content_is_a_silent_failure():
    with pytest.raises(SilentFailureDetected) as exc_info:
        ValidationGate().validate(ResponseEnvelope(content=[], terminal_reason="end_turn"))

    assert exc_info.value.remediation


@pytest.mark.parametrize("reason", [None, "unknown", "NULL"])
def test_envelope_reason_must_be_real(reason):
    envelope = ResponseEnvelope(content=[TextBlock(text="hi")], terminal_reason=reason)

    with pytest.raises(SilentFailureDetected):
        ValidationGate().validate_envelope(envelope)


def test_valid_envelope_passes():
    envelope = ResponseEnvelope(content=[TextBlock(text="hi")], terminal_reason="end_turn")

    assert ValidationGate().validate(envelope) is envelope


@pytest.mark.parametrize(
    "unit",
    [
        None,
        "",
        b"",
        {},
        {"choices": [{"index": 0, "delta": {}, "finish_reason": "unknown"}]},
        {"type": "message_delta", "delta": {"stop_reason": "undefined"}},
        {"candidates": [{"finishReason": "default"}]},
        {"type": "none"},
    ],
)
def test_silent_chunks(unit):
    with pytest.raises(SilentFailureDetected):
        ValidationGate().validate_chunk(unit)


def test_unsupported_chunk_type():
    with pytest.raises(MalformedUnit):
        ValidationGate().validate_chunk(42)


def test_chunks_are_counted():
    gate = ValidationGate()
    gate.validate("hello")
    gate.validate({"type": "ping"})

    assert gate.chunk_count == 2
    gate.finish_stream()


def test_zero_chunk_stream():
    with pytest.raises(SilentFailureDetected):
        ValidationGate().finish_stream()


def test_message_delta_needs_reason():
    gate = ValidationGate()

    with pytest.raises(SilentFailureDetected):
        gate.validate_event(MessageDelta(delta={"stop_reason": None}))
    with pytest.raises(SilentFailureDetected):
        gate.validate_event(MessageDelta(delta={"stop_reason": "unknown"}))
    assert gate.validate_event(MessageStop()).event == "message_stop"


def test_custom_sentinels():
    gate = ValidationGate(sentinel_values=["n/a"])

    with pytest.raises(SilentFailureDetected):
        gate.validate_chunk({"done": True, "done_reason": "N/A", "message": {}})
    assert gate.validate_chunk({"done": True, "done_reason": "unknown", "message": {}})
