import pytest
from conftest import anthropic_message, openai_chunk, openai_completion

from rosetta_gateway.errors import MalformedUnit, SilentFailureDetected, TransportError
from rosetta_gateway.upstream import parse_response, parse_stream_chunk


class TestParseStreamChunk:
    def test_raw_text(self):
        delta = parse_stream_chunk("Tool call: get_wea")

        assert delta.kind == "content"
        assert delta.text == "Tool call: get_wea"

    @pytest.mark.parametrize("raw", ["[DONE]", "data: [DONE]", b"data: [DONE]"])
    def test_done_marker(self, raw):
        assert parse_stream_chunk(raw).kind == "done"

    def test_openai_content(self):
        delta = parse_stream_chunk(openai_chunk(content="Hi"))

        assert delta.text == "Hi"
        assert delta.message_id == "chatcmpl-1"
        assert delta.model == "qwen2.5-0.5b"
        assert delta.finish_reason is None

    def test_openai_sse_line(self):
        import json

        line = ("data: " + json.dumps(openai_chunk(content="Hi"))).encode("utf-8")

        assert parse_stream_chunk(line).text == "Hi"

    def test_openai_tool_call_fragment(self):
        chunk = openai_chunk(
            tool_calls=[{"index": 0, "id": "call_1", "type": "function", "function": {"name": "f", "arguments": ""}}]
        )
        call = parse_stream_chunk(chunk).tool_calls[0]

        assert (call.index, call.id, call.name, call.arguments) == (0, "call_1", "f", "")

    def test_openai_finish_reason(self):
        assert parse_stream_chunk(openai_chunk(finish_reason="length")).finish_reason == "length"

    def test_invalid_openai_chunk(self):
        with pytest.raises(MalformedUnit):
            parse_stream_chunk({"choices": [{"delta": {}}]})

    def test_anthropic_events(self):
        start = parse_stream_chunk(
            {"type": "message_start", "message": {"id": "msg_1", "model": "c", "usage": {"input_tokens": 9}}}
        )
        text = parse_stream_chunk({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hi"}})
        tool = parse_stream_chunk(
            {"type": "content_block_start", "index": 1, "content_block": {"type": "tool_use", "id": "toolu_1", "name": "f"}}
        )
        args = parse_stream_chunk(
            {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"a"'}}
        )
        end = parse_stream_chunk({"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 3}})

        assert start.kind == "control" and start.message_id == "msg_1" and start.usage.input_tokens == 9
        assert text.text == "Hi"
        assert (tool.tool_calls[0].index, tool.tool_calls[0].name) == (1, "f")
        assert args.tool_calls[0].arguments == '{"a"'
        assert end.finish_reason == "end_turn" and end.usage.output_tokens == 3
        assert parse_stream_chunk({"type": "message_stop"}).kind == "done"

    def test_anthropic_error_event(self):
        with pytest.raises(TransportError):
            parse_stream_chunk({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})

    def test_unknown_event_type(self):
        with pytest.raises(MalformedUnit):
            parse_stream_chunk({"type": "mystery"})

    def test_gemini_function_call(self):
        delta = parse_stream_chunk(
            {
                "candidates": [
                    {
                        "content": {"role": "model", "parts": [{"functionCall": {"name": "f", "args": {"a": 1}}}]},
                        "finishReason": "STOP",
                    }
                ],
                "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 2},
            }
        )

        assert delta.tool_calls[0].input == {"a": 1}
        assert delta.tool_calls[0].index is None
        assert delta.finish_reason == "STOP"
        assert delta.usage.output_tokens == 2

    def test_ollama_chunk(self):
        delta = parse_stream_chunk({"model": "llama3", "message": {"role": "assistant", "content": "Hi"}, "done": False})

        assert delta.text == "Hi"
        assert delta.finish_reason is None

    def test_unrecognized_chunk(self):
        with pytest.raises(MalformedUnit):
            parse_stream_chunk({"something": "else"})


class TestParseResponse:
    def test_openai_tool_calls(self):
        raw = openai_completion(
            None,
            "tool_calls",
            tool_calls=[{"id": "call_1", "type": "function", "function": {"name": "f", "arguments": '{"a": 1}'}}],
        )
        response = parse_response(raw)

        assert response.content == [{"type": "tool_use", "id": "call_1", "name": "f", "input": {"a": 1}}]
        assert response.finish_reason == "tool_calls"
        assert response.usage.input_tokens == 12

    def test_openai_bad_arguments_left_for_fixer(self):
        raw = openai_completion(
            None,
            "tool_calls",
            tool_calls=[{"id": "call_1", "type": "function", "function": {"name": "f", "arguments": '{"a": 1'}}],
        )

        assert parse_response(raw).content[0]["input"] == '{"a": 1'

    def test_openai_missing_finish_reason(self):
        with pytest.raises(SilentFailureDetected):
            parse_response(openai_completion("Hi", None))

    def test_anthropic_message(self):
        response = parse_response(
            anthropic_message([{"type": "thinking", "thinking": "..."}, {"type": "text", "text": "Hi"}])
        )

        assert response.content == [{"type": "text", "text": "Hi"}]
        assert response.finish_reason == "end_turn"
        assert response.id == "msg_01"

    def test_gemini_response(self):
        response = parse_response(
            {"candidates": [{"content": {"parts": [{"text": "Hello"}]}, "finishReason": "MAX_TOKENS"}]}
        )

        assert response.content == [{"type": "text", "text": "Hello"}]
        assert response.finish_reason == "MAX_TOKENS"

    def test_ollama_response(self):
        response = parse_response(
            {
                "model": "llama3",
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [{"function": {"name": "f", "arguments": {"a": 1}}}],
                },
                "done": True,
                "done_reason": "stop",
            }
        )

        assert response.content == [{"type": "tool_use", "id": None, "name": "f", "input": {"a": 1}}]
        assert response.finish_reason == "stop"

    def test_json_string_body(self):
        assert parse_response('{"type": "message", "content": [], "stop_reason": "end_turn"}').content == []

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", {"unexpected": True}])
    def test_unrecognized_response(self, raw):
        with pytest.raises(MalformedUnit):
            parse_response(raw)
