# mypy: ignore-errors

from conftest import anthropic_message, openai_chunk
from fastapi.testclient import TestClient


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestNormalizeResponse:
    def test_tool_call_in_text(self, client: TestClient):
        raw = anthropic_message(
            [{"type": "text", "text": 'Tool call: get_weather({"city": "NYC"})'}], stop_reason="end_turn"
        )
        response = client.post("/v1/normalize/response", json=raw, headers={"X-Request-ID": "req_abc"})

        assert response.status_code == 200
        body = response.json()
        assert body["envelope"]["terminal_reason"] == "tool_use"
        assert body["envelope"]["content"][0]["name"] == "get_weather"
        assert body["correction"]["was_corrected"] is True
        assert body["fixes_applied"]

    def test_empty_content(self, client: TestClient):
        response = client.post("/v1/normalize/response", json=anthropic_message([]))

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["type"] == "silent_failure_detected"

    def test_malformed_response(self, client: TestClient):
        response = client.post("/v1/normalize/response", json={"unexpected": True})

        assert response.status_code == 422
        assert response.json()["error"]["type"] == "malformed_unit"

    def test_malformed_json_body(self, client: TestClient):
        response = client.post(
            "/v1/normalize/response",
            content='{"type": "message", invalid json}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422


class TestNormalizeStream:
    def test_stream_events(self, client: TestClient):
        chunks = [openai_chunk(content="Hello there"), openai_chunk(finish_reason="stop"), "data: [DONE]"]
        response = client.post("/v1/normalize/stream", json={"chunks": chunks, "model": "qwen2.5-0.5b"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [line[len("event: ") :].strip() for line in response.text.splitlines() if line.startswith("event: ")]
        assert events[0] == "message_start"
        assert events[-2:] == ["message_delta", "message_stop"]
        assert '"stop_reason": "end_turn"' in response.text

    def test_missing_chunks(self, client: TestClient):
        response = client.post("/v1/normalize/stream", json={"model": "m"})

        assert response.status_code == 422
