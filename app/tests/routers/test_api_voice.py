"""Tests for public voice API routes."""

from __future__ import annotations

import json

from app.core.settings import get_settings
from app.models.conversation import CompletionDelta


def test_root_reports_liveness(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "WebSocket server is running"


def test_voice_health_returns_flags(client) -> None:
    """Voice health endpoint reports collaborator readiness."""

    response = client.get("/api/voice/health")
    assert response.status_code == 200

    payload = response.json()
    settings = get_settings()
    assert payload["model"] == settings.voice_model
    assert payload["completion_configured"] is settings.completion_configured
    assert payload["transcript_sink_configured"] is settings.transcript_sink_configured
    assert payload["active_sessions"] == 0
    assert isinstance(payload["readiness_reasons"], list)


def test_voice_websocket_streams_answer_tokens(client, completion_service, transcript_sink) -> None:
    """A prompt over the websocket is answered token by token."""

    with client.websocket_connect("/api/voice/ws") as websocket:
        websocket.send_text(json.dumps({"type": "prompt", "voicePrompt": "When do you close?"}))

        first = websocket.receive_json()
        second = websocket.receive_json()

    assert first == {"type": "text", "token": "We are open ", "last": False}
    assert second == {"type": "text", "token": "until six.", "last": True}
    assert completion_service.calls[0][-1].content == "When do you close?"


def test_voice_websocket_ignores_malformed_frames(client, completion_service) -> None:
    """Garbage and unknown message types do not close the connection."""

    with client.websocket_connect("/api/voice/ws") as websocket:
        websocket.send_text("not json")
        websocket.send_text(json.dumps(["prompt"]))
        websocket.send_text(json.dumps({"type": "dtmf", "digit": "1"}))
        websocket.send_text(json.dumps({"type": "prompt"}))
        websocket.send_text(json.dumps({"type": "prompt", "voicePrompt": "Hello?"}))

        first = websocket.receive_json()
        second = websocket.receive_json()

    assert first["token"] == "We are open "
    assert second["last"] is True
    assert len(completion_service.calls) == 1


def test_voice_websocket_ignores_binary_frames(client, completion_service) -> None:
    """A binary frame is skipped and the next prompt is still answered."""

    with client.websocket_connect("/api/voice/ws") as websocket:
        websocket.send_bytes(b"\xff\xfe garbage")
        websocket.send_text(json.dumps({"type": "prompt", "voicePrompt": "Still there?"}))

        first = websocket.receive_json()
        second = websocket.receive_json()

    assert first == {"type": "text", "token": "We are open ", "last": False}
    assert second == {"type": "text", "token": "until six.", "last": True}
    assert completion_service.calls[0][-1].content == "Still there?"


def test_voice_websocket_setup_seeds_caller_before_prompt(client, completion_service) -> None:
    """Setup from a known number adds caller context the model then sees."""

    with client.websocket_connect("/api/voice/ws") as websocket:
        websocket.send_text(json.dumps({"type": "setup", "from": "123", "lang": "en-GB"}))
        websocket.send_text(json.dumps({"type": "prompt", "voicePrompt": "Any news?"}))
        websocket.receive_json()
        websocket.receive_json()

    sent = completion_service.calls[0]
    assert any("Jane Doe" in message.content for message in sent)


def test_voice_websocket_streams_grounded_answer_after_tool_call(
    client, completion_service
) -> None:
    completion_service.passes = [
        [
            CompletionDelta(
                tool_call=True,
                tool_name="query_stock",
                tool_arguments='{"Genre": "Jazz"}',
                finish_reason="tool_calls",
            )
        ],
        [CompletionDelta(text="We have Kind of Blue.", finish_reason="stop")],
    ]

    with client.websocket_connect("/api/voice/ws") as websocket:
        websocket.send_text(json.dumps({"type": "prompt", "voicePrompt": "Any jazz?"}))
        event = websocket.receive_json()

    assert event == {"type": "text", "token": "We have Kind of Blue.", "last": True}
    assert "Blue Train" in completion_service.calls[1][-2].content
