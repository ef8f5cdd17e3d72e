"""Tests for structured error records."""

import logging

import httpx

from app.models.conversation import ConversationMessage
from app.services.voice.session_manager import TurnState, VoiceSession
from app.utils.error_logger import describe_session, log_error, log_http_error

TWILIO_DOCUMENT_URL = "https://sync.twilio.com/v1/Services/IS123/Lists/transcript/Items"


def _streaming_session() -> VoiceSession:
    session = VoiceSession(
        session_id="session-42",
        history=[
            ConversationMessage.system("prompt"),
            ConversationMessage.user("Any Beatles?"),
        ],
        processing=True,
        state=TurnState.STREAMING,
        caller_number="123",
    )
    session.pending_interrupt = "We have"
    return session


def test_describe_session_reports_turn_state():
    assert describe_session(_streaming_session()) == {
        "state": "streaming",
        "processing": True,
        "caller_known": True,
        "history_messages": 2,
        "interrupt_pending": True,
    }


def test_log_error_attaches_session_context(caplog):
    """The session id and its turn state travel with the error record."""
    with caplog.at_level(logging.ERROR, logger="error.voice_orchestrator"):
        log_error(
            "voice_orchestrator",
            RuntimeError("stream reset"),
            operation="prompt_turn",
            context={"prompt_chars": 12},
            session=_streaming_session(),
        )

    record = caplog.records[-1]
    assert record.name == "error.voice_orchestrator"
    assert record.getMessage() == (
        "voice_orchestrator failed during prompt_turn [session session-42]: stream reset"
    )
    assert record.item_id == "session-42"
    assert record.error_type == "RuntimeError"
    assert record.context_data["prompt_chars"] == 12
    assert record.context_data["session"]["state"] == "streaming"
    assert record.http_details is None


def test_log_error_without_context_leaves_fields_empty(caplog):
    with caplog.at_level(logging.ERROR, logger="error.caller_context"):
        log_error("caller_context", ValueError("bad number"))

    record = caplog.records[-1]
    assert record.getMessage() == "caller_context failed: bad number"
    assert record.item_id is None
    assert record.context_data is None


def test_log_http_error_extracts_twilio_error_code(caplog):
    """Twilio's numeric error code and message are lifted out of the body."""
    response = httpx.Response(
        409,
        json={"code": 54208, "message": "Unique name already exists", "status": 409},
        request=httpx.Request("POST", TWILIO_DOCUMENT_URL),
    )

    with caplog.at_level(logging.ERROR, logger="error.transcript_sink"):
        log_http_error("transcript_sink", response, operation="publish")

    record = caplog.records[-1]
    assert record.operation == "publish"
    assert record.error_message == f"POST {TWILIO_DOCUMENT_URL} returned 409"
    assert record.http_details["status_code"] == 409
    assert record.http_details["method"] == "POST"
    assert record.http_details["url"] == TWILIO_DOCUMENT_URL
    assert record.http_details["provider_code"] == 54208
    assert record.http_details["provider_message"] == "Unique name already exists"


def test_log_http_error_handles_plain_text_body_without_request(caplog):
    response = httpx.Response(502, text="Bad gateway")

    with caplog.at_level(logging.ERROR, logger="error.transcript_sink"):
        log_http_error("transcript_sink", response)

    record = caplog.records[-1]
    assert record.operation == "http_request"
    assert record.error_message == "request returned 502"
    assert record.http_details == {"status_code": 502, "response_body": "Bad gateway"}
