"""Pydantic DTOs for voice websocket messages and health endpoint."""

from __future__ import annotations

import json
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.core.logging import get_logger

logger = get_logger(__name__)


class _InboundMessage(BaseModel):
    # Transports add their own fields (call ids, custom parameters); ignore them.
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class VoiceSetupMessage(_InboundMessage):
    """Connection established; identifies the caller."""

    type: Literal["setup"]
    from_: str | None = Field(default=None, alias="from", max_length=128)
    lang: str | None = None


class VoicePromptMessage(_InboundMessage):
    """One transcribed caller utterance."""

    type: Literal["prompt"]
    voice_prompt: str | None = Field(default=None, alias="voicePrompt")
    lang: str | None = None
    last: bool | None = None


class VoiceInterruptMessage(_InboundMessage):
    """Caller barged in; carries the text spoken before the interruption."""

    type: Literal["interrupt"]
    utterance_until_interrupt: str | None = Field(default=None, alias="utteranceUntilInterrupt")


class VoiceEndMessage(_InboundMessage):
    type: Literal["end"]


VoiceInboundMessage = Annotated[
    VoiceSetupMessage | VoicePromptMessage | VoiceInterruptMessage | VoiceEndMessage,
    Field(discriminator="type"),
]

VOICE_INBOUND_MESSAGE_ADAPTER = TypeAdapter(VoiceInboundMessage)
KNOWN_INBOUND_TYPES = frozenset({"setup", "prompt", "interrupt", "end"})


def parse_inbound_message(raw: str | bytes) -> VoiceInboundMessage | None:
    """Validate one inbound frame.

    Returns:
        The typed message, or ``None`` when the frame is not JSON, fails
        validation, or has a type this service does not handle.
    """

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        logger.info(
            "Dropped non-JSON voice message",
            extra={"component": "voice_ws", "operation": "parse_inbound"},
        )
        return None

    if not isinstance(payload, dict):
        return None

    message_type = payload.get("type")
    if not isinstance(message_type, str) or message_type not in KNOWN_INBOUND_TYPES:
        logger.debug(
            "Ignored voice message with unhandled type",
            extra={
                "component": "voice_ws",
                "operation": "parse_inbound",
                "context_data": {"type": str(message_type)[:40]},
            },
        )
        return None

    try:
        return VOICE_INBOUND_MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        logger.info(
            "Dropped invalid voice message",
            extra={
                "component": "voice_ws",
                "operation": "parse_inbound",
                "context_data": {"type": message_type, "errors": exc.error_count()},
            },
        )
        return None


class TextTokenEvent(BaseModel):
    """Outbound token sent to the voice transport."""

    type: Literal["text"] = "text"
    token: str
    last: bool
    preemptible: bool | None = None

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


class VoiceHealthResponse(BaseModel):
    """Readiness of the voice pipeline collaborators."""

    ready: bool
    completion_configured: bool
    transcript_sink_configured: bool
    store_directory_size: int
    active_sessions: int
    model: str
    readiness_reasons: list[str]
