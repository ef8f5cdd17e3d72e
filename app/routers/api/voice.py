"""Realtime voice conversation endpoints."""

from __future__ import annotations

import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Depends, WebSocket

from app.core.deps import (
    get_knowledge_store,
    get_voice_completion_service,
    get_voice_transcript_sink,
)
from app.core.logging import get_logger
from app.core.settings import get_settings
from app.routers.api.voice_models import VoiceHealthResponse, parse_inbound_message
from app.services.knowledge_store import SqlKnowledgeStore
from app.services.voice.completion import CompletionService
from app.services.voice.orchestrator import VoiceConversationOrchestrator
from app.services.voice.session_manager import (
    close_voice_session,
    count_active_voice_sessions,
    create_voice_session,
    get_store_directory,
)
from app.services.voice.transcript_sink import TranscriptSink

logger = get_logger(__name__)

router = APIRouter(prefix="/voice", tags=["voice"])


async def _send_ws_event(
    websocket: WebSocket,
    send_lock: asyncio.Lock,
    payload: dict[str, Any],
) -> bool:
    """Send one websocket event payload safely."""

    try:
        async with send_lock:
            await websocket.send_json(payload)
        return True
    except Exception:
        return False


def _log_disconnect(session_id: str, code: int | None) -> None:
    logger.info(
        "Voice websocket disconnected",
        extra={
            "component": "voice_ws",
            "operation": "disconnect",
            "item_id": session_id,
            "context_data": {"code": code},
        },
    )


@router.get("/health", response_model=VoiceHealthResponse)
async def voice_health() -> VoiceHealthResponse:
    """Return readiness of the voice pipeline collaborators."""

    settings = get_settings()
    reasons: list[str] = []
    if not settings.completion_configured:
        reasons.append(f"{settings.llm_provider} completion credentials missing")
    if not settings.transcript_sink_configured:
        reasons.append("Twilio Sync transcript sink not configured")

    return VoiceHealthResponse(
        ready=settings.completion_configured,
        completion_configured=settings.completion_configured,
        transcript_sink_configured=settings.transcript_sink_configured,
        store_directory_size=len(get_store_directory()),
        active_sessions=count_active_voice_sessions(),
        model=settings.voice_model,
        readiness_reasons=reasons,
    )


@router.websocket("/ws")
async def voice_websocket(
    websocket: WebSocket,
    completion_service: Annotated[CompletionService, Depends(get_voice_completion_service)],
    knowledge_store: Annotated[SqlKnowledgeStore, Depends(get_knowledge_store)],
    transcript_sink: Annotated[TranscriptSink, Depends(get_voice_transcript_sink)],
) -> None:
    """Handle one realtime voice connection."""

    await websocket.accept()
    session = create_voice_session()
    client_host = websocket.client.host if websocket.client else "unknown"
    logger.info(
        "Voice websocket connected",
        extra={
            "component": "voice_ws",
            "operation": "connect",
            "item_id": session.session_id,
            "context_data": {"client": client_host},
        },
    )

    send_lock = asyncio.Lock()

    async def emit(payload: dict[str, Any]) -> bool:
        return await _send_ws_event(websocket, send_lock, payload)

    orchestrator = VoiceConversationOrchestrator(
        session=session,
        emit_event=emit,
        completion_service=completion_service,
        knowledge_store=knowledge_store,
        transcript_sink=transcript_sink,
    )

    try:
        await orchestrator.start()
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                _log_disconnect(session.session_id, frame.get("code"))
                return

            raw_message = frame.get("text")
            if raw_message is None:
                logger.debug(
                    "Ignored binary voice frame",
                    extra={
                        "component": "voice_ws",
                        "operation": "receive",
                        "item_id": session.session_id,
                        "context_data": {"bytes": len(frame.get("bytes") or b"")},
                    },
                )
                continue

            message = parse_inbound_message(raw_message)
            if message is None:
                continue
            try:
                await orchestrator.dispatch(message)
            except Exception:
                logger.exception(
                    "Voice websocket failed to handle message",
                    extra={
                        "component": "voice_ws",
                        "operation": "dispatch",
                        "item_id": session.session_id,
                        "context_data": {"type": message.type},
                    },
                )
    finally:
        await orchestrator.close()
        close_voice_session(session.session_id)
