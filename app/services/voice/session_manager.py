"""Per-connection voice session state and the process-wide store directory."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from threading import Lock
from uuid import uuid4

from app.core.logging import get_logger
from app.models.conversation import ConversationHistory, ConversationMessage
from app.models.knowledge import StoreRecord
from app.services.voice.prompts import VOICE_SYSTEM_PROMPT, build_store_directory_prompt

logger = get_logger(__name__)


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_TOKEN = "awaiting_first_token"
    STREAMING = "streaming"
    TOOL_RESOLVING = "tool_resolving"


@dataclass
class VoiceSession:
    """State for one realtime voice connection.

    Owned by the connection handler; nothing else holds a reference to the
    history list.
    """

    session_id: str
    history: ConversationHistory = field(default_factory=list)
    processing: bool = False
    state: TurnState = TurnState.IDLE
    filler_cursor: int = 0
    pending_filler: asyncio.Task[None] | None = None
    filler_cancelled: bool = False
    filler_fired: bool = False
    caller_number: str | None = None
    caller_seeded: bool = False
    pending_interrupt: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC)


_ACTIVE_VOICE_SESSIONS: dict[str, VoiceSession] = {}
_VOICE_SESSION_LOCK = Lock()
_STORE_DIRECTORY: tuple[StoreRecord, ...] = ()


def set_store_directory(stores: list[StoreRecord]) -> None:
    """Replace the cached store directory. Called once at startup."""

    global _STORE_DIRECTORY
    _STORE_DIRECTORY = tuple(stores)


def get_store_directory() -> tuple[StoreRecord, ...]:
    return _STORE_DIRECTORY


def build_initial_history() -> ConversationHistory:
    """System prompt plus the store directory when one has been loaded."""

    history: ConversationHistory = [ConversationMessage.system(VOICE_SYSTEM_PROMPT)]
    stores = get_store_directory()
    if stores:
        history.append(ConversationMessage.system(build_store_directory_prompt(stores)))
    return history


def create_voice_session(session_id: str | None = None) -> VoiceSession:
    """Create and register a freshly seeded session for a new connection.

    Args:
        session_id: Optional identifier; a UUID is generated when omitted.

    Returns:
        The new session.

    Raises:
        ValueError: If a live session already uses the identifier.
    """

    normalized_session_id = (session_id or "").strip() or str(uuid4())
    state = VoiceSession(session_id=normalized_session_id, history=build_initial_history())

    with _VOICE_SESSION_LOCK:
        if normalized_session_id in _ACTIVE_VOICE_SESSIONS:
            raise ValueError("session_id is already in use")
        _ACTIVE_VOICE_SESSIONS[normalized_session_id] = state
    return state


def get_voice_session(session_id: str) -> VoiceSession | None:
    with _VOICE_SESSION_LOCK:
        return _ACTIVE_VOICE_SESSIONS.get(session_id)


def close_voice_session(session_id: str) -> None:
    """Forget a session once its connection is gone."""

    with _VOICE_SESSION_LOCK:
        state = _ACTIVE_VOICE_SESSIONS.pop(session_id, None)
    if state is not None:
        logger.info(
            "Voice session closed",
            extra={
                "component": "voice_sessions",
                "operation": "close",
                "item_id": session_id,
                "context_data": {"history_messages": len(state.history)},
            },
        )


def count_active_voice_sessions() -> int:
    with _VOICE_SESSION_LOCK:
        return len(_ACTIVE_VOICE_SESSIONS)


def clear_voice_sessions() -> None:
    """Clear all sessions and the store directory (test helper)."""

    with _VOICE_SESSION_LOCK:
        _ACTIVE_VOICE_SESSIONS.clear()
    set_store_directory([])
