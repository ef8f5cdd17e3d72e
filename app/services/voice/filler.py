"""Filler phrases spoken while the model has not produced its first token."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from typing import TYPE_CHECKING

from app.core.logging import get_logger

if TYPE_CHECKING:
    from app.services.voice.session_manager import VoiceSession

logger = get_logger(__name__)

FILLER_PHRASES: tuple[str, ...] = (
    "One moment, let me have a look...",
    "Okay, just give me a second here...",
    "Right, let's see...",
    "Hmm, interesting, hold on...",
    "Just processing that now...",
    "Bear with me for a moment...",
    "Let me quickly check something...",
    "Okay, I'm just pulling that up...",
    "So, um, just a little pause...",
    "Yes, I'm just reviewing...",
    "Hold the line, please...",
    "Just thinking about that...",
    "Right then, let's have a look at this...",
    "Okay, just one more second...",
)

FillerEmitter = Callable[[str], Awaitable[None]]


def next_filler_phrase(session: VoiceSession, phrases: Sequence[str] = FILLER_PHRASES) -> str:
    """Advance the session's round-robin cursor and return the phrase it lands on."""

    session.filler_cursor = (session.filler_cursor + 1) % len(phrases)
    return phrases[session.filler_cursor]


class FillerScheduler:
    """Arms one cancellable filler per prompt.

    The pending task lives on the session. Once the delay elapses the session is
    marked as having fired, after which ``cancel`` leaves the in-progress send
    alone so a half-written frame is never cut off.
    """

    def __init__(
        self,
        emit_filler: FillerEmitter,
        *,
        delay_seconds: float,
        phrases: Sequence[str] = FILLER_PHRASES,
    ) -> None:
        if not phrases:
            raise ValueError("At least one filler phrase is required")
        self._emit_filler = emit_filler
        self._delay_seconds = delay_seconds
        self._phrases = tuple(phrases)

    def arm(self, session: VoiceSession) -> None:
        self.cancel(session)
        session.filler_cancelled = False
        session.filler_fired = False
        session.pending_filler = asyncio.create_task(self._fire_after_delay(session))

    def cancel(self, session: VoiceSession) -> None:
        session.filler_cancelled = True
        task = session.pending_filler
        if task is None:
            return
        if task.done():
            session.pending_filler = None
            return
        if session.filler_fired:
            # Keep the reference so aclose can wait for the send to finish.
            return
        session.pending_filler = None
        task.cancel()

    async def _fire_after_delay(self, session: VoiceSession) -> None:
        await asyncio.sleep(self._delay_seconds)
        if session.filler_cancelled:
            return
        session.filler_fired = True
        phrase = next_filler_phrase(session, self._phrases)
        logger.info(
            "Filler phrase fired",
            extra={
                "component": "voice_filler",
                "operation": "fire",
                "item_id": session.session_id,
                "context_data": {"cursor": session.filler_cursor},
            },
        )
        await self._emit_filler(phrase)

    async def aclose(self, session: VoiceSession) -> None:
        """Stop the pending filler task and wait for it (used on disconnect).

        A filler that already fired is allowed to finish its send.
        """

        task = session.pending_filler
        session.filler_cancelled = True
        session.pending_filler = None
        if task is None:
            return
        if not session.filler_fired:
            task.cancel()
        with suppress(asyncio.CancelledError, Exception):
            await task
