"""Realtime voice turn orchestration for prompt -> completion -> token relay."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

from app.core.logging import get_logger
from app.core.settings import Settings, get_settings
from app.models.conversation import ConversationMessage, ConversationRole, StreamOutcome
from app.routers.api.voice_models import (
    TextTokenEvent,
    VoiceEndMessage,
    VoiceInboundMessage,
    VoiceInterruptMessage,
    VoicePromptMessage,
    VoiceSetupMessage,
)
from app.services.knowledge_store import CallerIdentityLookup, KnowledgeStore
from app.services.voice.caller_context import build_caller_context, normalize_caller_number
from app.services.voice.completion import VOICE_TOOLS, CompletionService
from app.services.voice.filler import FillerScheduler
from app.services.voice.interrupt import apply_interrupt
from app.services.voice.session_manager import TurnState, VoiceSession
from app.services.voice.stream_relay import relay_completion_stream
from app.services.voice.tool_dispatcher import ToolDispatcher
from app.services.voice.transcript_sink import TranscriptSink
from app.utils.error_logger import log_error

logger = get_logger(__name__)

EventEmitter = Callable[[dict[str, Any]], Awaitable[bool | None]]

USER_TRANSCRIPT_AUTHOR = "User"
ASSISTANT_TRANSCRIPT_AUTHOR = "System"


def _truncate_for_trace(text: str | None) -> str:
    """Bound trace text payloads to keep structured logs compact."""

    if not text:
        return ""
    settings = get_settings()
    max_chars = min(max(120, int(settings.voice_trace_max_chars)), 4_000)
    trimmed = text.strip()
    if len(trimmed) <= max_chars:
        return trimmed
    return trimmed[:max_chars].rstrip() + "..."


class VoiceConversationOrchestrator:
    """Stateful orchestrator for one websocket-bound voice conversation.

    States move ``idle -> awaiting_first_token -> streaming -> idle``, with a
    ``tool_resolving -> streaming`` detour when the first pass ends in a tool
    call. ``session.processing`` guards the whole span: a prompt arriving while
    it is set is dropped, not queued.
    """

    def __init__(
        self,
        *,
        session: VoiceSession,
        emit_event: EventEmitter,
        completion_service: CompletionService,
        knowledge_store: KnowledgeStore,
        transcript_sink: TranscriptSink,
        caller_lookup: CallerIdentityLookup | None = None,
        settings: Settings | None = None,
        filler_delay_seconds: float | None = None,
    ) -> None:
        self.session = session
        self._settings = settings or get_settings()
        self._emit_event = emit_event
        self._completion_service = completion_service
        self._knowledge_store = knowledge_store
        self._caller_lookup = caller_lookup or knowledge_store
        self._transcript_sink = transcript_sink
        if filler_delay_seconds is None:
            filler_delay_seconds = self._settings.voice_filler_delay_ms / 1000
        self._filler = FillerScheduler(self._emit_filler, delay_seconds=filler_delay_seconds)
        self._tool_dispatcher = ToolDispatcher(
            completion_service=completion_service,
            knowledge_store=knowledge_store,
        )
        self._turn_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def active_turn(self) -> asyncio.Task[None] | None:
        return self._turn_task

    def _log_trace(self, operation: str, context_data: dict[str, Any]) -> None:
        if not self._settings.voice_trace_logging:
            return
        logger.info(
            "Voice turn trace",
            extra={
                "component": "voice_orchestrator",
                "operation": operation,
                "item_id": self.session.session_id,
                "context_data": {"state": self.session.state.value, **context_data},
            },
        )

    async def start(self) -> None:
        """Announce the new connection on the transcript channel."""

        greeting = self._settings.voice_welcome_greeting.strip()
        if greeting:
            self._publish_transcript(ASSISTANT_TRANSCRIPT_AUTHOR, greeting)

    async def close(self) -> None:
        """Stop the filler, the in-flight turn and pending transcript publishes."""

        await self._filler.aclose(self.session)
        task = self._turn_task
        self._turn_task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task
        for background in list(self._background_tasks):
            background.cancel()
        self._background_tasks.clear()

    async def dispatch(self, message: VoiceInboundMessage) -> None:
        """Route one validated inbound message."""

        if isinstance(message, VoiceSetupMessage):
            await self.handle_setup(message)
        elif isinstance(message, VoicePromptMessage):
            self.submit_prompt(message.voice_prompt or "")
        elif isinstance(message, VoiceInterruptMessage):
            self.handle_interrupt(message.utterance_until_interrupt or "")
        elif isinstance(message, VoiceEndMessage):
            logger.info(
                "Caller ended the conversation",
                extra={
                    "component": "voice_orchestrator",
                    "operation": "end",
                    "item_id": self.session.session_id,
                },
            )

    async def wait_for_turn(self) -> None:
        task = self._turn_task
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    async def handle_setup(self, message: VoiceSetupMessage) -> None:
        """Seed history with caller context. Only honoured while idle."""

        session = self.session
        if session.processing:
            logger.info(
                "Setup ignored while a turn is in progress",
                extra={
                    "component": "voice_orchestrator",
                    "operation": "setup",
                    "item_id": session.session_id,
                },
            )
            return
        if session.caller_seeded:
            logger.info(
                "Setup ignored; caller context already seeded",
                extra={
                    "component": "voice_orchestrator",
                    "operation": "setup",
                    "item_id": session.session_id,
                },
            )
            return
        if not message.from_:
            return

        caller_number = normalize_caller_number(
            message.from_, self._settings.voice_anonymous_caller_number
        )
        context_messages = await build_caller_context(
            caller_number,
            caller_lookup=self._caller_lookup,
            knowledge_store=self._knowledge_store,
            session_id=session.session_id,
        )
        session.history.extend(context_messages)
        session.caller_number = caller_number
        session.caller_seeded = True
        session.touch()

    def submit_prompt(self, user_text: str) -> asyncio.Task[None] | None:
        """Start a turn for ``user_text`` unless one is already running.

        Returns:
            The turn task, or ``None`` when the prompt was dropped.
        """

        session = self.session
        prompt = user_text.strip()
        if not prompt:
            logger.info(
                "Dropped prompt without voice text",
                extra={
                    "component": "voice_orchestrator",
                    "operation": "submit_prompt",
                    "item_id": session.session_id,
                },
            )
            return None
        if session.processing:
            logger.info(
                "Dropped prompt while processing another",
                extra={
                    "component": "voice_orchestrator",
                    "operation": "submit_prompt",
                    "item_id": session.session_id,
                    "context_data": {"state": session.state.value},
                },
            )
            return None

        session.processing = True
        session.state = TurnState.AWAITING_FIRST_TOKEN
        self._filler.arm(session)
        self._turn_task = asyncio.create_task(self._run_prompt_turn(prompt))
        return self._turn_task

    async def _run_prompt_turn(self, prompt: str) -> None:
        session = self.session
        start_time = time.perf_counter()
        history_floor = len(session.history)
        self._log_trace(
            "turn_started",
            {"prompt_chars": len(prompt), "prompt_preview": _truncate_for_trace(prompt)},
        )
        try:
            session.history.append(ConversationMessage.user(prompt))
            self._publish_transcript(USER_TRANSCRIPT_AUTHOR, prompt)

            outcome = await relay_completion_stream(
                self._completion_service.stream(session.history, VOICE_TOOLS),
                session.history,
                emit_token=self._emit_token,
                on_first_delta=self._on_first_delta,
                session_id=session.session_id,
            )

            if outcome.tool_call_detected:
                session.state = TurnState.TOOL_RESOLVING
                self._filler.cancel(session)
                self._log_trace(
                    "tool_call_detected",
                    {"tool_name": outcome.tool_name, "arguments": outcome.tool_arguments},
                )
                grounded = await self._tool_dispatcher.dispatch(
                    outcome.tool_call,
                    history=outcome.history,
                    user_prompt=prompt,
                    emit_token=self._emit_token,
                    on_first_delta=self._on_first_delta,
                    session_id=session.session_id,
                )
                if grounded is not None:
                    self._merge_outcome(grounded)
            else:
                self._merge_outcome(outcome)
        except Exception as exc:
            log_error(
                "voice_orchestrator",
                exc,
                operation="prompt_turn",
                session=session,
            )
        finally:
            self._filler.cancel(session)
            session.processing = False
            session.state = TurnState.IDLE
            session.touch()
            self._log_trace(
                "turn_completed",
                {"latency_ms": int((time.perf_counter() - start_time) * 1000)},
            )
            pending_interrupt = session.pending_interrupt
            session.pending_interrupt = None
            if pending_interrupt is not None:
                if self._turn_stored_answer(history_floor):
                    self._apply_interrupt(pending_interrupt)
                else:
                    logger.warning(
                        "Interrupt dropped; the interrupted turn stored no answer",
                        extra={
                            "component": "voice_orchestrator",
                            "operation": "apply_interrupt",
                            "item_id": session.session_id,
                            "context_data": {"snippet": pending_interrupt[:200]},
                        },
                    )

    def _turn_stored_answer(self, history_floor: int) -> bool:
        return any(
            message.role == ConversationRole.ASSISTANT
            for message in self.session.history[history_floor:]
        )

    def _merge_outcome(self, outcome: StreamOutcome) -> None:
        self.session.history = outcome.history
        if outcome.text and not outcome.tool_call_detected:
            self._publish_transcript(ASSISTANT_TRANSCRIPT_AUTHOR, outcome.text)

    def _on_first_delta(self) -> None:
        self._filler.cancel(self.session)
        self.session.state = TurnState.STREAMING

    async def _emit_token(self, token: str, last: bool) -> None:
        await self._emit_event(TextTokenEvent(token=token, last=last).to_payload())

    async def _emit_filler(self, phrase: str) -> None:
        await self._emit_event(
            TextTokenEvent(token=phrase, last=True, preemptible=True).to_payload()
        )
        self._publish_transcript(ASSISTANT_TRANSCRIPT_AUTHOR, phrase)

    def handle_interrupt(self, utterance_until_interrupt: str) -> None:
        """Record what the caller actually heard of the last response.

        During a turn the assistant entry does not exist yet, so the interrupt
        is held and applied right after the turn merges its history.
        """

        if self.session.processing:
            self.session.pending_interrupt = utterance_until_interrupt
            self._log_trace("interrupt_deferred", {"snippet_chars": len(utterance_until_interrupt)})
            return
        self._apply_interrupt(utterance_until_interrupt)

    def _apply_interrupt(self, utterance_until_interrupt: str) -> None:
        result = apply_interrupt(
            self.session.history,
            utterance_until_interrupt,
            session_id=self.session.session_id,
        )
        if result.applied:
            self.session.history = result.history
            self.session.touch()
        self._publish_transcript(
            ASSISTANT_TRANSCRIPT_AUTHOR,
            result.heard_text if result.applied else utterance_until_interrupt,
            interrupt=True,
        )

    def _publish_transcript(self, author: str, text: str, *, interrupt: bool = False) -> None:
        """Fire-and-forget publish; the turn never waits on the transcript sink."""

        task = asyncio.create_task(self._publish_safely(author, text, interrupt))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _publish_safely(self, author: str, text: str, interrupt: bool) -> None:
        try:
            await self._transcript_sink.publish(author, text, interrupt=interrupt)
        except Exception as exc:
            log_error(
                "voice_orchestrator",
                exc,
                operation="publish_transcript",
                session=self.session,
                context={"author": author, "interrupt": interrupt},
            )
