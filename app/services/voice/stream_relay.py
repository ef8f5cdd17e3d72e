"""Relay streamed completion deltas to the caller and collect the turn result."""

from __future__ import annotations

from collections.abc import AsyncIterable, Awaitable, Callable

from app.core.logging import get_logger
from app.models.conversation import (
    CompletionDelta,
    ConversationHistory,
    ConversationMessage,
    StreamOutcome,
    ToolCallRequest,
)
from app.utils.error_logger import log_error

logger = get_logger(__name__)

TokenEmitter = Callable[[str, bool], Awaitable[object]]


async def relay_completion_stream(
    deltas: AsyncIterable[CompletionDelta],
    history: ConversationHistory,
    *,
    emit_token: TokenEmitter,
    on_first_delta: Callable[[], None] | None = None,
    session_id: str | None = None,
) -> StreamOutcome:
    """Forward text tokens as they arrive and return exactly one outcome.

    Text deltas are sent through ``emit_token(token, last)`` where ``last`` is
    true when the delta carries a terminal finish reason. Forwarded text that
    never saw one, such as a "length" stop or a failed stream, is closed with an
    empty final token. Tool-call deltas are accumulated instead of forwarded;
    once one is seen, later text is not part of the user-visible answer. If the
    stream raises, whatever arrived before the failure is returned rather than
    propagating the error.

    Args:
        deltas: Lazy sequence of completion deltas.
        history: Current conversation history; not mutated.
        emit_token: Sends one token event downstream.
        on_first_delta: Called once, before anything is forwarded, when the
            first text or tool fragment arrives.
        session_id: Used for log correlation only.

    Returns:
        Outcome whose history has one assistant entry appended when the pass
        produced text and no tool call.
    """

    text_fragments: list[str] = []
    tool_call = ToolCallRequest()
    tool_call_detected = False
    first_delta_seen = False
    unterminated_text = False
    delta_count = 0
    failed = False

    def mark_first_delta() -> None:
        nonlocal first_delta_seen
        if first_delta_seen:
            return
        first_delta_seen = True
        if on_first_delta is not None:
            on_first_delta()

    try:
        async for delta in deltas:
            delta_count += 1
            if delta.tool_call:
                mark_first_delta()
                tool_call_detected = True
                tool_call.add_fragment(delta.tool_name, delta.tool_arguments)
                continue

            if tool_call_detected:
                continue

            token = delta.text or ""
            if token:
                mark_first_delta()
                text_fragments.append(token)
                await emit_token(token, delta.is_terminal)
                unterminated_text = not delta.is_terminal
            elif delta.is_terminal and unterminated_text:
                # Terminal reason arrived on its own chunk; close the utterance.
                await emit_token("", True)
                unterminated_text = False
    except Exception as exc:
        failed = True
        log_error(
            "stream_relay",
            exc,
            operation="relay_stream",
            item_id=session_id,
            context={
                "deltas_received": delta_count,
                "text_chars": sum(len(fragment) for fragment in text_fragments),
                "tool_call_detected": tool_call_detected,
            },
        )

    if unterminated_text:
        # Stream ended without a terminal reason; close the utterance.
        await emit_token("", True)

    response_text = "".join(text_fragments)
    updated_history = list(history)
    if response_text and not tool_call_detected:
        updated_history.append(ConversationMessage.assistant(response_text))

    logger.debug(
        "Completion stream relayed",
        extra={
            "component": "stream_relay",
            "operation": "relay_complete",
            "item_id": session_id,
            "context_data": {
                "deltas": delta_count,
                "text_chars": len(response_text),
                "tool_call_detected": tool_call_detected,
                "tool_name": tool_call.name or None,
                "failed": failed,
            },
        },
    )

    return StreamOutcome(
        text=response_text,
        tool_call_detected=tool_call_detected,
        tool_name=tool_call.name if tool_call_detected else None,
        tool_arguments=tool_call.arguments_json if tool_call_detected else None,
        history=updated_history,
        failed=failed,
    )
