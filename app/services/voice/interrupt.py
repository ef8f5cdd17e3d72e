"""Reconcile history with what the caller heard before barging in."""

from __future__ import annotations

from app.core.logging import get_logger
from app.models.conversation import (
    ConversationHistory,
    ConversationRole,
    InterruptResult,
)

logger = get_logger(__name__)

REASON_NO_ASSISTANT_MESSAGE = "no_assistant_message"
REASON_SNIPPET_NOT_FOUND = "snippet_not_found"


def _find_last_assistant_index(history: ConversationHistory) -> int | None:
    for index in range(len(history) - 1, -1, -1):
        if history[index].role == ConversationRole.ASSISTANT:
            return index
    return None


def apply_interrupt(
    history: ConversationHistory,
    utterance_until_interrupt: str,
    *,
    session_id: str | None = None,
) -> InterruptResult:
    """Truncate the most recent assistant entry to end right after the heard text.

    An empty utterance means the caller interrupted immediately, so the entry is
    truncated to empty content. When there is no assistant entry, or the heard
    text never appears in it, history is returned unchanged and the
    inconsistency is logged.

    Args:
        history: Current conversation history; not mutated.
        utterance_until_interrupt: Text the transport reports was spoken.
        session_id: Used for log correlation only.

    Returns:
        Result carrying the (possibly new) history and whether it changed.
    """

    snippet = utterance_until_interrupt or ""
    target_index = _find_last_assistant_index(history)
    if target_index is None:
        logger.warning(
            "Interrupt received with no assistant message to truncate",
            extra={
                "component": "voice_interrupt",
                "operation": "apply_interrupt",
                "item_id": session_id,
                "context_data": {"reason": REASON_NO_ASSISTANT_MESSAGE, "snippet": snippet[:200]},
            },
        )
        return InterruptResult(
            history=list(history),
            applied=False,
            reason=REASON_NO_ASSISTANT_MESSAGE,
        )

    entry = history[target_index]
    position = entry.content.find(snippet)
    if position < 0:
        logger.warning(
            "Interrupt snippet not found in last assistant message",
            extra={
                "component": "voice_interrupt",
                "operation": "apply_interrupt",
                "item_id": session_id,
                "context_data": {
                    "reason": REASON_SNIPPET_NOT_FOUND,
                    "snippet": snippet[:200],
                    "assistant_chars": len(entry.content),
                },
            },
        )
        return InterruptResult(
            history=list(history),
            applied=False,
            reason=REASON_SNIPPET_NOT_FOUND,
            details={"snippet": snippet},
        )

    # find("") is 0, so an empty snippet truncates to empty content.
    heard_text = entry.content[: position + len(snippet)]
    updated_history = list(history)
    updated_history[target_index] = entry.with_content(heard_text)

    logger.info(
        "Assistant message truncated after interrupt",
        extra={
            "component": "voice_interrupt",
            "operation": "apply_interrupt",
            "item_id": session_id,
            "context_data": {
                "original_chars": len(entry.content),
                "kept_chars": len(heard_text),
            },
        },
    )
    return InterruptResult(history=updated_history, applied=True, heard_text=heard_text)
