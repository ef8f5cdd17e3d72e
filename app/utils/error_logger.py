"""
Structured error records for the voice pipeline.

Failures that are contained rather than propagated (stream errors, lookup
errors, transcript publish errors) are logged here so they land in the JSONL
error log configured by app/core/logging.py with the session they belong to.

Usage:
    from app.utils.error_logger import log_error, log_http_error

    log_error("voice_orchestrator", error, operation="prompt_turn", session=session)
    log_http_error("transcript_sink", response, operation="publish")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from app.core.logging import get_logger

if TYPE_CHECKING:
    from app.services.voice.session_manager import VoiceSession

_MAX_BODY_CHARS = 1000


def describe_session(session: VoiceSession) -> dict[str, Any]:
    """Turn-level facts worth having next to any failure in a session."""

    return {
        "state": session.state.value,
        "processing": session.processing,
        "caller_known": session.caller_number is not None,
        "history_messages": len(session.history),
        "interrupt_pending": session.pending_interrupt is not None,
    }


def _request_of(response: httpx.Response) -> httpx.Request | None:
    try:
        return response.request
    except RuntimeError:
        return None


def _http_details(response: httpx.Response) -> dict[str, Any]:
    request = _request_of(response)
    details: dict[str, Any] = {
        "status_code": response.status_code,
        "url": str(request.url) if request is not None else None,
        "method": request.method if request is not None else None,
        "response_body": response.text[:_MAX_BODY_CHARS],
    }
    # Twilio REST errors carry their own numeric code.
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        details["provider_code"] = body.get("code")
        details["provider_message"] = body.get("message")
    return {key: value for key, value in details.items() if value is not None}


def log_error(
    component: str,
    error: BaseException,
    *,
    operation: str | None = None,
    context: dict[str, Any] | None = None,
    session: VoiceSession | None = None,
    item_id: str | None = None,
    http_response: httpx.Response | None = None,
) -> None:
    """Log a contained failure with its session context.

    Args:
        component: Pipeline part that contained the failure.
        error: The exception that occurred.
        operation: Name of the operation that failed.
        context: Additional context data.
        session: Voice session the failure happened in; its id and turn
            state are attached.
        item_id: Session id when only the id is at hand.
        http_response: Upstream response (if applicable).
    """
    logger = get_logger(f"error.{component}")

    context_data: dict[str, Any] = {}
    if session is not None:
        item_id = item_id or session.session_id
        context_data["session"] = describe_session(session)
    if context:
        context_data.update(context)

    where = f" during {operation}" if operation else ""
    session_str = f" [session {item_id}]" if item_id else ""
    logger.error(
        f"{component} failed{where}{session_str}: {error}",
        exc_info=error,
        extra={
            "component": component,
            "operation": operation,
            "context_data": context_data or None,
            "http_details": _http_details(http_response) if http_response is not None else None,
            "item_id": item_id,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def log_http_error(
    component: str,
    response: httpx.Response,
    *,
    operation: str | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    """Log a failed upstream HTTP response that did not raise by itself."""

    request = _request_of(response)
    target = f"{request.method} {request.url}" if request is not None else "request"
    error = RuntimeError(f"{target} returned {response.status_code}")
    log_error(
        component,
        error,
        operation=operation or "http_request",
        context=context,
        http_response=response,
    )
