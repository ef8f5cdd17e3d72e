"""Resolve model tool calls against the knowledge store and re-prompt."""

from __future__ import annotations

import json
from collections.abc import Callable

from pydantic import ValidationError

from app.core.logging import get_logger
from app.models.conversation import (
    ConversationHistory,
    ConversationMessage,
    StreamOutcome,
    ToolCallRequest,
)
from app.models.knowledge import StockQuery, StockRecord
from app.services.knowledge_store import KnowledgeStore
from app.services.voice.completion import QUERY_STOCK_TOOL_NAME, VOICE_TOOLS, CompletionService
from app.services.voice.prompts import build_stock_grounding_prompt
from app.services.voice.stream_relay import TokenEmitter, relay_completion_stream
from app.utils.error_logger import log_error

logger = get_logger(__name__)


def parse_stock_query(arguments_json: str) -> StockQuery:
    """Parse accumulated tool arguments.

    Raises:
        ValueError: If the arguments are not a JSON object.
        pydantic.ValidationError: If a field has the wrong type.
    """

    payload = json.loads(arguments_json or "")
    if not isinstance(payload, dict):
        raise ValueError("Tool arguments must be a JSON object")
    return StockQuery.model_validate(payload)


def build_grounding_context(
    history: ConversationHistory,
    records: list[StockRecord],
    user_prompt: str,
) -> ConversationHistory:
    """Prior history, one grounding directive, then the user's utterance again."""

    return [
        *history,
        ConversationMessage.system(build_stock_grounding_prompt(records)),
        ConversationMessage.user(user_prompt),
    ]


class ToolDispatcher:
    """Runs a completed tool call and streams the grounded answer."""

    def __init__(
        self,
        *,
        completion_service: CompletionService,
        knowledge_store: KnowledgeStore,
    ) -> None:
        self._completion_service = completion_service
        self._knowledge_store = knowledge_store

    async def dispatch(
        self,
        request: ToolCallRequest,
        *,
        history: ConversationHistory,
        user_prompt: str,
        emit_token: TokenEmitter,
        on_first_delta: Callable[[], None] | None = None,
        session_id: str | None = None,
    ) -> StreamOutcome | None:
        """Resolve ``request`` and return the second pass outcome.

        The grounding directive is sent to the model but is not part of the
        returned history: the outcome's history is ``history`` plus the grounded
        assistant answer.

        Returns:
            The second pass outcome, or ``None`` when the tool call was aborted.
        """

        if request.name != QUERY_STOCK_TOOL_NAME:
            logger.warning(
                "Unknown tool requested by model",
                extra={
                    "component": "tool_dispatcher",
                    "operation": "dispatch",
                    "item_id": session_id,
                    "context_data": {"tool_name": request.name},
                },
            )
            return None

        try:
            query = parse_stock_query(request.arguments_json)
        except (ValueError, ValidationError) as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning(
                "Tool arguments could not be parsed; aborting tool call",
                extra={
                    "component": "tool_dispatcher",
                    "operation": "parse_arguments",
                    "item_id": session_id,
                    "context_data": {
                        "tool_name": request.name,
                        "arguments": request.arguments_json[:500],
                        "error": str(exc),
                    },
                },
            )
            return None

        try:
            records = await self._knowledge_store.query_stock(query)
        except Exception as exc:
            log_error(
                "tool_dispatcher",
                exc,
                operation="query_stock",
                item_id=session_id,
                context={"filters": query.populated_fields()},
            )
            records = []

        logger.info(
            "Tool call resolved",
            extra={
                "component": "tool_dispatcher",
                "operation": "dispatch",
                "item_id": session_id,
                "context_data": {
                    "tool_name": request.name,
                    "filters": query.populated_fields(),
                    "results": len(records),
                },
            },
        )

        context = build_grounding_context(history, records, user_prompt)
        return await relay_completion_stream(
            self._completion_service.stream(context, VOICE_TOOLS),
            history,
            emit_token=emit_token,
            on_first_delta=on_first_delta,
            session_id=session_id,
        )
