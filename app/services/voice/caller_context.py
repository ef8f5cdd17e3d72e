"""Seed a session with what we know about the caller at setup time."""

from __future__ import annotations

from app.core.logging import get_logger
from app.models.conversation import ConversationMessage
from app.services.knowledge_store import CallerIdentityLookup, KnowledgeStore
from app.services.voice.prompts import (
    build_caller_order_stock_prompt,
    build_caller_orders_prompt,
    build_caller_profile_prompt,
    build_genre_list_prompt,
)
from app.utils.error_logger import log_error

logger = get_logger(__name__)

ANONYMOUS_CLIENT_IDENTITY = "client:Anonymous"


def normalize_caller_number(raw_from: str | None, anonymous_number: str | None) -> str | None:
    """Map the transport's caller id to a phone number we can look up."""

    caller = (raw_from or "").strip()
    if not caller:
        return None
    if caller == ANONYMOUS_CLIENT_IDENTITY:
        return anonymous_number or None
    return caller


async def build_caller_context(
    caller_number: str | None,
    *,
    caller_lookup: CallerIdentityLookup,
    knowledge_store: KnowledgeStore,
    session_id: str | None = None,
) -> list[ConversationMessage]:
    """Return the system messages to append for this caller.

    Lookup failures are logged and treated as no data; the genre list is
    always included.
    """

    messages: list[ConversationMessage] = []

    customer = None
    if caller_number:
        try:
            customer = await caller_lookup.lookup_caller(caller_number)
        except Exception as exc:
            log_error(
                "caller_context",
                exc,
                operation="lookup_caller",
                item_id=session_id,
            )

    if customer is not None:
        messages.append(ConversationMessage.system(build_caller_profile_prompt(customer)))
        try:
            orders, stock = await knowledge_store.get_customer_orders(customer.id)
        except Exception as exc:
            log_error(
                "caller_context",
                exc,
                operation="get_customer_orders",
                item_id=session_id,
                context={"customer_id": customer.id},
            )
            orders, stock = [], []
        if orders:
            messages.append(ConversationMessage.system(build_caller_orders_prompt(orders)))
        if stock:
            messages.append(ConversationMessage.system(build_caller_order_stock_prompt(stock)))

    messages.append(ConversationMessage.system(build_genre_list_prompt()))

    logger.info(
        "Caller context built",
        extra={
            "component": "caller_context",
            "operation": "build",
            "item_id": session_id,
            "context_data": {
                "caller_known": customer is not None,
                "messages": len(messages),
            },
        },
    )
    return messages
