"""Streaming chat completions for voice turns."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from functools import lru_cache
from typing import Any, Protocol

from openai import AsyncAzureOpenAI, AsyncOpenAI
from openai.types.chat import ChatCompletionChunk

from app.core.logging import get_logger
from app.core.settings import Settings, get_settings
from app.models.conversation import CompletionDelta, ConversationHistory

logger = get_logger(__name__)

QUERY_STOCK_TOOL_NAME = "query_stock"

# ruff: noqa: E501
QUERY_STOCK_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": QUERY_STOCK_TOOL_NAME,
        "description": (
            "Use this function whenever a user asks about the availability, stock, or whether "
            "the shop carries or sells vinyl records. This includes inquiries about specific "
            "artists, album titles, or genres. This is the primary tool to determine if a record "
            "is in the shop's inventory. Examples: 'Do you have Taylor Swift?', 'Is Dark Side of "
            "the Moon in stock?', 'What Rock vinyl do you sell?'."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "RecordTitle": {
                    "type": "string",
                    "description": "The name of an album for a vinyl record. Provide if the user specifies an album title.",
                },
                "Artist": {
                    "type": "string",
                    "description": "The name of the band or artist. Extract this if the user mentions an artist. Format with capital letters for each word (e.g., Pink Floyd, The Beatles, Kendrick Lamar).",
                },
                "Genre": {
                    "type": "string",
                    "description": "The genre of the album or artist. Extract this if the user mentions a genre. Format with capital letters for each word (e.g., Hip Hop, Rock, Indie, Prog Rock, Alt Rock, Pop, Trip Hop, Folk Rock, Grunge, Punk). If not explicitly mentioned but inferable, use the closest match.",
                },
            },
            "additionalProperties": False,
        },
    },
}

VOICE_TOOLS: list[dict[str, Any]] = [QUERY_STOCK_TOOL]


class CompletionService(Protocol):
    def stream(
        self,
        history: ConversationHistory,
        tools: Sequence[dict[str, Any]] = ...,
    ) -> AsyncIterator[CompletionDelta]: ...


def history_to_chat_messages(history: ConversationHistory) -> list[dict[str, str]]:
    """Convert conversation history into chat completion message params."""

    return [
        {"role": message.role.value, "name": message.author, "content": message.content}
        for message in history
    ]


def chunk_to_delta(chunk: ChatCompletionChunk) -> CompletionDelta | None:
    """Map one streamed chunk to a delta; ``None`` for chunks with no choice."""

    if not chunk.choices:
        return None
    choice = chunk.choices[0]
    delta = choice.delta
    finish_reason = choice.finish_reason

    if delta is not None and delta.tool_calls:
        function = delta.tool_calls[0].function
        return CompletionDelta(
            tool_call=True,
            tool_name=function.name if function else None,
            tool_arguments=function.arguments if function else None,
            finish_reason=finish_reason,
        )

    content = delta.content if delta is not None else None
    return CompletionDelta(text=content or None, finish_reason=finish_reason)


class OpenAICompletionService:
    """Chat completion streaming through OpenAI or Azure OpenAI."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # Built on first use so a missing key fails the turn, not app startup.
        if self._client is None:
            self._client = build_openai_client(self._settings)
        return self._client

    async def stream(
        self,
        history: ConversationHistory,
        tools: Sequence[dict[str, Any]] = VOICE_TOOLS,
    ) -> AsyncIterator[CompletionDelta]:
        settings = self._settings
        response = await self.client.chat.completions.create(
            model=settings.voice_model,
            messages=history_to_chat_messages(history),
            max_completion_tokens=settings.voice_max_completion_tokens,
            tools=list(tools),
            stream=True,
        )
        async for chunk in response:
            delta = chunk_to_delta(chunk)
            if delta is not None:
                yield delta


def build_openai_client(settings: Settings) -> AsyncOpenAI:
    """Construct the configured OpenAI client.

    Raises:
        ValueError: If the selected provider has no credentials configured.
    """

    timeout = settings.voice_completion_timeout_seconds
    if settings.llm_provider == "azure":
        if not settings.azure_openai_endpoint or not settings.azure_openai_api_key:
            raise ValueError("AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY must be configured.")
        return AsyncAzureOpenAI(
            azure_endpoint=settings.azure_openai_endpoint,
            api_key=settings.azure_openai_api_key,
            api_version=settings.azure_openai_api_version,
            azure_deployment=settings.voice_model,
            timeout=timeout,
        )

    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY not configured in settings.")
    return AsyncOpenAI(api_key=settings.openai_api_key, timeout=timeout)


@lru_cache
def get_completion_service() -> OpenAICompletionService:
    """Build or fetch the process-wide completion service."""

    service = OpenAICompletionService()
    logger.info(
        "Completion service initialized",
        extra={
            "component": "voice_completion",
            "operation": "init",
            "context_data": {
                "provider": service._settings.llm_provider,
                "model": service._settings.voice_model,
            },
        },
    )
    return service
