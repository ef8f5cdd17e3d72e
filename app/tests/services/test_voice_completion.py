"""Tests for the OpenAI-backed completion service."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from openai.types.chat import ChatCompletionChunk
from openai.types.chat.chat_completion_chunk import (
    Choice,
    ChoiceDelta,
    ChoiceDeltaToolCall,
    ChoiceDeltaToolCallFunction,
)

from app.core.settings import Settings
from app.models.conversation import ConversationMessage
from app.services.voice.completion import (
    QUERY_STOCK_TOOL_NAME,
    VOICE_TOOLS,
    OpenAICompletionService,
    build_openai_client,
    chunk_to_delta,
    history_to_chat_messages,
)


def _chunk(delta: ChoiceDelta | None = None, finish_reason: str | None = None) -> ChatCompletionChunk:
    choices = []
    if delta is not None:
        choices = [Choice(index=0, delta=delta, finish_reason=finish_reason)]
    return ChatCompletionChunk(
        id="chatcmpl-1",
        object="chat.completion.chunk",
        created=0,
        model="o3-mini",
        choices=choices,
    )


def test_chunk_to_delta_maps_text_and_finish_reason() -> None:
    delta = chunk_to_delta(_chunk(ChoiceDelta(content="Hello"), finish_reason="stop"))

    assert delta is not None
    assert delta.text == "Hello"
    assert delta.tool_call is False
    assert delta.is_terminal is True


def test_chunk_to_delta_maps_tool_call_fragment() -> None:
    chunk = _chunk(
        ChoiceDelta(
            tool_calls=[
                ChoiceDeltaToolCall(
                    index=0,
                    id="call_1",
                    type="function",
                    function=ChoiceDeltaToolCallFunction(
                        name=QUERY_STOCK_TOOL_NAME, arguments='{"Art'
                    ),
                )
            ]
        )
    )

    delta = chunk_to_delta(chunk)

    assert delta is not None
    assert delta.tool_call is True
    assert delta.tool_name == QUERY_STOCK_TOOL_NAME
    assert delta.tool_arguments == '{"Art'
    assert delta.is_terminal is False


def test_chunk_without_choices_is_skipped() -> None:
    assert chunk_to_delta(_chunk()) is None


def test_history_to_chat_messages_keeps_author_names() -> None:
    messages = history_to_chat_messages(
        [ConversationMessage.system("rules"), ConversationMessage.user("Hi")]
    )

    assert messages == [
        {"role": "system", "name": "system", "content": "rules"},
        {"role": "user", "name": "user", "content": "Hi"},
    ]


@pytest.mark.asyncio
async def test_stream_requests_streaming_completion_with_tools() -> None:
    """The service streams with the stock tool and yields mapped deltas."""

    captured: dict[str, Any] = {}

    async def chunks():
        yield _chunk(ChoiceDelta(content="Hi"))
        yield _chunk()
        yield _chunk(ChoiceDelta(content=" there"), finish_reason="stop")

    async def create(**kwargs: Any):
        captured.update(kwargs)
        return chunks()

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    settings = Settings(_env_file=None, voice_model="o3-mini", voice_max_completion_tokens=512)
    service = OpenAICompletionService(client, settings=settings)

    deltas = [delta async for delta in service.stream([ConversationMessage.user("Hi")])]

    assert [delta.text for delta in deltas] == ["Hi", " there"]
    assert captured["stream"] is True
    assert captured["model"] == "o3-mini"
    assert captured["max_completion_tokens"] == 512
    assert captured["tools"] == VOICE_TOOLS
    assert captured["messages"][-1]["content"] == "Hi"


def test_build_openai_client_requires_credentials() -> None:
    with pytest.raises(ValueError):
        build_openai_client(Settings(_env_file=None, llm_provider="openai", openai_api_key=None))

    with pytest.raises(ValueError):
        build_openai_client(
            Settings(
                _env_file=None,
                llm_provider="azure",
                azure_openai_endpoint=None,
                azure_openai_api_key=None,
            )
        )


def test_build_openai_client_for_openai() -> None:
    client = build_openai_client(
        Settings(_env_file=None, llm_provider="openai", openai_api_key="sk-test")
    )

    assert client.api_key == "sk-test"
