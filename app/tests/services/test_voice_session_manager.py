"""Tests for the session registry and caller context seeding."""

from __future__ import annotations

import pytest

from app.models.conversation import ConversationRole
from app.models.knowledge import StoreRecord
from app.services.voice.caller_context import build_caller_context, normalize_caller_number
from app.services.voice.prompts import VOICE_SYSTEM_PROMPT
from app.services.voice.session_manager import (
    TurnState,
    close_voice_session,
    count_active_voice_sessions,
    create_voice_session,
    get_voice_session,
    set_store_directory,
)


def test_new_session_starts_idle_with_system_prompt() -> None:
    session = create_voice_session()

    assert session.session_id
    assert session.processing is False
    assert session.state == TurnState.IDLE
    assert session.filler_cursor == 0
    assert [message.content for message in session.history] == [VOICE_SYSTEM_PROMPT]


def test_new_session_includes_loaded_store_directory() -> None:
    set_store_directory(
        [StoreRecord(id=1, name="Northern Quarter Records", address="1 Oldham Street", city="Manchester")]
    )

    session = create_voice_session()

    assert len(session.history) == 2
    assert session.history[1].role == ConversationRole.SYSTEM
    assert "Northern Quarter Records" in session.history[1].content


def test_sessions_are_registered_until_closed() -> None:
    session = create_voice_session("session-a")

    assert get_voice_session("session-a") is session
    assert count_active_voice_sessions() == 1
    with pytest.raises(ValueError):
        create_voice_session("session-a")

    close_voice_session("session-a")
    close_voice_session("session-a")

    assert get_voice_session("session-a") is None
    assert count_active_voice_sessions() == 0


def test_sessions_do_not_share_history() -> None:
    first = create_voice_session()
    second = create_voice_session()

    first.history.append(first.history[0].with_content("extra"))

    assert len(second.history) == 1


@pytest.mark.parametrize(
    ("raw_from", "anonymous", "expected"),
    [
        ("+441610000000", None, "+441610000000"),
        ("  123 ", None, "123"),
        ("client:Anonymous", "123", "123"),
        ("client:Anonymous", None, None),
        ("", "123", None),
        (None, "123", None),
    ],
)
def test_normalize_caller_number(raw_from, anonymous, expected) -> None:
    assert normalize_caller_number(raw_from, anonymous) == expected


@pytest.mark.asyncio
async def test_caller_context_survives_lookup_failure(knowledge_store) -> None:
    """A failing identity lookup still yields the genre list."""

    class FailingLookup:
        async def lookup_caller(self, phone_number: str):
            raise RuntimeError("lookup down")

    messages = await build_caller_context(
        "123",
        caller_lookup=FailingLookup(),
        knowledge_store=knowledge_store,
    )

    assert len(messages) == 1
    assert messages[0].content.startswith("Here is a list of genres")


@pytest.mark.asyncio
async def test_caller_context_without_number(knowledge_store) -> None:
    messages = await build_caller_context(
        None,
        caller_lookup=knowledge_store,
        knowledge_store=knowledge_store,
    )

    assert len(messages) == 1
