"""Conversation history and turn result types."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class ConversationRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationMessage:
    """One history entry. Frozen; interrupts replace the tail entry with a copy."""

    role: ConversationRole
    author: str
    content: str

    def with_content(self, content: str) -> ConversationMessage:
        return replace(self, content=content)

    @classmethod
    def system(cls, content: str) -> ConversationMessage:
        return cls(role=ConversationRole.SYSTEM, author="system", content=content)

    @classmethod
    def user(cls, content: str) -> ConversationMessage:
        return cls(role=ConversationRole.USER, author="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> ConversationMessage:
        return cls(role=ConversationRole.ASSISTANT, author="assistant", content=content)


ConversationHistory = list[ConversationMessage]


@dataclass
class ToolCallRequest:
    """Tool call accumulated across stream fragments."""

    name: str = ""
    arguments_json: str = ""

    def add_fragment(self, name: str | None, arguments: str | None) -> None:
        # The first name fragment wins; argument characters are concatenated.
        if name and not self.name:
            self.name = name
        if arguments:
            self.arguments_json += arguments


@dataclass
class StreamOutcome:
    """Result of one completed relay pass."""

    text: str
    tool_call_detected: bool
    history: ConversationHistory
    tool_name: str | None = None
    tool_arguments: str | None = None
    failed: bool = False

    @property
    def tool_call(self) -> ToolCallRequest | None:
        if not self.tool_call_detected:
            return None
        return ToolCallRequest(name=self.tool_name or "", arguments_json=self.tool_arguments or "")


@dataclass
class CompletionDelta:
    """Transport-neutral view of one streamed completion chunk."""

    text: str | None = None
    tool_call: bool = False
    tool_name: str | None = None
    tool_arguments: str | None = None
    finish_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.finish_reason in TERMINAL_FINISH_REASONS


TERMINAL_FINISH_REASONS = frozenset({"stop", "tool_calls"})


@dataclass
class InterruptResult:
    """Outcome of reconciling history with what the caller actually heard."""

    history: ConversationHistory
    applied: bool
    reason: str | None = None
    heard_text: str = ""
    details: dict[str, object] = field(default_factory=dict)
