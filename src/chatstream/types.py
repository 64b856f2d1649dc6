"""Shared data types for chatstream."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

from chatstream.errors import ConfigError


# ---------------------------------------------------------------------------
# Conversation types
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    """Speaker of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single role/content turn.  Order within a request is significant."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") as well as Role members
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(Role.ASSISTANT, content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


@dataclass(frozen=True)
class CompletionRequest:
    """Messages plus sampling temperature for one call."""

    messages: tuple[Message, ...]
    temperature: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))
        if not MIN_TEMPERATURE <= self.temperature <= MAX_TEMPERATURE:
            raise ConfigError(
                f"temperature must be within [{MIN_TEMPERATURE}, {MAX_TEMPERATURE}],"
                f" got {self.temperature}"
            )

    @classmethod
    def of(cls, messages: Sequence[Message], temperature: float) -> "CompletionRequest":
        return cls(tuple(messages), temperature)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Events emitted towards the UI boundary."""

    CHAT_TOKEN = "chat.token"
    CHAT_DONE = "chat.done"
    CHAT_ERROR = "chat.error"


@dataclass
class ChatEvent:
    """Event emitted by the orchestrator via the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
