from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from context_recall.models.utils import generate_id, utcnow

CONTINUOUS_CONVERSATION_ID = "continuous-main"

_SUMMARY_PREVIEW_CHARS = 100


class Role(enum.StrEnum):
    user = "user"
    assistant = "assistant"
    system = "system"


@dataclass(frozen=True)
class Message:
    """A single chat message. Immutable once created."""

    role: Role
    content: str
    id: str = field(default_factory=generate_id)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def sort_key(self) -> str:
        """Key that orders messages by ``(timestamp, id)`` lexicographically."""
        micros = int(self.timestamp.timestamp() * 1_000_000)
        return f"{micros:020d}:{self.id}"

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": str(self.role),
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Message:
        return cls(
            id=record["id"],
            role=Role(record["role"]),
            content=record["content"],
            timestamp=datetime.fromisoformat(record["timestamp"]),
        )


@dataclass
class ConversationSummary:
    """Derived metadata of the single continuous conversation."""

    id: str = CONTINUOUS_CONVERSATION_ID
    first_message: str = ""
    last_message: str = ""
    message_count: int = 0
    updated_at: datetime = field(default_factory=utcnow)

    def absorb(self, messages: list[Message]) -> None:
        """Fold newly appended messages (in order) into the summary."""
        for message in messages:
            if message.role == Role.user and not self.first_message:
                self.first_message = message.content[:_SUMMARY_PREVIEW_CHARS]
            if message.role == Role.assistant:
                self.last_message = message.content[:_SUMMARY_PREVIEW_CHARS]
        self.message_count += len(messages)
        self.updated_at = utcnow()

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "first_message": self.first_message,
            "last_message": self.last_message,
            "message_count": self.message_count,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ConversationSummary:
        return cls(
            id=record.get("id", CONTINUOUS_CONVERSATION_ID),
            first_message=record.get("first_message", ""),
            last_message=record.get("last_message", ""),
            message_count=int(record.get("message_count", 0)),
            updated_at=datetime.fromisoformat(record["updated_at"]),
        )


@dataclass
class Conversation:
    """The continuous conversation with its derived summary fields."""

    messages: list[Message] = field(default_factory=list)
    id: str = CONTINUOUS_CONVERSATION_ID

    @property
    def first_message(self) -> str:
        for message in self.messages:
            if message.role == Role.user:
                return message.content[:_SUMMARY_PREVIEW_CHARS]
        return ""

    @property
    def last_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == Role.assistant:
                return message.content[:_SUMMARY_PREVIEW_CHARS]
        return ""

    @property
    def message_count(self) -> int:
        return len(self.messages)
