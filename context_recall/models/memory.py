from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from context_recall.models.utils import generate_id, utcnow

MAX_MEMORY_CONTENT_CHARS = 500
MAX_MEMORY_CONTEXT_CHARS = 200


class MemoryStatus(enum.StrEnum):
    active = "active"
    forgotten = "forgotten"


@dataclass
class Memory:
    """A message the user marked as important.

    Immutable apart from being tombstoned by ``forget_memory``.
    """

    content: str
    context: str = ""
    tag: str | None = None
    message_id: str | None = None

    id: str = field(default_factory=generate_id)
    timestamp: datetime = field(default_factory=utcnow)
    important: bool = True
    embedding: list[float] | None = None
    status: str = MemoryStatus.active.value
    forgotten_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == MemoryStatus.active.value

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "context": self.context,
            "tag": self.tag,
            "message_id": self.message_id,
            "timestamp": self.timestamp.isoformat(),
            "important": self.important,
            "status": self.status,
            "forgotten_at": self.forgotten_at.isoformat() if self.forgotten_at else None,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Memory:
        forgotten_at = record.get("forgotten_at")
        return cls(
            id=record["id"],
            content=record["content"],
            context=record.get("context", ""),
            tag=record.get("tag"),
            message_id=record.get("message_id"),
            timestamp=datetime.fromisoformat(record["timestamp"]),
            important=record.get("important", True),
            status=record.get("status", MemoryStatus.active.value),
            forgotten_at=datetime.fromisoformat(forgotten_at) if forgotten_at else None,
        )


@dataclass
class VectorRecord:
    """The single embedding vector attached to a memory."""

    memory_id: str
    vector: list[float]
    content_hash: str
    status: str = MemoryStatus.active.value
    created_at: datetime = field(default_factory=utcnow)

    @property
    def dimensions(self) -> int:
        return len(self.vector)

    def to_record(self) -> dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "vector": self.vector,
            "content_hash": self.content_hash,
            "dimensions": self.dimensions,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> VectorRecord:
        return cls(
            memory_id=record["memory_id"],
            vector=list(record["vector"]),
            content_hash=record["content_hash"],
            status=record.get("status", MemoryStatus.active.value),
            created_at=datetime.fromisoformat(record["created_at"]),
        )
