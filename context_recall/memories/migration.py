"""One-time upgrade from the legacy flat layout.

The legacy layout kept the whole conversation as a single document under
``legacy_conversations/continuous-main`` (a ``messages`` array with
millisecond timestamps) and every marked memory as a flat document in
``legacy_memories``.  :func:`migrate_legacy_layout` rewrites both into the
per-record collections used by :class:`PersistentMemoryStore` and deletes
the legacy keys, all inside one ``atomic()`` block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from context_recall.models import (
    MAX_MEMORY_CONTENT_CHARS,
    MAX_MEMORY_CONTEXT_CHARS,
    ConversationSummary,
    Memory,
    Message,
    Role,
)
from context_recall.models.utils import from_epoch_ms, utcnow
from context_recall.store.base import KeyValueStore

logger = logging.getLogger(__name__)

LEGACY_CONVERSATIONS = "legacy_conversations"
LEGACY_MEMORIES = "legacy_memories"

META = "meta"
MESSAGES = "messages"
MESSAGE_INDEX = "message_index"
MEMORIES = "memories"
VECTORS = "vectors"

CONVERSATION_KEY = "conversation"
SCHEMA_KEY = "schema"
SCHEMA_VERSION = 2


@dataclass(frozen=True)
class MigrationResult:
    messages: int = 0
    memories: int = 0
    skipped: int = 0

    @property
    def migrated(self) -> bool:
        return bool(self.messages or self.memories)


def _legacy_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        return from_epoch_ms(value)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return utcnow()
        # Legacy clients wrote naive ISO strings in UTC.
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return utcnow()


def _legacy_message(raw: dict[str, Any]) -> Message | None:
    try:
        role = Role(raw.get("role", ""))
    except ValueError:
        return None
    content = raw.get("content")
    if not raw.get("id") or not isinstance(content, str):
        return None
    return Message(
        id=str(raw["id"]),
        role=role,
        content=content,
        timestamp=_legacy_timestamp(raw.get("timestamp")),
    )


def _legacy_memory(raw: dict[str, Any]) -> Memory | None:
    content = raw.get("content")
    if not raw.get("id") or not isinstance(content, str) or not content.strip():
        return None
    return Memory(
        id=str(raw["id"]),
        content=content[:MAX_MEMORY_CONTENT_CHARS],
        context=str(raw.get("context") or "")[:MAX_MEMORY_CONTEXT_CHARS],
        tag=raw.get("tag"),
        timestamp=_legacy_timestamp(raw.get("timestamp")),
    )


async def migrate_legacy_layout(kv: KeyValueStore) -> MigrationResult:
    """Move legacy documents into the current layout.

    Messages already present in the current layout are skipped, so running
    the migration twice is harmless.
    """
    legacy_conversations = await kv.scan(LEGACY_CONVERSATIONS)
    legacy_memories = await kv.scan(LEGACY_MEMORIES)
    if not legacy_conversations and not legacy_memories:
        return MigrationResult()

    messages: dict[str, Message] = {}
    skipped = 0
    for _, record in legacy_conversations:
        for raw in record.get("messages", []):
            message = _legacy_message(raw) if isinstance(raw, dict) else None
            if message is None:
                skipped += 1
                continue
            messages.setdefault(message.id, message)

    memories: list[Memory] = []
    for _, record in legacy_memories:
        memory = _legacy_memory(record)
        if memory is None:
            skipped += 1
            continue
        memories.append(memory)

    known = await kv.get_many(MESSAGE_INDEX, list(messages))
    fresh = sorted(
        (m for m in messages.values() if m.id not in known),
        key=lambda m: m.sort_key,
    )

    async with kv.atomic():
        summary_record = await kv.get(META, CONVERSATION_KEY)
        summary = (
            ConversationSummary.from_record(summary_record)
            if summary_record
            else ConversationSummary()
        )
        for message in fresh:
            await kv.put(MESSAGES, message.sort_key, message.to_record())
            await kv.put(MESSAGE_INDEX, message.id, {"sort_key": message.sort_key})
        summary.absorb(fresh)
        await kv.put(META, CONVERSATION_KEY, summary.to_record())

        for memory in memories:
            await kv.put(MEMORIES, memory.id, memory.to_record())

        for key, _ in legacy_conversations:
            await kv.delete(LEGACY_CONVERSATIONS, key)
        for key, _ in legacy_memories:
            await kv.delete(LEGACY_MEMORIES, key)

    result = MigrationResult(
        messages=len(fresh), memories=len(memories), skipped=skipped
    )
    logger.info(
        "Migrated legacy layout: %d messages, %d memories (%d malformed skipped)",
        result.messages,
        result.memories,
        result.skipped,
    )
    return result
