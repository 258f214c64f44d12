from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from context_recall.errors import StorageError
from context_recall.memories.migration import (
    CONVERSATION_KEY,
    MEMORIES,
    MESSAGE_INDEX,
    MESSAGES,
    META,
    SCHEMA_KEY,
    SCHEMA_VERSION,
    VECTORS,
    migrate_legacy_layout,
)
from context_recall.models import (
    MAX_MEMORY_CONTENT_CHARS,
    MAX_MEMORY_CONTEXT_CHARS,
    ConversationSummary,
    Memory,
    MemoryStatus,
    Message,
    Role,
    VectorRecord,
)
from context_recall.models.utils import utcnow
from context_recall.store.base import KeyValueStore

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 4000
RECENT_WINDOW = 50
PROMPT_TAIL_MESSAGES = 20
PROMPT_MESSAGE_CHARS = 200

Embedder = Callable[[Memory], Awaitable[Any]]


def time_ago(timestamp: datetime, now: datetime | None = None) -> str:
    """Human-friendly age of *timestamp*, e.g. ``"3 hours ago"``."""
    seconds = int(((now or utcnow()) - timestamp).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60} minutes ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 604800:
        return f"{seconds // 86400} days ago"
    return timestamp.date().isoformat()


class PersistentMemoryStore:
    """The continuous conversation and the user's marked memories.

    Sits on top of any :class:`~context_recall.store.base.KeyValueStore`.
    Messages are stored one record per message under a ``(timestamp, id)``
    sort key so that recency reads are a bounded reverse scan.  The last
    ``recent_window`` messages are also kept in process.

    Backend failures are logged and absorbed: reads return empty results
    and writes return a falsy value.  Only :meth:`init` raises.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        recent_window: int = RECENT_WINDOW,
        max_context_chars: int = MAX_CONTEXT_CHARS,
    ) -> None:
        self._kv = kv
        self._recent_window = recent_window
        self._max_context_chars = max_context_chars

        self._recent: list[Message] = []
        self._initialized = False
        self._init_future: asyncio.Future[None] | None = None
        self._write_lock = asyncio.Lock()

        self._embedder: Embedder | None = None
        self._background: set[asyncio.Task[None]] = set()

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        """Open the backend and run the legacy migration once.

        Concurrent callers await the same in-flight initialization.  On
        failure the pending result is dropped so the next call retries.
        """
        if self._initialized:
            return
        if self._init_future is None:
            self._init_future = asyncio.ensure_future(self._initialize())
        future = self._init_future
        try:
            await asyncio.shield(future)
        except Exception:
            if self._init_future is future:
                self._init_future = None
            raise

    async def _initialize(self) -> None:
        try:
            await self._kv.init()
            marker = await self._kv.get(META, SCHEMA_KEY)
            if marker is None or marker.get("version", 0) < SCHEMA_VERSION:
                await migrate_legacy_layout(self._kv)
                await self._kv.put(
                    META,
                    SCHEMA_KEY,
                    {"version": SCHEMA_VERSION, "migrated_at": utcnow().isoformat()},
                )
            rows = await self._kv.scan(MESSAGES, reverse=True, limit=self._recent_window)
        except StorageError:
            logger.error("Memory store initialization failed", exc_info=True)
            raise
        except Exception as exc:
            logger.error("Memory store initialization failed", exc_info=True)
            raise StorageError(f"initialization failed: {exc}") from exc

        self._recent = [Message.from_record(value) for _, value in reversed(rows)]
        self._initialized = True
        logger.debug("Memory store ready (%d recent messages)", len(self._recent))

    async def close(self) -> None:
        await self.drain()
        await self._kv.close()

    def register_embedder(self, embedder: Embedder | None) -> None:
        """Hook called in the background for every newly marked memory."""
        self._embedder = embedder

    async def drain(self) -> None:
        """Wait for outstanding background embeddings to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Conversation ─────────────────────────────────────────────────

    async def save_conversation(self, messages: Iterable[Message]) -> int:
        """Merge *messages* into the continuous conversation.

        Messages already stored (same id) are ignored.  Returns the number
        of newly stored messages, 0 on failure.
        """
        incoming: dict[str, Message] = {}
        for message in messages:
            incoming.setdefault(message.id, message)
        if not incoming:
            return 0

        try:
            await self.init()
            async with self._write_lock:
                known = await self._kv.get_many(MESSAGE_INDEX, list(incoming))
                fresh = sorted(
                    (m for m in incoming.values() if m.id not in known),
                    key=lambda m: m.sort_key,
                )
                if not fresh:
                    return 0

                async with self._kv.atomic():
                    summary = await self._load_summary()
                    for message in fresh:
                        await self._kv.put(MESSAGES, message.sort_key, message.to_record())
                        await self._kv.put(
                            MESSAGE_INDEX, message.id, {"sort_key": message.sort_key}
                        )
                    summary.absorb(fresh)
                    await self._kv.put(META, CONVERSATION_KEY, summary.to_record())
        except StorageError:
            logger.warning("Failed to save %d messages", len(incoming), exc_info=True)
            return 0

        merged = {m.id: m for m in self._recent}
        merged.update((m.id, m) for m in fresh)
        self._recent = sorted(merged.values(), key=lambda m: m.sort_key)[
            -self._recent_window :
        ]
        logger.debug("Saved %d new messages", len(fresh))
        return len(fresh)

    async def get_recent_messages(self, limit: int = RECENT_WINDOW) -> list[Message]:
        """Up to *limit* most recent messages, oldest first."""
        if limit <= 0:
            return []
        try:
            await self.init()
            if limit <= len(self._recent):
                return self._recent[-limit:]
            rows = await self._kv.scan(MESSAGES, reverse=True, limit=limit)
        except StorageError:
            logger.warning("Failed to read recent messages", exc_info=True)
            return []
        return [Message.from_record(value) for _, value in reversed(rows)]

    async def get_conversation_summary(self) -> ConversationSummary | None:
        try:
            await self.init()
            record = await self._kv.get(META, CONVERSATION_KEY)
        except StorageError:
            logger.warning("Failed to read conversation summary", exc_info=True)
            return None
        return ConversationSummary.from_record(record) if record else None

    async def search_conversation(self, term: str, *, limit: int = 50) -> list[Message]:
        """Messages containing *term* (case-insensitive), newest first."""
        needle = term.strip().lower()
        if not needle:
            return []
        try:
            await self.init()
            rows = await self._kv.scan(MESSAGES, reverse=True)
        except StorageError:
            logger.warning("Conversation search failed", exc_info=True)
            return []
        hits: list[Message] = []
        for _, value in rows:
            if needle in value.get("content", "").lower():
                hits.append(Message.from_record(value))
                if len(hits) >= limit:
                    break
        return hits

    async def _load_summary(self) -> ConversationSummary:
        record = await self._kv.get(META, CONVERSATION_KEY)
        return ConversationSummary.from_record(record) if record else ConversationSummary()

    # ── Memories ─────────────────────────────────────────────────────

    async def mark_as_important(
        self,
        message_id: str | None,
        content: str,
        context: str = "",
        tag: str | None = None,
    ) -> Memory | None:
        """Store *content* as a long-term memory.

        Embedding is scheduled in the background and never delays the
        return value.
        """
        text = (content or "").strip()
        if not text:
            return None

        memory = Memory(
            content=text[:MAX_MEMORY_CONTENT_CHARS],
            context=(context or "")[:MAX_MEMORY_CONTEXT_CHARS],
            tag=tag,
            message_id=message_id,
        )
        try:
            await self.init()
            await self._kv.put(MEMORIES, memory.id, memory.to_record())
        except StorageError:
            logger.warning("Failed to mark memory as important", exc_info=True)
            return None

        self._schedule_embedding(memory)
        logger.debug("Marked memory %s", memory.id)
        return memory

    def _schedule_embedding(self, memory: Memory) -> None:
        if self._embedder is None:
            return
        task = asyncio.create_task(self._embed(memory, self._embedder))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _embed(self, memory: Memory, embedder: Embedder) -> None:
        try:
            await embedder(memory)
        except Exception:
            logger.warning("Background embedding failed for %s", memory.id, exc_info=True)

    async def get_marked_memories(self) -> list[Memory]:
        """Active memories, most recent first."""
        try:
            await self.init()
            rows = await self._kv.scan(MEMORIES)
        except StorageError:
            logger.warning("Failed to read memories", exc_info=True)
            return []
        memories = [Memory.from_record(value) for _, value in rows]
        active = [m for m in memories if m.is_active]
        return sorted(active, key=lambda m: (m.timestamp, m.id), reverse=True)

    async def get_memories(self, ids: list[str]) -> list[Memory]:
        """Active memories by id, in the order of *ids*."""
        try:
            await self.init()
            found = await self._kv.get_many(MEMORIES, ids)
        except StorageError:
            logger.warning("Failed to read memories", exc_info=True)
            return []
        memories = (Memory.from_record(found[i]) for i in ids if i in found)
        return [m for m in memories if m.is_active]

    async def forget_memory(self, memory_id: str) -> bool:
        """Tombstone a memory and its vector. Returns whether it was active."""
        try:
            await self.init()
            async with self._write_lock, self._kv.atomic():
                record = await self._kv.get(MEMORIES, memory_id)
                if record is None:
                    return False
                memory = Memory.from_record(record)
                if not memory.is_active:
                    return False
                memory.status = MemoryStatus.forgotten.value
                memory.forgotten_at = utcnow()
                await self._kv.put(MEMORIES, memory.id, memory.to_record())

                vector = await self._kv.get(VECTORS, memory_id)
                if vector is not None:
                    vector["status"] = MemoryStatus.forgotten.value
                    await self._kv.put(VECTORS, memory_id, vector)
        except StorageError:
            logger.warning("Failed to forget memory %s", memory_id, exc_info=True)
            return False
        logger.debug("Forgot memory %s", memory_id)
        return True

    # ── Vectors ──────────────────────────────────────────────────────

    async def save_vector(self, record: VectorRecord) -> bool:
        """Persist *record* if its memory is still active.

        A vector that arrives after its memory was forgotten is dropped,
        leaving any tombstoned vector in place.
        """
        try:
            await self.init()
            async with self._write_lock, self._kv.atomic():
                found = await self._kv.get(MEMORIES, record.memory_id)
                if found is None or not Memory.from_record(found).is_active:
                    logger.debug("Dropping vector for inactive memory %s", record.memory_id)
                    return False
                await self._kv.put(VECTORS, record.memory_id, record.to_record())
        except StorageError:
            logger.warning("Failed to save vector for %s", record.memory_id, exc_info=True)
            return False
        return True

    async def get_vectors(self, ids: list[str] | None = None) -> dict[str, VectorRecord]:
        """Active vectors keyed by memory id; all of them when *ids* is None."""
        try:
            await self.init()
            if ids is None:
                found = await self._kv.get_all(VECTORS)
            else:
                found = await self._kv.get_many(VECTORS, ids)
        except StorageError:
            logger.warning("Failed to read vectors", exc_info=True)
            return {}
        records = {k: VectorRecord.from_record(v) for k, v in found.items()}
        return {
            k: r for k, r in records.items() if r.status == MemoryStatus.active.value
        }

    # ── Prompt context ───────────────────────────────────────────────

    async def get_context_for_prompt(self, max_chars: int | None = None) -> str:
        """Conversation metadata, the recent exchange and marked memories.

        The result never exceeds *max_chars*.  Oldest conversation lines
        are dropped first, then the oldest memories.
        """
        budget = self._max_context_chars if max_chars is None else max_chars
        if budget <= 0:
            return ""

        summary = await self.get_conversation_summary()
        messages = await self.get_recent_messages(PROMPT_TAIL_MESSAGES)
        memories = await self.get_marked_memories()

        header: list[str] = []
        if summary is not None and summary.message_count:
            line = f"\n## Conversation so far: {summary.message_count} messages"
            if summary.first_message:
                line += f', started with "{summary.first_message}"'
            header.append(line)

        conversation = [_render_message(m) for m in messages]
        important = [_render_memory(m) for m in memories]

        def render() -> str:
            parts = list(header)
            if conversation:
                parts.append("\n## Recent Conversation Context:")
                parts.extend(conversation)
            if important:
                parts.append("\n## Important Information to Remember:")
                parts.extend(important)
            return "\n".join(parts) + "\n" if parts else ""

        text = render()
        while len(text) > budget and conversation:
            conversation.pop(0)
            text = render()
        while len(text) > budget and important:
            important.pop()
            text = render()
        return text[:budget]

    # ── Export / clear ───────────────────────────────────────────────

    async def export_all_data(self) -> dict[str, Any]:
        try:
            await self.init()
            summary = await self._load_summary()
            messages = await self._kv.scan(MESSAGES)
            memories = await self._kv.scan(MEMORIES)
            vectors = await self._kv.count(VECTORS)
        except StorageError:
            logger.warning("Export failed", exc_info=True)
            return {}
        return {
            "exported_at": utcnow().isoformat(),
            "schema_version": SCHEMA_VERSION,
            "conversation": {
                **summary.to_record(),
                "messages": [value for _, value in messages],
            },
            "memories": [
                value
                for _, value in memories
                if value.get("status", MemoryStatus.active.value)
                == MemoryStatus.active.value
            ],
            "vector_count": vectors,
        }

    async def clear_all_data(self) -> bool:
        """Delete every message, memory and vector. The schema marker stays."""
        try:
            await self.init()
            await self.drain()
            async with self._write_lock, self._kv.atomic():
                for collection in (MESSAGES, MESSAGE_INDEX, MEMORIES, VECTORS):
                    await self._kv.clear(collection)
                await self._kv.delete(META, CONVERSATION_KEY)
        except StorageError:
            logger.warning("Failed to clear data", exc_info=True)
            return False
        self._recent = []
        logger.info("Cleared all conversation and memory data")
        return True


def _render_message(message: Message) -> str:
    speaker = "User" if message.role == Role.user else "Assistant"
    content = message.content
    if len(content) > PROMPT_MESSAGE_CHARS:
        content = content[:PROMPT_MESSAGE_CHARS] + "..."
    return f"{speaker}: {content}"


def _render_memory(memory: Memory, now: datetime | None = None) -> str:
    details = [memory.context] if memory.context else []
    details.append(time_ago(memory.timestamp, now))
    return f"- {memory.content} ({', '.join(details)})"
