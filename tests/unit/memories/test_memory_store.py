from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from context_recall.errors import StorageError
from context_recall.memories.migration import MEMORIES, MESSAGES, VECTORS
from context_recall.memories.store import PersistentMemoryStore, time_ago
from context_recall.models import MAX_MEMORY_CONTENT_CHARS, Memory, Message, Role, VectorRecord
from context_recall.models.utils import utcnow
from context_recall.store.memory import InMemoryKeyValueStore
from context_recall.store.sqlite import SQLiteKeyValueStore
from tests.conftest import BrokenKeyValueStore

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def _msg(i: int, role: Role = Role.user, content: str | None = None) -> Message:
    return Message(
        id=f"m{i}",
        role=role,
        content=content or f"message {i}",
        timestamp=T0 + timedelta(seconds=i),
    )


# ── Lifecycle ───────────────────────────────────────────────────────


async def test_init_is_single_flight() -> None:
    kv = BrokenKeyValueStore()
    store = PersistentMemoryStore(kv)

    await asyncio.gather(*(store.init() for _ in range(5)))
    await store.init()

    assert kv.init_calls == 1


async def test_failed_init_raises_and_can_be_retried() -> None:
    kv = BrokenKeyValueStore(fail_init=True)
    store = PersistentMemoryStore(kv)

    with pytest.raises(StorageError):
        await store.init()

    kv.fail_init = False
    await store.init()
    assert kv.init_calls == 2


async def test_reads_degrade_to_empty_when_init_fails() -> None:
    store = PersistentMemoryStore(BrokenKeyValueStore(fail_init=True))

    assert await store.get_recent_messages(10) == []
    assert await store.get_marked_memories() == []
    assert await store.get_vectors() == {}
    assert await store.mark_as_important("m1", "something") is None
    assert await store.save_conversation([_msg(1)]) == 0


async def test_reads_degrade_to_empty_when_backend_reads_fail() -> None:
    kv = BrokenKeyValueStore()
    store = PersistentMemoryStore(kv)
    memory = await store.mark_as_important(None, "written before the outage")
    assert memory is not None

    kv.fail_reads = True

    assert await store.get_recent_messages(10) == []
    assert await store.get_marked_memories() == []
    assert await store.get_memories([memory.id]) == []
    assert await store.get_vectors() == {}
    assert await store.get_conversation_summary() is None
    assert await store.search_conversation("outage") == []
    assert await store.get_context_for_prompt() == ""

    kv.fail_reads = False
    assert [m.id for m in await store.get_marked_memories()] == [memory.id]


# ── Conversation ────────────────────────────────────────────────────


async def test_save_conversation_is_idempotent(memory_store: PersistentMemoryStore) -> None:
    m1 = _msg(1)

    assert await memory_store.save_conversation([m1]) == 1
    assert await memory_store.save_conversation([m1]) == 0

    recent = await memory_store.get_recent_messages(10)
    assert [m.id for m in recent] == ["m1"]


async def test_duplicates_within_one_batch_are_collapsed(
    memory_store: PersistentMemoryStore,
) -> None:
    m1 = _msg(1)
    assert await memory_store.save_conversation([m1, m1, _msg(2)]) == 2


async def test_recent_messages_are_chronological(memory_store: PersistentMemoryStore) -> None:
    await memory_store.save_conversation([_msg(3), _msg(1)])
    await memory_store.save_conversation([_msg(2)])

    recent = await memory_store.get_recent_messages(10)
    assert [m.id for m in recent] == ["m1", "m2", "m3"]
    assert [m.id for m in await memory_store.get_recent_messages(2)] == ["m2", "m3"]
    assert await memory_store.get_recent_messages(0) == []


async def test_concurrent_appends_all_land(memory_store: PersistentMemoryStore) -> None:
    batches = [[_msg(i)] for i in range(20)]
    await asyncio.gather(*(memory_store.save_conversation(b) for b in batches))

    recent = await memory_store.get_recent_messages(50)
    assert [m.id for m in recent] == [f"m{i}" for i in range(20)]
    summary = await memory_store.get_conversation_summary()
    assert summary is not None
    assert summary.message_count == 20


async def test_recent_reads_fall_back_to_the_store() -> None:
    store = PersistentMemoryStore(InMemoryKeyValueStore(), recent_window=3)
    await store.save_conversation([_msg(i) for i in range(10)])

    recent = await store.get_recent_messages(6)
    assert [m.id for m in recent] == [f"m{i}" for i in range(4, 10)]


async def test_summary_tracks_first_and_last(memory_store: PersistentMemoryStore) -> None:
    await memory_store.save_conversation(
        [
            _msg(1, Role.user, "hello there"),
            _msg(2, Role.assistant, "hi!"),
            _msg(3, Role.user, "how are you"),
            _msg(4, Role.assistant, "great"),
        ]
    )
    summary = await memory_store.get_conversation_summary()
    assert summary is not None
    assert summary.first_message == "hello there"
    assert summary.last_message == "great"
    assert summary.message_count == 4


async def test_search_conversation(memory_store: PersistentMemoryStore) -> None:
    await memory_store.save_conversation(
        [_msg(1, content="I like Tea"), _msg(2, content="coffee"), _msg(3, content="more tea")]
    )
    hits = await memory_store.search_conversation("TEA")
    assert [m.id for m in hits] == ["m3", "m1"]
    assert await memory_store.search_conversation("  ") == []


async def test_messages_survive_reopen(tmp_path: Path) -> None:
    path = tmp_path / "memory.db"
    first = PersistentMemoryStore(SQLiteKeyValueStore(path))
    await first.save_conversation([_msg(1), _msg(2)])
    await first.close()

    second = PersistentMemoryStore(SQLiteKeyValueStore(path))
    recent = await second.get_recent_messages(10)
    await second.close()
    assert [m.id for m in recent] == ["m1", "m2"]


# ── Memories ────────────────────────────────────────────────────────


async def test_mark_then_list_roundtrip(memory_store: PersistentMemoryStore) -> None:
    memory = await memory_store.mark_as_important(
        "msg1", "Remember my dog's name is Rex", "chat"
    )
    assert memory is not None

    marked = await memory_store.get_marked_memories()
    assert [(m.id, m.content, m.context) for m in marked] == [
        (memory.id, "Remember my dog's name is Rex", "chat")
    ]


async def test_mark_rejects_blank_content(memory_store: PersistentMemoryStore) -> None:
    assert await memory_store.mark_as_important("m1", "   ") is None
    assert await memory_store.get_marked_memories() == []


async def test_mark_truncates_content(memory_store: PersistentMemoryStore) -> None:
    memory = await memory_store.mark_as_important(None, "x" * 2000)
    assert memory is not None
    assert len(memory.content) == MAX_MEMORY_CONTENT_CHARS


async def test_marked_memories_newest_first(memory_store: PersistentMemoryStore) -> None:
    first = await memory_store.mark_as_important(None, "first")
    await asyncio.sleep(0.001)
    second = await memory_store.mark_as_important(None, "second")
    assert first is not None and second is not None

    marked = await memory_store.get_marked_memories()
    assert [m.id for m in marked] == [second.id, first.id]


async def test_mark_schedules_background_embedding(
    memory_store: PersistentMemoryStore,
) -> None:
    release = asyncio.Event()
    embedded: list[str] = []

    async def slow_embedder(memory: Memory) -> None:
        await release.wait()
        embedded.append(memory.id)

    memory_store.register_embedder(slow_embedder)
    memory = await memory_store.mark_as_important(None, "returns before embedding")
    assert memory is not None
    assert embedded == []

    release.set()
    await memory_store.drain()
    assert embedded == [memory.id]


async def test_embedding_failure_is_absorbed(memory_store: PersistentMemoryStore) -> None:
    async def broken(memory: Memory) -> None:
        raise RuntimeError("no vectors today")

    memory_store.register_embedder(broken)
    assert await memory_store.mark_as_important(None, "still saved") is not None
    await memory_store.drain()
    assert len(await memory_store.get_marked_memories()) == 1


async def test_forget_tombstones_memory_and_vector(
    memory_store: PersistentMemoryStore,
) -> None:
    memory = await memory_store.mark_as_important(None, "secret")
    assert memory is not None
    await memory_store.save_vector(
        VectorRecord(memory_id=memory.id, vector=[1.0, 0.0], content_hash="h")
    )

    assert await memory_store.forget_memory(memory.id) is True
    assert await memory_store.forget_memory(memory.id) is False
    assert await memory_store.forget_memory("nope") is False

    assert await memory_store.get_marked_memories() == []
    assert await memory_store.get_memories([memory.id]) == []
    assert await memory_store.get_vectors() == {}
    # Tombstoned, not deleted.
    assert await memory_store.kv.count(VECTORS) == 1


async def test_vector_finished_after_forget_is_dropped(
    memory_store: PersistentMemoryStore,
) -> None:
    release = asyncio.Event()

    async def slow_embedder(memory: Memory) -> None:
        await release.wait()
        await memory_store.save_vector(
            VectorRecord(memory_id=memory.id, vector=[1.0, 0.0], content_hash="h")
        )

    memory_store.register_embedder(slow_embedder)
    memory = await memory_store.mark_as_important(None, "short-lived secret")
    assert memory is not None
    assert await memory_store.forget_memory(memory.id) is True

    release.set()
    await memory_store.drain()

    assert await memory_store.get_vectors() == {}
    assert await memory_store.kv.get(VECTORS, memory.id) is None


async def test_save_vector_requires_active_memory(memory_store: PersistentMemoryStore) -> None:
    record = VectorRecord(memory_id="unknown", vector=[1.0], content_hash="h")

    assert await memory_store.save_vector(record) is False
    assert await memory_store.kv.count(VECTORS) == 0


async def test_embedder_unregistered_after_scheduling(
    memory_store: PersistentMemoryStore,
) -> None:
    embedded: list[str] = []

    async def embedder(memory: Memory) -> None:
        embedded.append(memory.id)

    memory_store.register_embedder(embedder)
    memory = await memory_store.mark_as_important(None, "scheduled before removal")
    assert memory is not None
    memory_store.register_embedder(None)

    await memory_store.drain()

    assert embedded == [memory.id]
    later = await memory_store.mark_as_important(None, "no embedder now")
    await memory_store.drain()
    assert later is not None and embedded == [memory.id]


# ── Prompt context ──────────────────────────────────────────────────


async def test_context_for_prompt_contains_memory(memory_store: PersistentMemoryStore) -> None:
    await memory_store.mark_as_important("msg1", "Remember my dog's name is Rex", "chat")

    text = await memory_store.get_context_for_prompt()
    assert "Rex" in text
    assert "## Important Information to Remember:" in text


async def test_context_for_prompt_shows_memory_age(memory_store: PersistentMemoryStore) -> None:
    await memory_store.mark_as_important(None, "dentist on Friday", "calendar")
    older = Memory(content="car is parked on level 3", timestamp=utcnow() - timedelta(hours=3))
    await memory_store.kv.put(MEMORIES, older.id, older.to_record())

    text = await memory_store.get_context_for_prompt()

    assert "- dentist on Friday (calendar, just now)" in text
    assert "- car is parked on level 3 (3 hours ago)" in text


async def test_context_for_prompt_sections(memory_store: PersistentMemoryStore) -> None:
    await memory_store.save_conversation(
        [_msg(1, Role.user, "what's up"), _msg(2, Role.assistant, "not much")]
    )
    text = await memory_store.get_context_for_prompt()

    assert "## Conversation so far: 2 messages" in text
    assert "## Recent Conversation Context:" in text
    assert "User: what's up" in text
    assert "Assistant: not much" in text


async def test_context_for_prompt_empty_store(memory_store: PersistentMemoryStore) -> None:
    assert await memory_store.get_context_for_prompt() == ""
    assert await memory_store.get_context_for_prompt(max_chars=0) == ""


@pytest.mark.parametrize("budget", [0, 10, 80, 200, 500, 4000])
async def test_context_for_prompt_respects_budget(budget: int) -> None:
    store = PersistentMemoryStore(InMemoryKeyValueStore(), max_context_chars=budget)
    await store.save_conversation([_msg(i, content="lorem ipsum " * 20) for i in range(30)])
    for i in range(15):
        await store.mark_as_important(None, f"fact number {i} " * 10)

    text = await store.get_context_for_prompt()
    assert len(text) <= budget


async def test_budget_drops_oldest_conversation_first(
    memory_store: PersistentMemoryStore,
) -> None:
    await memory_store.save_conversation(
        [_msg(1, content="hello"), _msg(2, content="old " * 30), _msg(3, content="newest line")]
    )
    await memory_store.mark_as_important(None, "keep me")

    full = await memory_store.get_context_for_prompt()
    trimmed = await memory_store.get_context_for_prompt(max_chars=len(full) - 10)

    assert "User: hello" not in trimmed
    assert "newest line" in trimmed
    assert "keep me" in trimmed


# ── Export / clear ──────────────────────────────────────────────────


async def test_export_and_clear(memory_store: PersistentMemoryStore) -> None:
    await memory_store.save_conversation([_msg(1), _msg(2)])
    kept = await memory_store.mark_as_important(None, "kept")
    gone = await memory_store.mark_as_important(None, "gone")
    assert kept is not None and gone is not None
    await memory_store.forget_memory(gone.id)

    exported = await memory_store.export_all_data()
    assert len(exported["conversation"]["messages"]) == 2
    assert [m["id"] for m in exported["memories"]] == [kept.id]

    assert await memory_store.clear_all_data() is True
    assert await memory_store.get_recent_messages(10) == []
    assert await memory_store.get_marked_memories() == []
    assert await memory_store.kv.count(MESSAGES) == 0
    assert await memory_store.get_conversation_summary() is None


def test_time_ago() -> None:
    assert time_ago(T0, T0 + timedelta(seconds=5)) == "just now"
    assert time_ago(T0, T0 + timedelta(minutes=5)) == "5 minutes ago"
    assert time_ago(T0, T0 + timedelta(hours=3)) == "3 hours ago"
    assert time_ago(T0, T0 + timedelta(days=2)) == "2 days ago"
    assert time_ago(T0, T0 + timedelta(days=30)) == "2025-01-01"
