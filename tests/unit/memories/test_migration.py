from __future__ import annotations

from datetime import UTC, datetime

from context_recall.memories.migration import (
    LEGACY_CONVERSATIONS,
    LEGACY_MEMORIES,
    MEMORIES,
    META,
    SCHEMA_KEY,
    SCHEMA_VERSION,
    migrate_legacy_layout,
)
from context_recall.memories.store import PersistentMemoryStore
from context_recall.store.memory import InMemoryKeyValueStore


async def _legacy_kv() -> InMemoryKeyValueStore:
    kv = InMemoryKeyValueStore()
    await kv.put(
        LEGACY_CONVERSATIONS,
        "continuous-main",
        {
            "id": "continuous-main",
            "messages": [
                {"id": "a", "role": "user", "content": "hi", "timestamp": 1_700_000_000_000},
                {
                    "id": "b",
                    "role": "assistant",
                    "content": "hello!",
                    "timestamp": "2023-11-14T22:13:21Z",
                },
                {"id": "c", "role": "robot", "content": "???"},
                {"role": "user", "content": "no id"},
            ],
        },
    )
    await kv.put(
        LEGACY_MEMORIES,
        "mem-1",
        {"id": "mem-1", "content": "Allergic to peanuts", "context": "chat"},
    )
    await kv.put(LEGACY_MEMORIES, "mem-2", {"id": "mem-2", "content": "   "})
    return kv


async def test_migration_moves_legacy_records() -> None:
    kv = await _legacy_kv()

    result = await migrate_legacy_layout(kv)

    assert result.migrated
    assert (result.messages, result.memories, result.skipped) == (2, 1, 3)
    assert await kv.count(LEGACY_CONVERSATIONS) == 0
    assert await kv.count(LEGACY_MEMORIES) == 0
    assert await kv.get(MEMORIES, "mem-1") is not None


async def test_migration_is_a_noop_without_legacy_data() -> None:
    result = await migrate_legacy_layout(InMemoryKeyValueStore())
    assert not result.migrated


async def test_store_init_migrates_once() -> None:
    kv = await _legacy_kv()
    store = PersistentMemoryStore(kv)

    await store.init()

    recent = await store.get_recent_messages(10)
    assert [(m.id, m.content) for m in recent] == [("a", "hi"), ("b", "hello!")]
    assert [m.content for m in await store.get_marked_memories()] == ["Allergic to peanuts"]
    marker = await kv.get(META, SCHEMA_KEY)
    assert marker is not None
    assert marker["version"] == SCHEMA_VERSION

    summary = await store.get_conversation_summary()
    assert summary is not None
    assert summary.first_message == "hi"
    assert summary.message_count == 2


async def test_migration_skips_messages_already_present() -> None:
    kv = await _legacy_kv()
    await migrate_legacy_layout(kv)

    legacy = await _legacy_kv()
    for collection in (LEGACY_CONVERSATIONS, LEGACY_MEMORIES):
        for key, value in await legacy.scan(collection):
            await kv.put(collection, key, value)

    again = await migrate_legacy_layout(kv)
    assert again.messages == 0


async def test_naive_legacy_timestamps_are_read_as_utc() -> None:
    kv = InMemoryKeyValueStore()
    await kv.put(
        LEGACY_MEMORIES,
        "naive",
        {"id": "naive", "content": "Gate code is 4411", "timestamp": "2024-05-01T08:30:00"},
    )
    await kv.put(
        LEGACY_MEMORIES,
        "aware",
        {"id": "aware", "content": "Bins go out Tuesday", "timestamp": "2024-05-02T08:30:00Z"},
    )
    store = PersistentMemoryStore(kv)

    memories = await store.get_marked_memories()

    assert [m.id for m in memories] == ["aware", "naive"]
    assert memories[1].timestamp == datetime(2024, 5, 1, 8, 30, tzinfo=UTC)
    assert "Gate code is 4411" in await store.get_context_for_prompt()
