from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest

from context_recall import ContextOrchestrator, EngineSettings, ValidationError
from context_recall.apps.notes import NotesAdapter
from context_recall.context.models import ContextSnapshot
from context_recall.facade.core import (
    DEFAULT_SYSTEM_PROMPT,
    MEMORY_HEADER,
    RECENT_HEADER,
    RESPONSE_STYLE_SUFFIX,
    build_static_base,
)
from context_recall.llm.hashing import HashingEmbeddingProvider
from context_recall.models import Message, Role
from context_recall.relevance.assembler import CONTEXT_HEADER
from context_recall.store.memory import InMemoryKeyValueStore
from tests.conftest import FakeEmbeddingProvider

_T0 = datetime(2025, 3, 14, 9, 0, tzinfo=UTC)


@pytest.fixture()
async def engine() -> AsyncGenerator[ContextOrchestrator]:
    orchestrator = ContextOrchestrator.build(
        InMemoryKeyValueStore(),
        FakeEmbeddingProvider(semantic=False),
        settings=EngineSettings(min_request_interval=0, memory_min_similarity=0.1),
    )
    async with orchestrator:
        yield orchestrator


# ── Construction ────────────────────────────────────────────────────


async def test_from_config_defaults_need_no_credentials() -> None:
    engine = ContextOrchestrator.from_config({})

    assert isinstance(engine.store.kv, InMemoryKeyValueStore)
    assert isinstance(engine.index.client.provider, HashingEmbeddingProvider)
    assert engine.settings == EngineSettings()

    async with engine:
        assert await engine.count_memories() == 0


def test_from_config_rejects_unknown_settings() -> None:
    with pytest.raises(ValueError, match="Unknown engine settings"):
        ContextOrchestrator.from_config({"engine": {"bogus": 1}})


# ── Snapshot ────────────────────────────────────────────────────────


async def test_snapshot_follows_channel(
    engine: ContextOrchestrator, rich_snapshot: ContextSnapshot
) -> None:
    engine.channel.publish(rich_snapshot)
    assert engine.snapshot is rich_snapshot

    await engine.close()
    engine.publish_snapshot(ContextSnapshot())
    assert engine.snapshot is rich_snapshot


async def test_enhanced_prompt_uses_latest_snapshot(
    engine: ContextOrchestrator, rich_snapshot: ContextSnapshot
) -> None:
    engine.publish_snapshot(rich_snapshot)

    result = await engine.build_enhanced_prompt("Base", "what time is it")

    assert "time" in result.context_used
    assert "09:30" in result.enhanced_prompt


# ── Memories ────────────────────────────────────────────────────────


async def test_mark_defaults_context_to_snapshot_summary(
    engine: ContextOrchestrator, rich_snapshot: ContextSnapshot
) -> None:
    engine.publish_snapshot(rich_snapshot)

    memory = await engine.mark_as_important("m1", "Dentist on Tuesday")

    assert memory is not None
    assert memory.context == "Context: morning on Friday, in Lisbon"


async def test_explicit_context_is_kept(engine: ContextOrchestrator) -> None:
    memory = await engine.mark_as_important(None, "Buy milk", "chat", tag="errand")

    assert memory is not None
    assert (memory.context, memory.tag) == ("chat", "errand")


async def test_list_search_and_forget(engine: ContextOrchestrator) -> None:
    rex = await engine.mark_as_important(None, "my dog's name is Rex", "")
    await engine.mark_as_important(None, "quarterly taxes are due in April", "")
    await engine.store.drain()
    assert rex is not None

    listed = await engine.list_memories()
    assert {m.content for m in listed} == {
        "quarterly taxes are due in April",
        "my dog's name is Rex",
    }
    assert all(m.similarity is None for m in listed)

    found = await engine.search_memories("what is my dog's name", top_k=1)
    assert [m.id for m in found] == [rex.id]
    assert found[0].similarity is not None

    assert await engine.forget_memory(rex.id)
    assert not await engine.forget_memory(rex.id)
    assert await engine.count_memories() == 1
    remaining = await engine.search_memories("what is my dog's name")
    assert all(m.id != rex.id for m in remaining)


async def test_export_and_clear(engine: ContextOrchestrator) -> None:
    await engine.record_messages([Message(Role.user, "hello", timestamp=_T0)])
    await engine.mark_as_important(None, "remember this", "")

    exported = await engine.export_all_data()
    assert exported["memories"][0]["content"] == "remember this"

    assert await engine.clear_all_data()
    assert await engine.count_memories() == 0
    assert await engine.store.get_recent_messages(10) == []


# ── Prompt preparation ──────────────────────────────────────────────


@pytest.mark.parametrize("query", ["", "   ", 42, ["time"]])
async def test_prepare_prompt_rejects_bad_queries(engine: ContextOrchestrator, query: object) -> None:
    with pytest.raises(ValidationError):
        await engine.prepare_prompt(query)  # type: ignore[arg-type]


async def test_prepare_prompt_orders_sections(
    engine: ContextOrchestrator, rich_snapshot: ContextSnapshot
) -> None:
    engine.publish_snapshot(rich_snapshot)
    await engine.record_messages(
        [
            Message(Role.user, "hi there", timestamp=_T0),
            Message(Role.assistant, "hello Sam", timestamp=_T0 + timedelta(seconds=1)),
        ]
    )
    await engine.mark_as_important(None, "my dog's name is Rex", "")
    await engine.store.drain()

    prepared = await engine.prepare_prompt("what is my dog's name, what time is it")
    prompt = prepared.prompt

    assert prompt.startswith(DEFAULT_SYSTEM_PROMPT)
    assert "You are talking with Sam." in prompt
    assert "Today is March 14, 2025, morning." in prompt
    assert "The user is currently in Lisbon, Portugal." in prompt
    assert (
        prompt.index(RECENT_HEADER)
        < prompt.index(MEMORY_HEADER)
        < prompt.index(CONTEXT_HEADER)
        < prompt.index(RESPONSE_STYLE_SUFFIX)
    )
    assert prompt.endswith(RESPONSE_STYLE_SUFFIX)
    assert "User: hi there\nAssistant: hello Sam" in prompt
    assert "- my dog's name is Rex" in prompt
    assert "time" in prepared.context_used
    assert prepared.recent_messages == 2


async def test_prepare_prompt_with_nothing_to_add(engine: ContextOrchestrator) -> None:
    prepared = await engine.prepare_prompt("tell me a joke", system_prompt="Be brief.")

    assert prepared.prompt == "Be brief." + RESPONSE_STYLE_SUFFIX
    assert prepared.memories == []
    assert prepared.context_used == ()


async def test_prepare_prompt_includes_matching_app(engine: ContextOrchestrator) -> None:
    notes = NotesAdapter()
    notes.add_note("renew passport", is_task=True)
    engine.register_app(notes)

    prepared = await engine.prepare_prompt("show my notes")

    assert "dashboard-apps" in prepared.context_used
    assert "renew passport" in prepared.prompt


def test_static_base_skips_missing_parts() -> None:
    assert build_static_base("  System.  ", "", "", "", "") == "System."
    assert build_static_base("S", "Ana", "May 1, 2025", "", "") == (
        "S\nYou are talking with Ana.\nToday is May 1, 2025."
    )


async def test_stats_reports_components(engine: ContextOrchestrator) -> None:
    engine.register_app(NotesAdapter())

    stats = engine.stats()

    assert stats["apps"] == ["notes"]
    assert stats["breaker_state"] == "closed"
