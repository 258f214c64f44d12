from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime

import pytest

from context_recall.context.models import (
    ContextSnapshot,
    LocationContext,
    TimeContext,
    UserContext,
    WeatherContext,
)
from context_recall.embedding.breaker import CircuitBreaker
from context_recall.embedding.client import EmbeddingClient
from context_recall.embedding.index import VectorIndex
from context_recall.embedding.queue import RequestQueue
from context_recall.errors import StorageError
from context_recall.llm.base import EmbeddingProvider
from context_recall.llm.hashing import HashingEmbeddingProvider
from context_recall.memories.store import PersistentMemoryStore
from context_recall.store.base import Document
from context_recall.store.memory import InMemoryKeyValueStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEmbeddingProvider(EmbeddingProvider):
    """Hashing vectors plus a call counter and scriptable failures."""

    def __init__(self, *, fail: bool = False, semantic: bool = True) -> None:
        self._inner = HashingEmbeddingProvider(dimensions=256)
        self.fail = fail
        self.semantic = semantic
        self.calls: list[str] = []

    @property
    def dimensions(self) -> int:
        return self._inner.dimensions

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("provider down")
        return self._inner.embed_sync(text)


class BrokenKeyValueStore(InMemoryKeyValueStore):
    """In-memory store whose every operation can be made to fail."""

    def __init__(self, *, fail_init: bool = False, fail_reads: bool = False) -> None:
        super().__init__()
        self.fail_init = fail_init
        self.fail_reads = fail_reads
        self.init_calls = 0

    async def init(self) -> None:
        self.init_calls += 1
        if self.fail_init:
            raise StorageError("disk unavailable")

    def _check_read(self) -> None:
        if self.fail_reads:
            raise StorageError("read failed")

    async def get(self, collection: str, key: str) -> Document | None:
        self._check_read()
        return await super().get(collection, key)

    async def get_many(self, collection: str, keys: list[str]) -> dict[str, Document]:
        self._check_read()
        return await super().get_many(collection, keys)

    async def scan(
        self,
        collection: str,
        *,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, Document]]:
        self._check_read()
        return await super().scan(collection, reverse=reverse, limit=limit)


# ── Snapshots ───────────────────────────────────────────────────────


@pytest.fixture()
def rich_snapshot() -> ContextSnapshot:
    return ContextSnapshot(
        time=TimeContext.at(datetime(2025, 3, 14, 9, 30, tzinfo=UTC), "Europe/Lisbon"),
        location=LocationContext(city="Lisbon", country="Portugal"),
        weather=WeatherContext(
            has_data=True, temperature=18, unit="celsius", description="clear sky"
        ),
        user=UserContext(is_authenticated=True, name="Sam"),
    )


# ── Engine components ───────────────────────────────────────────────


@pytest.fixture()
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def client(provider: FakeEmbeddingProvider, clock: FakeClock) -> EmbeddingClient:
    return EmbeddingClient(
        provider,
        breaker=CircuitBreaker(failure_threshold=5, cooldown_seconds=60, clock=clock),
        queue=RequestQueue(max_active=3, capacity=16, min_interval=0),
    )


@pytest.fixture()
async def memory_store() -> AsyncGenerator[PersistentMemoryStore]:
    store = PersistentMemoryStore(InMemoryKeyValueStore())
    await store.init()
    yield store
    await store.close()


@pytest.fixture()
def index(client: EmbeddingClient, memory_store: PersistentMemoryStore) -> VectorIndex:
    return VectorIndex(client, memory_store)
