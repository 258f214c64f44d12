from __future__ import annotations

import asyncio

import pytest

from context_recall.embedding.breaker import BreakerState, CircuitBreaker
from context_recall.embedding.client import EmbeddingClient
from context_recall.embedding.index import VectorIndex
from context_recall.embedding.queue import RequestQueue
from context_recall.errors import (
    BackpressureError,
    ProviderUnavailableError,
    TransientProviderError,
)
from tests.conftest import FakeClock, FakeEmbeddingProvider


# ── Cache ───────────────────────────────────────────────────────────


async def test_cache_hit_skips_provider(
    client: EmbeddingClient, provider: FakeEmbeddingProvider
) -> None:
    first = await client.embed("hello world")
    second = await client.embed("hello world")

    assert first == second
    assert provider.calls == ["hello world"]
    assert client.stats()["cache_hits"] == 1


async def test_cache_evicts_least_recently_used(provider: FakeEmbeddingProvider) -> None:
    client = EmbeddingClient(
        provider, queue=RequestQueue(min_interval=0), cache_size=2
    )
    await client.embed("a")
    await client.embed("b")
    await client.embed("a")  # refresh "a"
    await client.embed("c")  # evicts "b"

    assert client.cached("a") is not None
    assert client.cached("b") is None
    assert client.cached("c") is not None


async def test_failures_are_not_cached(provider: FakeEmbeddingProvider) -> None:
    client = EmbeddingClient(provider, queue=RequestQueue(min_interval=0))
    provider.fail = True
    with pytest.raises(TransientProviderError):
        await client.embed("x")

    provider.fail = False
    await client.embed("x")
    assert provider.calls == ["x", "x"]


# ── Breaker integration ─────────────────────────────────────────────


async def test_open_breaker_short_circuits_without_provider_calls(
    client: EmbeddingClient, provider: FakeEmbeddingProvider
) -> None:
    provider.fail = True
    for i in range(5):
        with pytest.raises(TransientProviderError):
            await client.embed(f"query {i}")
    assert client.breaker.state is BreakerState.OPEN
    calls_before = len(provider.calls)

    with pytest.raises(ProviderUnavailableError) as excinfo:
        await client.embed("sixth")

    assert len(provider.calls) == calls_before == 5
    assert excinfo.value.retry_in == pytest.approx(60)


async def test_open_breaker_yields_empty_confidence(
    client: EmbeddingClient, provider: FakeEmbeddingProvider
) -> None:
    index = VectorIndex(client)
    await index.initialize_intent_embeddings()

    provider.fail = True
    for i in range(5):
        with pytest.raises(TransientProviderError):
            await client.embed(f"query {i}")
    calls_before = len(provider.calls)

    assert await index.get_semantic_confidence_batch("what time is it", ["time"]) == {}
    assert len(provider.calls) == calls_before


async def test_recovers_after_cooldown(
    client: EmbeddingClient, provider: FakeEmbeddingProvider, clock: FakeClock
) -> None:
    provider.fail = True
    for i in range(5):
        with pytest.raises(TransientProviderError):
            await client.embed(f"query {i}")

    provider.fail = False
    clock.advance(60)
    await client.embed("probe")

    assert client.breaker.state is BreakerState.CLOSED


async def test_backpressure_releases_probe(provider: FakeEmbeddingProvider) -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=5, clock=clock)
    queue = RequestQueue(max_active=1, capacity=0, min_interval=0)
    client = EmbeddingClient(provider, breaker=breaker, queue=queue)

    provider.fail = True
    with pytest.raises(TransientProviderError):
        await client.embed("trip")
    provider.fail = False
    clock.advance(5)

    # Occupy the only slot so the probe is rejected by the queue.
    release = asyncio.Event()

    async def hold() -> None:
        await release.wait()

    holder = asyncio.create_task(queue.submit(hold))
    await asyncio.sleep(0)

    with pytest.raises(BackpressureError):
        await client.embed("probe")
    assert breaker.state is BreakerState.HALF_OPEN

    release.set()
    await holder
    await client.embed("probe again")
    assert breaker.state is BreakerState.CLOSED


async def test_concurrency_bound_through_client(provider: FakeEmbeddingProvider) -> None:
    release = asyncio.Event()
    active = peak = 0
    order: list[str] = []

    original = provider.embed

    async def slow_embed(text: str) -> list[float]:
        nonlocal active, peak
        order.append(text)
        active += 1
        peak = max(peak, active)
        try:
            await release.wait()
            return await original(text)
        finally:
            active -= 1

    provider.embed = slow_embed  # type: ignore[method-assign]
    client = EmbeddingClient(provider, queue=RequestQueue(max_active=3, min_interval=0))

    texts = [f"text {i}" for i in range(7)]
    tasks = [asyncio.create_task(client.embed(t)) for t in texts]
    for _ in range(5):
        await asyncio.sleep(0)
    assert client.queue.in_flight == 3
    assert client.queue.queued == 4

    release.set()
    await asyncio.gather(*tasks)
    assert peak == 3
    assert order == texts


async def test_queued_calls_short_circuit_once_breaker_opens(
    provider: FakeEmbeddingProvider,
) -> None:
    breaker = CircuitBreaker(failure_threshold=2, cooldown_seconds=60, clock=FakeClock())
    client = EmbeddingClient(
        provider, breaker=breaker, queue=RequestQueue(max_active=1, min_interval=0)
    )
    provider.fail = True

    results = await asyncio.gather(
        *(client.embed(f"queued {i}") for i in range(4)), return_exceptions=True
    )

    unavailable = [r for r in results if isinstance(r, ProviderUnavailableError)]
    failed = [r for r in results if type(r) is TransientProviderError]
    assert len(failed) == 2
    assert len(unavailable) == 2
    assert provider.calls == ["queued 0", "queued 1"]
    assert breaker.state is BreakerState.OPEN


async def test_success_admitted_before_trip_keeps_breaker_open(
    provider: FakeEmbeddingProvider,
) -> None:
    breaker = CircuitBreaker(failure_threshold=1, cooldown_seconds=60, clock=FakeClock())
    client = EmbeddingClient(
        provider, breaker=breaker, queue=RequestQueue(max_active=2, min_interval=0)
    )
    gates = {"slow ok": asyncio.Event(), "fast fail": asyncio.Event()}
    original = provider.embed

    async def gated_embed(text: str) -> list[float]:
        await gates[text].wait()
        if text == "fast fail":
            raise RuntimeError("boom")
        return await original(text)

    provider.embed = gated_embed  # type: ignore[method-assign]

    slow = asyncio.create_task(client.embed("slow ok"))
    fast = asyncio.create_task(client.embed("fast fail"))
    await asyncio.sleep(0)

    gates["fast fail"].set()
    with pytest.raises(TransientProviderError):
        await fast
    assert breaker.state is BreakerState.OPEN

    gates["slow ok"].set()
    assert await slow
    assert breaker.state is BreakerState.OPEN
    with pytest.raises(ProviderUnavailableError):
        await client.embed("after trip")
