from __future__ import annotations

import asyncio

import pytest

from context_recall.embedding.queue import RequestQueue
from context_recall.errors import BackpressureError


class _Gate:
    """Calls that block until released, recording concurrency."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.active = 0
        self.peak = 0
        self.started: list[int] = []

    def call(self, n: int):
        async def run() -> int:
            self.started.append(n)
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                await self.release.wait()
            finally:
                self.active -= 1
            return n

        return run


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


# ── Concurrency ─────────────────────────────────────────────────────


async def test_bounded_concurrency_and_fifo_drain() -> None:
    queue = RequestQueue(max_active=3, capacity=10, min_interval=0)
    gate = _Gate()

    tasks = [asyncio.create_task(queue.submit(gate.call(n))) for n in range(8)]
    await _settle()

    assert queue.in_flight == 3
    assert queue.queued == 5
    assert gate.started == [0, 1, 2]

    gate.release.set()
    results = await asyncio.gather(*tasks)

    assert results == list(range(8))
    assert gate.peak == 3
    assert gate.started == list(range(8))
    assert queue.stats()["completed"] == 8


async def test_backpressure_when_full() -> None:
    queue = RequestQueue(max_active=1, capacity=2, min_interval=0)
    gate = _Gate()

    tasks = [asyncio.create_task(queue.submit(gate.call(n))) for n in range(3)]
    await _settle()

    with pytest.raises(BackpressureError) as excinfo:
        await queue.submit(gate.call(99))
    assert excinfo.value.retryable
    assert excinfo.value.capacity == 2

    gate.release.set()
    assert await asyncio.gather(*tasks) == [0, 1, 2]
    assert queue.stats()["rejected"] == 1


async def test_errors_reach_the_caller_and_free_the_slot() -> None:
    queue = RequestQueue(max_active=1, capacity=4, min_interval=0)

    async def boom() -> int:
        raise ValueError("nope")

    async def ok() -> int:
        return 1

    results = await asyncio.gather(
        queue.submit(boom), queue.submit(ok), return_exceptions=True
    )
    assert isinstance(results[0], ValueError)
    assert results[1] == 1
    assert queue.in_flight == 0


# ── Cancellation ────────────────────────────────────────────────────


async def test_cancel_by_request_id() -> None:
    queue = RequestQueue(max_active=1, capacity=4, min_interval=0)
    gate = _Gate()

    running = asyncio.create_task(queue.submit(gate.call(0)))
    waiting = asyncio.create_task(queue.submit(gate.call(1), request_id="req-1"))
    await _settle()

    assert queue.cancel("req-1") is True
    assert queue.cancel("req-1") is False

    with pytest.raises(asyncio.CancelledError):
        await waiting

    gate.release.set()
    assert await running == 0
    assert gate.started == [0]


async def test_cancelling_the_caller_frees_its_place() -> None:
    queue = RequestQueue(max_active=1, capacity=4, min_interval=0)
    gate = _Gate()

    running = asyncio.create_task(queue.submit(gate.call(0)))
    waiting = asyncio.create_task(queue.submit(gate.call(1)))
    await _settle()
    assert queue.queued == 1

    waiting.cancel()
    await _settle()

    assert queue.queued == 0
    gate.release.set()
    await running
    assert gate.started == [0]
    assert queue.stats()["cancelled"] == 1


# ── Throttling ──────────────────────────────────────────────────────


async def test_min_interval_spaces_starts() -> None:
    queue = RequestQueue(max_active=3, capacity=4, min_interval=0.05)
    loop = asyncio.get_running_loop()
    starts: list[float] = []

    async def record() -> None:
        starts.append(loop.time())

    await asyncio.gather(*(queue.submit(record) for _ in range(3)))

    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.04 for gap in gaps)
