from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from context_recall.errors import BackpressureError
from context_recall.models.utils import generate_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Entry:
    request_id: str
    call: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]
    enqueued_at: float
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class RequestQueue:
    """Bounded worker pool for provider calls.

    At most ``max_active`` calls run at once.  Further submissions wait in
    FIFO order, up to ``capacity`` of them; past that ``submit`` fails
    immediately with :class:`~context_recall.errors.BackpressureError`.
    Consecutive call starts are spaced at least ``min_interval`` seconds
    apart.

    A queued request can be cancelled by id, or by cancelling the task
    awaiting ``submit``.  Either way its place in the queue is released.
    """

    def __init__(
        self,
        max_active: int = 3,
        capacity: int = 64,
        min_interval: float = 0.1,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_active = max(1, max_active)
        self._capacity = max(0, capacity)
        self._min_interval = max(0.0, min_interval)
        self._clock = clock

        self._active = 0
        self._pending: OrderedDict[str, _Entry] = OrderedDict()
        self._last_start: float | None = None

        self._completed = 0
        self._rejected = 0
        self._cancelled = 0

    @property
    def in_flight(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return len(self._pending)

    @property
    def capacity(self) -> int:
        return self._capacity

    async def submit(
        self,
        call: Callable[[], Awaitable[T]],
        *,
        request_id: str | None = None,
    ) -> T:
        """Run *call* once a slot is free and return its result."""
        request_id = request_id or generate_id()

        if self._active < self._max_active and not self._pending:
            self._active += 1
            try:
                await self._throttle()
                return await call()
            finally:
                self._finish()

        if len(self._pending) >= self._capacity:
            self._rejected += 1
            logger.warning(
                "Embedding queue full (%d pending), rejecting %s",
                len(self._pending),
                request_id,
            )
            raise BackpressureError(
                self._capacity,
                retry_after=self._min_interval * (len(self._pending) + 1),
            )

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        entry = _Entry(
            request_id=request_id,
            call=call,
            future=future,
            enqueued_at=self._clock(),
        )
        self._pending[request_id] = entry
        logger.debug("Queued %s (%d pending)", request_id, len(self._pending))

        try:
            return await future
        except asyncio.CancelledError:
            if self._pending.get(request_id) is entry:
                del self._pending[request_id]
                self._cancelled += 1
            elif entry.task is not None and not entry.task.done():
                entry.task.cancel()
            raise

    def cancel(self, request_id: str) -> bool:
        """Drop a queued request that has not started. Returns whether it was."""
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return False
        self._cancelled += 1
        if not entry.future.done():
            entry.future.cancel()
        logger.debug("Cancelled queued request %s", request_id)
        return True

    def stats(self) -> dict[str, int]:
        return {
            "in_flight": self._active,
            "queued": len(self._pending),
            "capacity": self._capacity,
            "completed": self._completed,
            "rejected": self._rejected,
            "cancelled": self._cancelled,
        }

    async def _throttle(self) -> None:
        # Reserve the start slot before sleeping so concurrent starters
        # line up behind each other.
        now = self._clock()
        start = now if self._last_start is None else max(
            now, self._last_start + self._min_interval
        )
        self._last_start = start
        delay = start - now
        if delay > 0:
            await asyncio.sleep(delay)

    def _finish(self) -> None:
        self._active -= 1
        self._completed += 1
        self._dispatch()

    def _dispatch(self) -> None:
        while self._active < self._max_active and self._pending:
            _, entry = self._pending.popitem(last=False)
            if entry.future.done():
                continue
            self._active += 1
            entry.task = asyncio.create_task(self._run(entry))

    async def _run(self, entry: _Entry) -> None:
        try:
            await self._throttle()
            result = await entry.call()
        except asyncio.CancelledError:
            if not entry.future.done():
                entry.future.cancel()
            raise
        except Exception as exc:
            if not entry.future.done():
                entry.future.set_exception(exc)
        else:
            if not entry.future.done():
                entry.future.set_result(result)
        finally:
            self._finish()
