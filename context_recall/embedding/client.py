from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict

from context_recall.embedding.breaker import CircuitBreaker
from context_recall.embedding.queue import RequestQueue
from context_recall.errors import (
    BackpressureError,
    ProviderUnavailableError,
    TransientProviderError,
)
from context_recall.llm.base import EmbeddingProvider
from context_recall.models.utils import content_hash

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 1024


class EmbeddingClient:
    """Cached, rate-limited, breaker-guarded access to an embedding provider.

    Lookup order for :meth:`embed`: in-process cache (by SHA-256 of the
    text), then the circuit breaker, then the request queue, then the
    provider itself.  Only successful vectors are cached.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        breaker: CircuitBreaker | None = None,
        queue: RequestQueue | None = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        self._provider = provider
        self._breaker = breaker or CircuitBreaker()
        self._queue = queue or RequestQueue()
        self._cache: OrderedDict[str, list[float]] = OrderedDict()
        self._cache_size = max(0, cache_size)
        self._cache_hits = 0
        self._provider_calls = 0

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    @property
    def dimensions(self) -> int:
        return self._provider.dimensions

    def cached(self, text: str) -> list[float] | None:
        key = content_hash(text)
        vector = self._cache.get(key)
        if vector is not None:
            self._cache.move_to_end(key)
        return vector

    async def embed(self, text: str, *, request_id: str | None = None) -> list[float]:
        """Vector for *text*.

        The breaker is consulted on admission and again when the queued
        call is about to start, so nothing reaches the provider while it
        is open.

        Raises:
            ProviderUnavailableError: the breaker is open; no call was made.
            BackpressureError: the request queue is full.
            TransientProviderError: the provider call failed.
        """
        vector = self.cached(text)
        if vector is not None:
            self._cache_hits += 1
            return vector

        ticket = self._breaker.admit()
        if ticket is None:
            raise ProviderUnavailableError(self._breaker.retry_in())

        async def call() -> list[float]:
            nonlocal ticket
            if not self._breaker.is_current(ticket):
                ticket = self._breaker.admit()
                if ticket is None:
                    raise ProviderUnavailableError(self._breaker.retry_in())
            return await self._call_provider(text, ticket)

        try:
            vector = await self._queue.submit(call, request_id=request_id)
        except (BackpressureError, asyncio.CancelledError):
            self._breaker.release_probe(ticket)
            raise
        except TransientProviderError:
            raise
        except Exception as exc:
            raise TransientProviderError(str(exc) or type(exc).__name__) from exc

        self._remember(text, vector)
        return vector

    async def _call_provider(self, text: str, ticket: int) -> list[float]:
        # Results are reported before the queue slot is freed, so the next
        # queued call sees the breaker state they produce.
        self._provider_calls += 1
        try:
            vector = await self._provider.embed(text)
        except Exception as exc:
            self._breaker.record_failure(exc, ticket=ticket)
            raise
        self._breaker.record_success(ticket)
        return vector

    def _remember(self, text: str, vector: list[float]) -> None:
        if self._cache_size == 0:
            return
        self._cache[content_hash(text)] = vector
        self._cache.move_to_end(content_hash(text))
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)

    def clear_cache(self) -> None:
        self._cache.clear()

    def stats(self) -> dict[str, object]:
        breaker = self._breaker.snapshot()
        return {
            "cache_size": len(self._cache),
            "cache_hits": self._cache_hits,
            "provider_calls": self._provider_calls,
            "breaker_state": str(breaker.state),
            "consecutive_failures": breaker.consecutive_failures,
            "retry_in": breaker.retry_in,
            **self._queue.stats(),
        }
