from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from context_recall.embedding.client import EmbeddingClient
from context_recall.embedding.intents import DOMAIN_INTENTS
from context_recall.memories.store import PersistentMemoryStore
from context_recall.models import Memory, VectorRecord
from context_recall.models.utils import content_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemoryMatch:
    """A marked memory with its similarity to a query."""

    memory: Memory
    similarity: float


class VectorIndex:
    """Semantic scoring over label vectors and memory vectors.

    Label vectors (context domains and dashboard-app intents) are embedded
    once per process by :meth:`initialize_intent_embeddings`.  Memory
    vectors are persisted through the memory store.
    """

    def __init__(
        self,
        client: EmbeddingClient,
        store: PersistentMemoryStore | None = None,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._labels: dict[str, str] = dict(DOMAIN_INTENTS if labels is None else labels)
        self._label_vectors: dict[str, list[float]] = {}
        self._warmup: asyncio.Future[int] | None = None

    @property
    def client(self) -> EmbeddingClient:
        return self._client

    @property
    def is_warm(self) -> bool:
        return all(label in self._label_vectors for label in self._labels)

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    @staticmethod
    def similarity(a: Sequence[float], b: Sequence[float]) -> float:
        """Cosine similarity clamped to [0, 1].

        Opposed vectors count as unrelated, so negative values become 0.
        Mismatched or zero-length vectors score 0.
        """
        if len(a) != len(b) or not a:
            return 0.0
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(x * x for x in b))
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return min(1.0, max(0.0, dot / (norm_a * norm_b)))

    def register_label(self, label: str, text: str) -> None:
        """Add or replace a label; its vector is (re)computed on next warm-up."""
        if self._labels.get(label) != text:
            self._labels[label] = text
            self._label_vectors.pop(label, None)

    # ── Warm-up ──────────────────────────────────────────────────────

    async def initialize_intent_embeddings(self) -> int:
        """Embed every label that has no vector yet.

        Concurrent callers share one warm-up.  Returns the number of label
        vectors computed by this warm-up (0 when already warm).
        """
        if self.is_warm:
            return 0
        if self._warmup is None:
            self._warmup = asyncio.ensure_future(self._embed_labels())
        future = self._warmup
        try:
            return await asyncio.shield(future)
        finally:
            if self._warmup is future and future.done():
                self._warmup = None

    async def _embed_labels(self) -> int:
        missing = [label for label in self._labels if label not in self._label_vectors]
        computed = 0
        for label in missing:
            text = self._labels[label]
            try:
                vector = await self._client.embed(text)
            except Exception:
                logger.warning("Failed to embed label %r", label, exc_info=True)
                continue
            if self._labels.get(label) == text:
                self._label_vectors[label] = vector
                computed += 1
        logger.info("Embedded %d/%d label vectors", computed, len(missing))
        return computed

    # ── Scoring ──────────────────────────────────────────────────────

    async def get_semantic_confidence_batch(
        self,
        query: str,
        labels: Sequence[str],
    ) -> dict[str, float]:
        """Similarity of *query* to each pre-embedded label in *labels*.

        Embeds the query once.  Labels without a vector are left out.  Any
        failure yields an empty mapping.
        """
        if not query or not query.strip() or not labels:
            return {}
        try:
            if any(label not in self._label_vectors for label in labels):
                await self.initialize_intent_embeddings()
            query_vector = await self._client.embed(query)
        except Exception as exc:
            logger.debug("Semantic confidence unavailable: %s", exc)
            return {}
        return {
            label: self.similarity(query_vector, self._label_vectors[label])
            for label in labels
            if label in self._label_vectors
        }

    # ── Memories ─────────────────────────────────────────────────────

    async def index_memory(self, memory: Memory) -> VectorRecord | None:
        """Embed *memory* and persist its vector. Used as the store's embedder."""
        vector = await self._client.embed(memory.content)
        record = VectorRecord(
            memory_id=memory.id,
            vector=vector,
            content_hash=content_hash(memory.content),
        )
        if self._store is not None and not await self._store.save_vector(record):
            return None
        return record

    async def search_memories(
        self,
        query: str,
        top_k: int = 5,
        min_similarity: float = 0.3,
    ) -> list[MemoryMatch]:
        """Marked memories most similar to *query*, best first."""
        if self._store is None or top_k <= 0 or not query.strip():
            return []
        try:
            query_vector = await self._client.embed(query)
        except Exception as exc:
            logger.debug("Memory search unavailable: %s", exc)
            return []

        vectors = await self._store.get_vectors()
        scored = sorted(
            (
                (self.similarity(query_vector, record.vector), memory_id)
                for memory_id, record in vectors.items()
                if record.dimensions == len(query_vector)
            ),
            reverse=True,
        )
        best = [(score, mid) for score, mid in scored if score >= min_similarity][:top_k]
        if not best:
            return []

        memories = {m.id: m for m in await self._store.get_memories([mid for _, mid in best])}
        return [
            MemoryMatch(memory=memories[mid], similarity=score)
            for score, mid in best
            if mid in memories
        ]

    def stats(self) -> dict[str, object]:
        return {
            "labels": len(self._labels),
            "label_vectors": len(self._label_vectors),
            "warm": self.is_warm,
            **self._client.stats(),
        }
