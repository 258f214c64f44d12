"""Main facade for the context_recall library."""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable, Sequence
from types import TracebackType
from typing import Any

from context_recall.apps.base import AppAdapter
from context_recall.apps.service import DashboardAppService
from context_recall.config import EngineSettings, parse_config
from context_recall.context.channel import SnapshotChannel
from context_recall.context.models import ContextSnapshot, ContextualSuggestion
from context_recall.embedding.breaker import CircuitBreaker
from context_recall.embedding.client import EmbeddingClient
from context_recall.embedding.index import MemoryMatch, VectorIndex
from context_recall.embedding.queue import RequestQueue
from context_recall.errors import ValidationError
from context_recall.facade.types import MemorySummary, PreparedPrompt
from context_recall.llm.base import EmbeddingProvider
from context_recall.memories.store import PROMPT_MESSAGE_CHARS, PersistentMemoryStore
from context_recall.models import Memory, Message, Role
from context_recall.preprocess.preprocessor import PreprocessedQuery, QueryPreprocessor
from context_recall.relevance.assembler import ContextAssembler, EnhancedPrompt
from context_recall.relevance.fragments import create_context_summary
from context_recall.relevance.scorer import KeywordScorer, RelevanceScorer
from context_recall.store.base import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful personal assistant. You remember what the user has "
    "told you and use their surroundings to give grounded answers."
)

RESPONSE_STYLE_SUFFIX = (
    "\n\nRespond conversationally and concisely. Use the context above only "
    "when it helps answer the question, and never recite it verbatim."
)

RECENT_HEADER = "\n\nRECENT CONVERSATION:\n"
MEMORY_HEADER = "\n\nTHINGS THE USER ASKED YOU TO REMEMBER:\n"


@functools.lru_cache(maxsize=32)
def build_static_base(
    system_prompt: str,
    user_name: str,
    date: str,
    time_of_day: str,
    location: str,
) -> str:
    """The part of the prompt that only changes with user, day or place."""
    lines = [system_prompt.strip()]
    if user_name:
        lines.append(f"You are talking with {user_name}.")
    if date:
        when = f"Today is {date}"
        if time_of_day:
            when += f", {time_of_day}"
        lines.append(when + ".")
    if location:
        lines.append(f"The user is currently in {location}.")
    return "\n".join(lines)


def _fit_lines(header: str, lines: list[str], budget: int, *, keep_tail: bool) -> str:
    """Join *lines* under *header*, dropping lines until within *budget*.

    With ``keep_tail`` the oldest (first) lines go first, otherwise the
    last ones do.
    """
    lines = list(lines)
    while lines:
        text = header + "\n".join(lines)
        if len(text) <= budget:
            return text
        if keep_tail:
            lines.pop(0)
        else:
            lines.pop()
    return ""


class ContextOrchestrator:
    """Main entry point for the context_recall library.

    Owns the memory store, the vector index, the relevance assembler and
    the latest context snapshot, and turns a user query into a final
    prompt.

    Usage::

        engine = ContextOrchestrator.from_config({
            "store": {"provider": "sqlite", "config": {"path": "memory.db"}},
            "embeddings": {"provider": "openai", "api_key": "sk-..."},
        })
        await engine.init()
        await engine.mark_as_important("msg1", "My dog's name is Rex", "chat")
        prepared = await engine.prepare_prompt("what's my dog called?")
    """

    def __init__(
        self,
        store: PersistentMemoryStore,
        index: VectorIndex,
        *,
        preprocessor: QueryPreprocessor | None = None,
        apps: DashboardAppService | None = None,
        channel: SnapshotChannel | None = None,
        settings: EngineSettings | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._store = store
        self._index = index
        self._preprocessor = preprocessor or QueryPreprocessor()
        self._apps = apps if apps is not None else DashboardAppService(index)
        self._channel = channel or SnapshotChannel()
        self._system_prompt = system_prompt

        self._assembler = ContextAssembler(
            self._preprocessor,
            RelevanceScorer(
                KeywordScorer(),
                index,
                semantic_timeout=self._settings.semantic_timeout_seconds,
            ),
            self._apps,
            inclusion_threshold=self._settings.inclusion_threshold,
            max_dynamic_context_chars=self._settings.max_dynamic_context_chars,
            app_timeout=self._settings.semantic_timeout_seconds,
        )

        self._snapshot = self._channel.latest
        self._unsubscribe = self._channel.subscribe(self._on_snapshot)
        self._store.register_embedder(self._index.index_memory)

    @classmethod
    def build(
        cls,
        kv: KeyValueStore,
        provider: EmbeddingProvider,
        *,
        settings: EngineSettings | None = None,
        **kwargs: Any,
    ) -> ContextOrchestrator:
        """Wire every component from a key-value store and an embedder."""
        settings = settings or EngineSettings()
        store = PersistentMemoryStore(
            kv,
            recent_window=settings.recent_window,
            max_context_chars=settings.max_context_chars,
        )
        client = EmbeddingClient(
            provider,
            breaker=CircuitBreaker(
                failure_threshold=settings.failure_threshold,
                cooldown_seconds=settings.cooldown_seconds,
                max_cooldown_seconds=settings.max_cooldown_seconds,
            ),
            queue=RequestQueue(
                max_active=settings.max_active_requests,
                capacity=settings.queue_capacity,
                min_interval=settings.min_request_interval,
            ),
            cache_size=settings.embedding_cache_size,
        )
        index = VectorIndex(client, store)
        return cls(store, index, settings=settings, **kwargs)

    @classmethod
    def from_config(cls, config: dict[str, Any], **kwargs: Any) -> ContextOrchestrator:
        """Construct an orchestrator from a configuration dict."""
        kv, provider, settings = parse_config(config)
        return cls.build(kv, provider, settings=settings, **kwargs)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        """Open the store and run pending migrations. Raises StorageError."""
        await self._store.init()

    async def warm_up(self) -> int:
        """Precompute domain and app label vectors."""
        return await self._index.initialize_intent_embeddings()

    async def close(self) -> None:
        self._unsubscribe()
        await self._store.close()

    async def __aenter__(self) -> ContextOrchestrator:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── Components ───────────────────────────────────────────────────

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def store(self) -> PersistentMemoryStore:
        return self._store

    @property
    def index(self) -> VectorIndex:
        return self._index

    @property
    def apps(self) -> DashboardAppService:
        return self._apps

    @property
    def channel(self) -> SnapshotChannel:
        return self._channel

    @property
    def snapshot(self) -> ContextSnapshot:
        return self._snapshot

    def publish_snapshot(self, snapshot: ContextSnapshot) -> None:
        self._channel.publish(snapshot)

    def register_app(self, adapter: AppAdapter) -> None:
        self._apps.register_adapter(adapter)

    def _on_snapshot(self, snapshot: ContextSnapshot) -> None:
        self._snapshot = snapshot

    # ── Public API ───────────────────────────────────────────────────

    def preprocess(self, query: str) -> PreprocessedQuery:
        return self._preprocessor.preprocess(query)

    async def record_messages(self, messages: Iterable[Message]) -> int:
        return await self._store.save_conversation(messages)

    async def mark_as_important(
        self,
        message_id: str | None,
        content: str,
        context: str | None = None,
        tag: str | None = None,
    ) -> Memory | None:
        """Remember *content*; the context tag defaults to a snapshot summary."""
        if context is None:
            context = create_context_summary(self._snapshot)
        return await self._store.mark_as_important(message_id, content, context, tag)

    async def forget_memory(self, memory_id: str) -> bool:
        return await self._store.forget_memory(memory_id)

    async def list_memories(self) -> list[MemorySummary]:
        return [MemorySummary.from_memory(m) for m in await self._store.get_marked_memories()]

    async def search_memories(self, query: str, top_k: int | None = None) -> list[MemorySummary]:
        matches = await self._index.search_memories(
            query,
            top_k=top_k or self._settings.memory_top_k,
            min_similarity=self._settings.memory_min_similarity,
        )
        return [MemorySummary.from_memory(m.memory, m.similarity) for m in matches]

    async def count_memories(self) -> int:
        return len(await self._store.get_marked_memories())

    async def get_context_for_prompt(self, max_chars: int | None = None) -> str:
        return await self._store.get_context_for_prompt(max_chars)

    async def export_all_data(self) -> dict[str, Any]:
        return await self._store.export_all_data()

    async def clear_all_data(self) -> bool:
        return await self._store.clear_all_data()

    async def build_enhanced_prompt(
        self,
        base_prompt: str,
        query: str,
        snapshot: ContextSnapshot | None = None,
        suggestions: Sequence[ContextualSuggestion] | None = None,
    ) -> EnhancedPrompt:
        return await self._assembler.build_enhanced_prompt(
            base_prompt,
            query,
            snapshot if snapshot is not None else self._snapshot,
            suggestions,
        )

    async def get_semantic_confidence_batch(
        self, query: str, labels: Sequence[str]
    ) -> dict[str, float]:
        return await self._index.get_semantic_confidence_batch(query, labels)

    async def prepare_prompt(
        self,
        query: str,
        *,
        suggestions: Sequence[ContextualSuggestion] | None = None,
        system_prompt: str | None = None,
    ) -> PreparedPrompt:
        """Build the full prompt for *query*.

        Order: static base, recent conversation, relevant memories,
        contextual fragments, response-style suffix.

        Raises:
            ValidationError: *query* is empty after normalization.
        """
        if query is not None and not isinstance(query, str):
            raise ValidationError(f"query must be a string, got {type(query).__name__}")
        prepared = self._preprocessor.preprocess(query)
        if not prepared.normalized:
            raise ValidationError("query is empty")

        snapshot = self._snapshot
        settings = self._settings

        enhanced = await self._assembler.build_enhanced_prompt(
            "", prepared, snapshot, suggestions
        )

        matches = await self._index.search_memories(
            prepared.normalized,
            top_k=settings.memory_top_k,
            min_similarity=settings.memory_min_similarity,
        )
        memory_excerpt = self._render_memories(matches)

        recent = await self._store.get_recent_messages(settings.prompt_tail_messages)
        tail = self._render_tail(recent)

        base = build_static_base(
            system_prompt or self._system_prompt,
            (snapshot.user.name or "") if snapshot.user.has_data else "",
            snapshot.time.current_date,
            snapshot.time.time_of_day,
            snapshot.location.label,
        )
        prompt = base + tail + memory_excerpt + enhanced.addition + RESPONSE_STYLE_SUFFIX

        logger.debug(
            "Prepared prompt: %d chars, %d memories, context=%s",
            len(prompt),
            len(matches),
            ",".join(enhanced.context_used) or "-",
        )
        return PreparedPrompt(
            prompt=prompt,
            query=prepared,
            enhanced=enhanced,
            memories=matches,
            recent_messages=len(recent),
        )

    def _render_memories(self, matches: list[MemoryMatch]) -> str:
        lines = []
        for match in matches:
            line = f"- {match.memory.content}"
            if match.memory.context:
                line += f" ({match.memory.context})"
            lines.append(line)
        return _fit_lines(
            MEMORY_HEADER, lines, self._settings.max_memory_chars, keep_tail=False
        )

    def _render_tail(self, messages: list[Message]) -> str:
        lines = []
        for message in messages:
            speaker = "User" if message.role == Role.user else "Assistant"
            content = message.content
            if len(content) > PROMPT_MESSAGE_CHARS:
                content = content[:PROMPT_MESSAGE_CHARS] + "..."
            lines.append(f"{speaker}: {content}")
        return _fit_lines(
            RECENT_HEADER, lines, self._settings.max_context_chars, keep_tail=True
        )

    def stats(self) -> dict[str, object]:
        return {
            "snapshot_at": self._snapshot.captured_at.isoformat(),
            "apps": [a.app_name for a in self._apps.adapters],
            **self._index.stats(),
        }
