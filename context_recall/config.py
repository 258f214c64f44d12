from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from context_recall.llm.base import EmbeddingProvider
from context_recall.store.base import KeyValueStore


@dataclass(frozen=True)
class EngineSettings:
    """Tuning knobs for the memory and relevance engine."""

    # Circuit breaker
    failure_threshold: int = 5
    cooldown_seconds: float = 60.0
    max_cooldown_seconds: float = 900.0

    # Request queue
    max_active_requests: int = 3
    queue_capacity: int = 64
    min_request_interval: float = 0.1
    embedding_cache_size: int = 1024

    # Relevance
    inclusion_threshold: float = 0.4
    semantic_timeout_seconds: float = 2.0

    # Budgets, in characters
    max_context_chars: int = 4000
    max_memory_chars: int = 1500
    max_dynamic_context_chars: int = 1500

    # Memory
    recent_window: int = 50
    memory_top_k: int = 5
    memory_min_similarity: float = 0.3
    prompt_tail_messages: int = 6

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> EngineSettings:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(
                f"Unknown engine settings: {sorted(unknown)}. Available: {sorted(known)}"
            )
        return cls(**values)


T = TypeVar("T")


class _Registry(Generic[T]):
    """Lazily-populated factory registry.

    Each backend registers itself via :meth:`register`.  :meth:`build`
    resolves a provider name to a factory, calling
    ``factory.from_config(config)`` if available, otherwise
    ``factory(**config)``.
    """

    def __init__(self, label: str) -> None:
        self._label = label
        self._factories: dict[str, type[T]] = {}
        self._defaults_loaded = False

    def register(self, name: str, cls: type[T]) -> None:
        self._factories[name] = cls

    def names(self) -> list[str]:
        self._ensure_defaults()
        return list(self._factories)

    def build(self, provider: str, config: dict[str, Any]) -> T:
        self._ensure_defaults()
        factory = self._factories.get(provider)
        if factory is None:
            raise ValueError(
                f"Unknown {self._label} provider '{provider}'. "
                f"Available: {list(self._factories)}"
            )
        if hasattr(factory, "from_config"):
            return factory.from_config(config)  # type: ignore[return-value]
        return factory(**config)  # type: ignore[return-value]

    def _ensure_defaults(self) -> None:
        if not self._defaults_loaded:
            self._load_defaults()
            self._defaults_loaded = True

    def _load_defaults(self) -> None:
        """Subclasses register their built-in factories here."""


class _StoreRegistry(_Registry[KeyValueStore]):
    def _load_defaults(self) -> None:
        from context_recall.store.memory import InMemoryKeyValueStore
        from context_recall.store.sqlite import SQLiteKeyValueStore

        self.register("memory", InMemoryKeyValueStore)
        self.register("sqlite", SQLiteKeyValueStore)


class _EmbeddingRegistry(_Registry[EmbeddingProvider]):
    def _load_defaults(self) -> None:
        from context_recall.llm.hashing import HashingEmbeddingProvider
        from context_recall.llm.litellm import LiteLLMEmbeddingProvider

        self.register("openai", LiteLLMEmbeddingProvider)
        self.register("local", HashingEmbeddingProvider)


# Singleton instances
store_registry = _StoreRegistry("store")
embedding_registry = _EmbeddingRegistry("embedding")


def parse_config(
    config: dict[str, Any],
) -> tuple[KeyValueStore, EmbeddingProvider, EngineSettings]:
    """Parse a user config dict and return (store, embedding_provider, settings).

    Expected shape::

        {
            "store": {"provider": "sqlite", "config": {"path": "memory.db"}},
            "embeddings": {"provider": "openai", "api_key": "sk-..."},
            "engine": {"inclusion_threshold": 0.4},
        }

    Every section is optional.  The defaults are an in-memory store and
    the local hashing embedder, which need no credentials.
    """
    store_cfg = config.get("store") or {}
    embed_cfg = dict(config.get("embeddings") or {})
    engine_cfg = config.get("engine") or {}

    store = store_registry.build(
        store_cfg.get("provider", "memory"),
        store_cfg.get("config", {}),
    )
    provider_name = embed_cfg.pop("provider", "local")
    provider = embedding_registry.build(provider_name, embed_cfg)
    settings = EngineSettings.from_dict(engine_cfg)

    return store, provider, settings
