from context_recall.memories.migration import MigrationResult, migrate_legacy_layout
from context_recall.memories.store import (
    MAX_CONTEXT_CHARS,
    Embedder,
    PersistentMemoryStore,
    time_ago,
)

__all__ = [
    "MAX_CONTEXT_CHARS",
    "Embedder",
    "MigrationResult",
    "PersistentMemoryStore",
    "migrate_legacy_layout",
    "time_ago",
]
