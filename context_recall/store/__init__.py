from context_recall.store.base import Document, KeyValueStore
from context_recall.store.memory import InMemoryKeyValueStore
from context_recall.store.sqlite import SQLiteKeyValueStore

__all__ = [
    "Document",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SQLiteKeyValueStore",
]
