from context_recall.config import EngineSettings, parse_config
from context_recall.context import ContextSnapshot, ContextualSuggestion, SnapshotChannel
from context_recall.errors import (
    BackpressureError,
    ContextRecallError,
    ProviderUnavailableError,
    StorageError,
    TransientProviderError,
    ValidationError,
)
from context_recall.facade import ContextOrchestrator, MemorySummary, PreparedPrompt
from context_recall.memories import PersistentMemoryStore
from context_recall.preprocess import PreprocessedQuery, QueryPreprocessor
from context_recall.relevance import ContextAssembler, EnhancedPrompt

__all__ = [
    "BackpressureError",
    "ContextAssembler",
    "ContextOrchestrator",
    "ContextRecallError",
    "ContextSnapshot",
    "ContextualSuggestion",
    "EngineSettings",
    "EnhancedPrompt",
    "MemorySummary",
    "PersistentMemoryStore",
    "PreparedPrompt",
    "PreprocessedQuery",
    "ProviderUnavailableError",
    "QueryPreprocessor",
    "SnapshotChannel",
    "StorageError",
    "TransientProviderError",
    "ValidationError",
    "parse_config",
]
