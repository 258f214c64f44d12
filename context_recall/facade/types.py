"""Public return types for the context_recall API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from context_recall.embedding.index import MemoryMatch
from context_recall.models import Memory
from context_recall.preprocess.preprocessor import PreprocessedQuery
from context_recall.relevance.assembler import EnhancedPrompt


@dataclass
class PreparedPrompt:
    """Result from :meth:`ContextOrchestrator.prepare_prompt`."""

    prompt: str
    query: PreprocessedQuery
    enhanced: EnhancedPrompt
    memories: list[MemoryMatch] = field(default_factory=list)
    recent_messages: int = 0

    @property
    def context_used(self) -> tuple[str, ...]:
        return self.enhanced.context_used


@dataclass
class MemorySummary:
    """Public representation of a single memory."""

    id: str
    content: str
    context: str
    tag: str | None
    created_at: datetime
    similarity: float | None = None

    @classmethod
    def from_memory(cls, memory: Memory, similarity: float | None = None) -> MemorySummary:
        return cls(
            id=memory.id,
            content=memory.content,
            context=memory.context,
            tag=memory.tag,
            created_at=memory.timestamp,
            similarity=similarity,
        )
