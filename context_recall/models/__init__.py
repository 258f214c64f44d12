"""Domain models: pure Python dataclasses with no infrastructure dependencies.

These are the canonical types passed between the key-value store, the
memory store, the vector index and the prompt assembler.  Each model
converts to and from a plain JSON-compatible record at the storage boundary.
"""

from context_recall.models.memory import (
    MAX_MEMORY_CONTENT_CHARS,
    MAX_MEMORY_CONTEXT_CHARS,
    Memory,
    MemoryStatus,
    VectorRecord,
)
from context_recall.models.message import (
    CONTINUOUS_CONVERSATION_ID,
    Conversation,
    ConversationSummary,
    Message,
    Role,
)

__all__ = [
    "CONTINUOUS_CONVERSATION_ID",
    "Conversation",
    "ConversationSummary",
    "MAX_MEMORY_CONTENT_CHARS",
    "MAX_MEMORY_CONTEXT_CHARS",
    "Memory",
    "MemoryStatus",
    "Message",
    "Role",
    "VectorRecord",
]
