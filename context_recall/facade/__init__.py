from context_recall.facade.core import (
    DEFAULT_SYSTEM_PROMPT,
    RESPONSE_STYLE_SUFFIX,
    ContextOrchestrator,
    build_static_base,
)
from context_recall.facade.types import MemorySummary, PreparedPrompt

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "RESPONSE_STYLE_SUFFIX",
    "ContextOrchestrator",
    "MemorySummary",
    "PreparedPrompt",
    "build_static_base",
]
