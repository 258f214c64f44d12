from context_recall.relevance.assembler import ContextAssembler, EnhancedPrompt
from context_recall.relevance.fragments import RENDERERS, create_context_summary
from context_recall.relevance.keywords import DOMAINS, TRIGGERS
from context_recall.relevance.scorer import KeywordScorer, RelevanceScorer, RelevanceScores

__all__ = [
    "DOMAINS",
    "RENDERERS",
    "TRIGGERS",
    "ContextAssembler",
    "EnhancedPrompt",
    "KeywordScorer",
    "RelevanceScorer",
    "RelevanceScores",
    "create_context_summary",
]
