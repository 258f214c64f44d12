from context_recall.embedding.breaker import BreakerSnapshot, BreakerState, CircuitBreaker
from context_recall.embedding.client import EmbeddingClient
from context_recall.embedding.index import MemoryMatch, VectorIndex
from context_recall.embedding.intents import DOMAIN_INTENTS, build_intent_text
from context_recall.embedding.queue import RequestQueue

__all__ = [
    "BreakerSnapshot",
    "BreakerState",
    "CircuitBreaker",
    "DOMAIN_INTENTS",
    "EmbeddingClient",
    "MemoryMatch",
    "RequestQueue",
    "VectorIndex",
    "build_intent_text",
]
