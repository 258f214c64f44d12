from context_recall.llm.base import EmbeddingProvider
from context_recall.llm.hashing import HashingEmbeddingProvider
from context_recall.llm.litellm import LiteLLMEmbeddingProvider
from context_recall.llm.models import EMBEDDING_DIMENSIONS, OpenAIEmbeddingModel

__all__ = [
    "EMBEDDING_DIMENSIONS",
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "LiteLLMEmbeddingProvider",
    "OpenAIEmbeddingModel",
]
