from __future__ import annotations

import logging
from typing import Any

import litellm
from litellm.exceptions import APIConnectionError, APIError, RateLimitError, Timeout
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from context_recall.llm.base import EmbeddingProvider
from context_recall.llm.models import EMBEDDING_DIMENSIONS, OpenAIEmbeddingModel

logger = logging.getLogger(__name__)

_RETRYABLE = (APIError, APIConnectionError, RateLimitError, Timeout)


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embeddings from any litellm-routed model (OpenAI by default)."""

    def __init__(
        self,
        api_key: str,
        model: OpenAIEmbeddingModel = OpenAIEmbeddingModel.TEXT_EMBEDDING_3_SMALL,
        *,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    @property
    def model(self) -> OpenAIEmbeddingModel:
        return self._model

    @property
    def dimensions(self) -> int:
        return EMBEDDING_DIMENSIONS[self._model]

    @retry(
        retry=retry_if_exception_type(_RETRYABLE),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4) + wait_random(0, 0.5),
        reraise=True,
    )
    async def embed(self, text: str) -> list[float]:
        response = await litellm.aembedding(
            model=self._model.value,
            input=[text],
            api_key=self._api_key,
            timeout=self._timeout,
        )
        vector: list[float] = response.data[0]["embedding"]
        logger.debug("Embedded %d chars with %s", len(text), self._model.value)
        return self._check_dimensions(vector)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> LiteLLMEmbeddingProvider:
        api_key = config.get("api_key")
        if not api_key:
            raise ValueError(
                "The 'openai' embedding provider needs an api_key "
                "(set OPENAI_API_KEY or embeddings.api_key)."
            )
        model = str(config.get("model") or OpenAIEmbeddingModel.TEXT_EMBEDDING_3_SMALL)
        if "/" not in model:
            model = f"openai/{model}"
        return cls(
            api_key=api_key,
            model=OpenAIEmbeddingModel(model),
            timeout=float(config.get("timeout", 10.0)),
        )
