from __future__ import annotations

from abc import ABC, abstractmethod

from context_recall.errors import TransientProviderError


class EmbeddingProvider(ABC):
    """Turns text into a fixed-length vector.

    Implementations raise on failure; the caller decides how failures
    count towards the circuit breaker.
    """

    # Whether similarities reflect meaning rather than shared words.
    semantic: bool = True

    @property
    @abstractmethod
    def dimensions(self) -> int: ...

    @abstractmethod
    async def embed(self, text: str) -> list[float]: ...

    def _check_dimensions(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimensions:
            raise TransientProviderError(
                f"expected {self.dimensions} dimensions, got {len(vector)}"
            )
        return vector
