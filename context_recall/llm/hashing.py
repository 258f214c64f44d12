from __future__ import annotations

import hashlib
import math
import re
from typing import Any

from context_recall.llm.base import EmbeddingProvider

_TOKEN = re.compile(r"[a-z0-9']+")

DEFAULT_DIMENSIONS = 256


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words vectors built by feature hashing.

    Needs no network and no API key, which makes it the default for local
    use and for tests.  Unigrams and bigrams are hashed into
    ``dimensions`` signed buckets and the result is L2-normalised.
    """

    semantic = False

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS) -> None:
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)

    def embed_sync(self, text: str) -> list[float]:
        tokens = _TOKEN.findall(text.lower())
        features = tokens + [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]

        vector = [0.0] * self._dimensions
        for feature in features:
            digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self._dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> HashingEmbeddingProvider:
        return cls(dimensions=int(config.get("dimensions", DEFAULT_DIMENSIONS)))
