from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import litellm
import pytest
from litellm.exceptions import Timeout

from context_recall.llm.litellm import LiteLLMEmbeddingProvider


def test_retry_wait_grows_and_is_capped() -> None:
    wait = LiteLLMEmbeddingProvider.embed.retry.wait  # type: ignore[attr-defined]

    assert 0.5 <= wait(SimpleNamespace(attempt_number=1)) <= 1.0
    assert 1.0 <= wait(SimpleNamespace(attempt_number=2)) <= 1.5
    for attempt in (4, 10):
        assert 4.0 <= wait(SimpleNamespace(attempt_number=attempt)) <= 4.5


async def test_embed_retries_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = 0

    async def fake_aembedding(**kwargs: Any) -> SimpleNamespace:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise Timeout("slow", model=kwargs["model"], llm_provider="openai")
        return SimpleNamespace(data=[{"embedding": [0.1] * 1536}])

    monkeypatch.setattr(litellm, "aembedding", fake_aembedding)
    provider = LiteLLMEmbeddingProvider(api_key="sk-test")

    vector = await provider.embed("hello")

    assert calls == 2
    assert len(vector) == 1536
