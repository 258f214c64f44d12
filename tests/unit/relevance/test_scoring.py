from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from context_recall.embedding.index import VectorIndex
from context_recall.preprocess.preprocessor import QueryPreprocessor
from context_recall.relevance.keywords import DOMAINS, TRIGGERS
from context_recall.relevance.scorer import KeywordScorer, RelevanceScorer


class _StubIndex:
    """Stands in for VectorIndex with fixed label confidences."""

    def __init__(self, scores: dict[str, float], *, semantic: bool = True, delay: float = 0) -> None:
        self.scores = scores
        self.delay = delay
        provider = type("P", (), {"semantic": semantic})()
        self.client = type("C", (), {"provider": provider})()

    async def get_semantic_confidence_batch(
        self, query: str, labels: Sequence[str]
    ) -> dict[str, float]:
        if self.delay:
            await asyncio.sleep(self.delay)
        return {k: v for k, v in self.scores.items() if k in labels}


@pytest.fixture()
def pre() -> QueryPreprocessor:
    return QueryPreprocessor()


# ── Keywords ────────────────────────────────────────────────────────


def test_trigger_table_covers_every_domain() -> None:
    assert set(TRIGGERS) == set(DOMAINS)
    assert all(w >= 0 for table in TRIGGERS.values() for w in table.values())


def test_unrelated_text_scores_zero() -> None:
    scores = KeywordScorer().score_text("tell me a joke")
    assert set(scores) == set(DOMAINS)
    assert all(v == 0.0 for v in scores.values())


def test_phrase_triggers_add_weight() -> None:
    scorer = KeywordScorer()
    assert scorer.score_text("where am i")["location"] > scorer.score_text("where")["location"]


def test_scores_are_capped() -> None:
    text = "weather temperature forecast rain snow wind umbrella jacket humid"
    assert KeywordScorer().score_text(text)["weather"] == 1.0


@pytest.mark.parametrize("domain", DOMAINS)
def test_score_is_monotone_in_added_triggers(domain: str) -> None:
    scorer = KeywordScorer()
    words = [t for t in TRIGGERS[domain] if " " not in t]
    text = ""
    previous = 0.0
    for word in words:
        text = f"{text} {word}".strip()
        score = scorer.score_text(text)[domain]
        assert previous <= score <= 1.0
        previous = score


def test_negative_weights_are_rejected() -> None:
    with pytest.raises(ValueError):
        KeywordScorer({"time": {"clock": -0.1}})


def test_expansions_can_raise_a_score(pre: QueryPreprocessor) -> None:
    scorer = KeywordScorer({"weather": {"temperature": 0.5}})
    query = pre.preprocess("is it hot")
    assert scorer.score_text(query.normalized)["weather"] == 0.0
    assert scorer.score(query)["weather"] == 0.5


# ── Semantic override ───────────────────────────────────────────────


async def test_semantic_scores_override_keywords(pre: QueryPreprocessor) -> None:
    index = _StubIndex({"time": 0.2, "weather": 0.9})
    scorer = RelevanceScorer(KeywordScorer(), index)  # type: ignore[arg-type]

    scores = await scorer.score(pre.preprocess("what time is it"))

    assert scores["time"] == 0.2
    assert scores["weather"] == 0.9
    assert scores["device"] == 0.0


async def test_lexical_embedder_only_raises_scores(pre: QueryPreprocessor) -> None:
    index = _StubIndex({"time": 0.2, "weather": 0.45}, semantic=False)
    scorer = RelevanceScorer(KeywordScorer(), index)  # type: ignore[arg-type]

    scores = await scorer.score(pre.preprocess("what time is it"))

    assert scores["time"] == 1.0
    assert scores["weather"] == 0.45


async def test_keywords_stand_when_semantic_times_out(pre: QueryPreprocessor) -> None:
    index = _StubIndex({"time": 0.0}, delay=1.0)
    scorer = RelevanceScorer(KeywordScorer(), index, semantic_timeout=0.01)  # type: ignore[arg-type]

    scores = await scorer.score(pre.preprocess("what time is it"))

    assert scores["time"] == 1.0


async def test_empty_query_scores_zero_without_semantic_call(pre: QueryPreprocessor) -> None:
    index = _StubIndex({"time": 1.0})
    scorer = RelevanceScorer(KeywordScorer(), index)  # type: ignore[arg-type]

    scores = await scorer.score(pre.preprocess(""))

    assert all(v == 0.0 for v in scores.values())


async def test_real_index_with_failing_provider_keeps_keywords(
    pre: QueryPreprocessor, index: VectorIndex
) -> None:
    index.client.provider.fail = True  # type: ignore[attr-defined]
    scorer = RelevanceScorer(KeywordScorer(), index)

    scores = await scorer.score(pre.preprocess("whats teh tiem now"))

    assert scores["time"] > 0.5
