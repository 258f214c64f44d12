from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping, Sequence

from context_recall.embedding.index import VectorIndex
from context_recall.preprocess.preprocessor import PreprocessedQuery
from context_recall.relevance.keywords import TRIGGERS

logger = logging.getLogger(__name__)

RelevanceScores = dict[str, float]

_TOKEN = re.compile(r"[a-z0-9']+")


class KeywordScorer:
    """Per-domain relevance from weighted trigger words and phrases.

    A domain's score is the sum of the weights of the distinct triggers
    found in the text, capped at 1.0.  For a preprocessed query the best
    score over the normalized text and its expansions wins.
    """

    def __init__(self, triggers: Mapping[str, Mapping[str, float]] | None = None) -> None:
        table = TRIGGERS if triggers is None else triggers
        self._domains = tuple(table)
        self._words: dict[str, dict[str, float]] = {}
        self._phrases: dict[str, list[tuple[re.Pattern[str], float]]] = {}
        for domain, weights in table.items():
            for trigger, weight in weights.items():
                if weight < 0:
                    raise ValueError(f"negative weight for {domain}:{trigger}")
                if " " in trigger:
                    pattern = re.compile(rf"(?<![\w']){re.escape(trigger)}(?![\w'])")
                    self._phrases.setdefault(domain, []).append((pattern, weight))
                else:
                    self._words.setdefault(trigger, {})[domain] = weight

    @property
    def domains(self) -> tuple[str, ...]:
        return self._domains

    def score_text(self, text: str) -> RelevanceScores:
        totals = dict.fromkeys(self._domains, 0.0)
        for token in set(_TOKEN.findall(text.lower())):
            for domain, weight in self._words.get(token, {}).items():
                totals[domain] += weight
        for domain, phrases in self._phrases.items():
            for pattern, weight in phrases:
                if pattern.search(text):
                    totals[domain] += weight
        return {domain: min(1.0, total) for domain, total in totals.items()}

    def score(self, query: PreprocessedQuery) -> RelevanceScores:
        best = dict.fromkeys(self._domains, 0.0)
        for variant in query.variants:
            if not variant:
                continue
            for domain, value in self.score_text(variant).items():
                best[domain] = max(best[domain], value)
        return best


class RelevanceScorer:
    """Keyword relevance, overridden per domain by semantic confidence.

    With a lexical embedder the semantic value can only raise a score.

    Semantic scoring runs under ``semantic_timeout``; when it times out or
    the provider is unavailable the keyword scores stand.
    """

    def __init__(
        self,
        keyword_scorer: KeywordScorer | None = None,
        index: VectorIndex | None = None,
        *,
        semantic_timeout: float = 2.0,
    ) -> None:
        self._keywords = keyword_scorer or KeywordScorer()
        self._index = index
        self._semantic_timeout = semantic_timeout

    @property
    def domains(self) -> tuple[str, ...]:
        return self._keywords.domains

    async def score(self, query: PreprocessedQuery) -> RelevanceScores:
        if not query.normalized:
            return dict.fromkeys(self.domains, 0.0)
        scores = self._keywords.score(query)
        semantic = await self.semantic_scores(query.normalized, self.domains)
        overrides = self._index is not None and self._index.client.provider.semantic
        for domain, value in semantic.items():
            if domain not in scores:
                continue
            value = min(1.0, max(0.0, value))
            scores[domain] = value if overrides else max(scores[domain], value)
        return scores

    async def semantic_scores(self, text: str, labels: Sequence[str]) -> RelevanceScores:
        if self._index is None:
            return {}
        try:
            return await asyncio.wait_for(
                self._index.get_semantic_confidence_batch(text, list(labels)),
                timeout=self._semantic_timeout,
            )
        except TimeoutError:
            logger.info("Semantic scoring timed out after %.1fs", self._semantic_timeout)
            return {}

