from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from context_recall.apps.base import DashboardAppProvider
from context_recall.context.models import (
    ContextSnapshot,
    ContextualSuggestion,
    SuggestionPriority,
)
from context_recall.preprocess.preprocessor import PreprocessedQuery, QueryPreprocessor
from context_recall.relevance.fragments import RENDERERS
from context_recall.relevance.scorer import RelevanceScorer, RelevanceScores

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "\n\nCONTEXTUAL AWARENESS:\n"
APP_HEADER = "\n\nDASHBOARD APP DATA:"
DASHBOARD_APPS = "dashboard-apps"


@dataclass(frozen=True)
class EnhancedPrompt:
    original_prompt: str
    enhanced_prompt: str
    context_used: tuple[str, ...] = ()
    relevance_scores: RelevanceScores = field(default_factory=dict)
    suggestions: tuple[ContextualSuggestion, ...] = ()

    @property
    def addition(self) -> str:
        """The text appended to the original prompt."""
        return self.enhanced_prompt[len(self.original_prompt) :]


class ContextAssembler:
    """Decides which context domains a query needs and appends them.

    A domain is included when its relevance clears ``inclusion_threshold``
    and the snapshot actually carries data for it.  Fragments follow a
    fixed priority order and the whole addition stays within
    ``max_dynamic_context_chars``; the lowest-priority fragments go first.
    """

    def __init__(
        self,
        preprocessor: QueryPreprocessor | None = None,
        scorer: RelevanceScorer | None = None,
        apps: DashboardAppProvider | None = None,
        *,
        inclusion_threshold: float = 0.4,
        max_dynamic_context_chars: int = 1500,
        suggestion_threshold: float = 0.2,
        app_timeout: float = 2.0,
    ) -> None:
        self._preprocessor = preprocessor or QueryPreprocessor()
        self._scorer = scorer or RelevanceScorer()
        self._apps = apps
        self._inclusion_threshold = inclusion_threshold
        self._max_chars = max_dynamic_context_chars
        self._suggestion_threshold = suggestion_threshold
        self._app_timeout = app_timeout

    @property
    def scorer(self) -> RelevanceScorer:
        return self._scorer

    async def build_enhanced_prompt(
        self,
        base_prompt: str,
        query: str | PreprocessedQuery,
        snapshot: ContextSnapshot | None = None,
        suggestions: Sequence[ContextualSuggestion] | None = None,
    ) -> EnhancedPrompt:
        prepared = (
            query
            if isinstance(query, PreprocessedQuery)
            else self._preprocessor.preprocess(query)
        )
        snapshot = snapshot or ContextSnapshot.empty()

        scores = await self._scorer.score(prepared)
        pieces: list[tuple[str, str]] = []
        if prepared.normalized:
            pieces = self._domain_fragments(scores, snapshot)
            app_context = await self._app_context(prepared.normalized)
            if app_context:
                pieces.append((DASHBOARD_APPS, app_context))

        addition = _compose(pieces)
        while pieces and len(addition) > self._max_chars:
            dropped, _ = pieces.pop()
            logger.debug("Dropped %s fragment to fit context budget", dropped)
            addition = _compose(pieces)

        context_used = tuple(name for name, _ in pieces)
        if context_used:
            logger.debug("Context used for query: %s", ", ".join(context_used))

        return EnhancedPrompt(
            original_prompt=base_prompt,
            enhanced_prompt=base_prompt + addition,
            context_used=context_used,
            relevance_scores=scores,
            suggestions=self.filter_suggestions(suggestions or (), scores),
        )

    def _domain_fragments(
        self, scores: RelevanceScores, snapshot: ContextSnapshot
    ) -> list[tuple[str, str]]:
        pieces: list[tuple[str, str]] = []
        for domain, render in RENDERERS.items():
            if scores.get(domain, 0.0) < self._inclusion_threshold:
                continue
            if not snapshot.has_data(domain):
                continue
            text = render(snapshot)
            if text:
                pieces.append((domain, text))
        return pieces

    async def _app_context(self, query: str) -> str:
        if self._apps is None:
            return ""
        try:
            ranked = await asyncio.wait_for(
                self._apps.get_apps_with_confidence(query), timeout=self._app_timeout
            )
            names = [
                app.app_name
                for app in ranked
                if app.confidence >= self._inclusion_threshold
            ]
            return self._apps.get_detailed_context(names) if names else ""
        except Exception:
            logger.warning("Dashboard app scoring failed", exc_info=True)
            return ""

    def filter_suggestions(
        self,
        suggestions: Sequence[ContextualSuggestion],
        scores: RelevanceScores,
    ) -> tuple[ContextualSuggestion, ...]:
        """Suggestions whose trigger domain is relevant, plus all high-priority ones."""
        return tuple(
            s
            for s in suggestions
            if s.priority == SuggestionPriority.high
            or any(
                scores.get(domain, 0.0) > self._suggestion_threshold
                for domain in s.trigger_domains()
            )
        )


def _compose(pieces: list[tuple[str, str]]) -> str:
    domain_texts = [text for name, text in pieces if name != DASHBOARD_APPS]
    app_texts = [text for name, text in pieces if name == DASHBOARD_APPS]
    addition = ""
    if domain_texts:
        addition += CONTEXT_HEADER + "\n".join(domain_texts)
    for text in app_texts:
        addition += APP_HEADER + text
    return addition
