from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Any, Protocol

from context_recall.embedding.intents import build_intent_text

EXACT_MATCH_CONFIDENCE = 0.9
PARTIAL_MATCH_CONFIDENCE = 0.3


@dataclass(frozen=True)
class AppContextData:
    """What a dashboard app exposes about itself for prompt context."""

    app_name: str
    display_name: str
    is_active: bool
    summary: str
    capabilities: tuple[str, ...] = ()
    last_used: datetime | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfidence:
    app_name: str
    confidence: float
    method: str  # "semantic" or "keyword"


class DashboardAppProvider(Protocol):
    """Anything that can rank dashboard apps for a query and describe them."""

    async def get_apps_with_confidence(self, query: str) -> list[AppConfidence]: ...

    def get_detailed_context(self, app_names: Sequence[str] | None = None) -> str: ...


class AppAdapter(ABC):
    """One dashboard app seen through a uniform interface.

    Subclasses provide ``app_name``, ``display_name``, their keywords and
    their context data.  Keyword confidence and intent text come for free.
    """

    app_name: str
    display_name: str
    example_queries: tuple[str, ...] = ()

    @abstractmethod
    def get_context_data(self) -> AppContextData: ...

    @abstractmethod
    def get_keywords(self) -> list[str]: ...

    async def get_response(self, query: str) -> str:
        return self.get_context_data().summary

    def can_answer(self, query: str) -> bool:
        return self.keyword_confidence(query) > 0

    def keyword_confidence(self, query: str) -> float:
        """0.9 for a whole-word keyword hit, 0.3 for a substring hit, else 0."""
        lowered = query.lower()
        best = 0.0
        for keyword, pattern in self._keyword_patterns:
            if pattern.search(lowered):
                return EXACT_MATCH_CONFIDENCE
            if keyword in lowered:
                best = PARTIAL_MATCH_CONFIDENCE
        return best

    @property
    def intent_label(self) -> str:
        return f"app:{self.app_name}"

    @property
    def intent_text(self) -> str:
        return build_intent_text(self.app_name, self.get_keywords(), self.example_queries)

    @cached_property
    def _keyword_patterns(self) -> list[tuple[str, re.Pattern[str]]]:
        return [
            (keyword, re.compile(rf"\b{re.escape(keyword)}\b"))
            for keyword in (k.lower() for k in self.get_keywords())
        ]
