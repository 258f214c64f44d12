from __future__ import annotations

import logging
from collections.abc import Sequence

from context_recall.apps.base import AppAdapter, AppConfidence, AppContextData
from context_recall.embedding.index import VectorIndex

logger = logging.getLogger(__name__)

SEMANTIC_TRUST_THRESHOLD = 0.5


class DashboardAppService:
    """Registry of dashboard apps and their query confidence.

    Confidence for each app is its semantic similarity to the app's intent
    label when that similarity is above 0.5, otherwise its keyword
    confidence.
    """

    def __init__(self, index: VectorIndex | None = None) -> None:
        self._index = index
        self._adapters: dict[str, AppAdapter] = {}

    @property
    def adapters(self) -> list[AppAdapter]:
        return list(self._adapters.values())

    def get_adapter(self, app_name: str) -> AppAdapter | None:
        return self._adapters.get(app_name)

    def register_adapter(self, adapter: AppAdapter) -> None:
        self._adapters[adapter.app_name] = adapter
        if self._index is not None:
            self._index.register_label(adapter.intent_label, adapter.intent_text)
        logger.debug("Registered dashboard app %s", adapter.app_name)

    def unregister_adapter(self, app_name: str) -> None:
        self._adapters.pop(app_name, None)

    async def get_apps_with_confidence(self, query: str) -> list[AppConfidence]:
        """Every registered app with its confidence for *query*, best first."""
        if not query or not query.strip() or not self._adapters:
            return []

        semantic: dict[str, float] = {}
        if self._index is not None:
            semantic = await self._index.get_semantic_confidence_batch(
                query, [a.intent_label for a in self._adapters.values()]
            )

        ranked: list[AppConfidence] = []
        for adapter in self._adapters.values():
            score = semantic.get(adapter.intent_label, 0.0)
            if score > SEMANTIC_TRUST_THRESHOLD:
                ranked.append(AppConfidence(adapter.app_name, score, "semantic"))
            else:
                ranked.append(
                    AppConfidence(adapter.app_name, adapter.keyword_confidence(query), "keyword")
                )
        ranked.sort(key=lambda app: app.confidence, reverse=True)
        return ranked

    def get_app_data(self, app_name: str) -> AppContextData | None:
        adapter = self._adapters.get(app_name)
        if adapter is None:
            return None
        try:
            return adapter.get_context_data()
        except Exception:
            logger.warning("App %s failed to report context", app_name, exc_info=True)
            return None

    def get_detailed_context(self, app_names: Sequence[str] | None = None) -> str:
        names = list(self._adapters) if app_names is None else list(app_names)
        sections: list[str] = []
        for name in names:
            data = self.get_app_data(name)
            if data is None:
                continue
            section = f"\n{data.display_name.upper()}:"
            section += f"\n- Status: {'Active' if data.is_active else 'Inactive'}"
            if data.summary:
                section += f"\n- {data.summary}"
            if data.capabilities:
                section += f"\n- Can help with: {', '.join(data.capabilities)}"
            sections.append(section)
        return "\n".join(sections)

    def get_context_summary(self) -> str:
        lines = []
        for name in self._adapters:
            data = self.get_app_data(name)
            if data is not None and (data.is_active or data.summary):
                lines.append(f"{data.display_name}: {data.summary}")
        if not lines:
            return "No active dashboard apps"
        return "Dashboard Apps:\n" + "\n".join(lines)
