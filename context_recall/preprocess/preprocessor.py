"""Query normalization, spell correction and synonym expansion."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from context_recall.preprocess.dictionaries import CORRECTIONS, MAX_EXPANSIONS, SYNONYMS

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_SINGLE_QUOTES = re.compile(r"[‘’‛′`]")
_DOUBLE_QUOTES = re.compile(r"[“”„″]")
_DASHES = re.compile(r"[‐‑‒–—−]")
_AROUND_APOSTROPHE = re.compile(r"\s*'\s*")
_AROUND_HYPHEN = re.compile(r"\s*-\s*")
_EDGE_PUNCTUATION = ".,!?;:\"()[]"


@dataclass(frozen=True)
class SpellCorrection:
    original: str
    corrected: str
    edit_distance: int


@dataclass(frozen=True)
class PreprocessedQuery:
    original: str
    normalized: str
    corrections: tuple[SpellCorrection, ...] = field(default_factory=tuple)
    expansions: tuple[str, ...] = field(default_factory=tuple)

    @property
    def variants(self) -> tuple[str, ...]:
        """The normalized query followed by its expansions."""
        return (self.normalized, *self.expansions)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between *a* and *b* (insert, delete, substitute).

    Classic dynamic programme kept to two rows, O(len(a) * len(b)) time.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j - 1] + cost,  # substitution
                    current[j - 1] + 1,  # insertion
                    previous[j] + 1,  # deletion
                )
            )
        previous = current
    return previous[-1]


class QueryPreprocessor:
    """Normalizes a raw user query before relevance scoring.

    Stateless apart from its immutable tables, so one instance can be
    shared freely.  ``preprocess`` never raises: anything it does not
    recognise passes through unchanged.
    """

    def __init__(
        self,
        corrections: Mapping[str, str] | None = None,
        synonyms: Mapping[str, Sequence[str]] | None = None,
        *,
        max_expansions: int = MAX_EXPANSIONS,
    ) -> None:
        table = dict(CORRECTIONS if corrections is None else corrections)
        self._word_corrections = {k: v for k, v in table.items() if " " not in k}
        self._phrase_corrections = {k: v for k, v in table.items() if " " in k}
        syns = SYNONYMS if synonyms is None else synonyms
        self._word_synonyms = {k: tuple(v) for k, v in syns.items() if " " not in k}
        self._phrase_synonyms = {k: tuple(v) for k, v in syns.items() if " " in k}
        self._max_expansions = max_expansions

    def preprocess(self, query: object) -> PreprocessedQuery:
        original = "" if query is None else str(query)

        normalized = self.normalize(original)
        normalized, corrections = self.correct_spelling(normalized)
        expansions = self.expand_synonyms(normalized)

        if corrections or expansions:
            logger.debug(
                "Query preprocessed: %r -> %r (corrections=%s, expansions=%d)",
                original,
                normalized,
                [f"{c.original}->{c.corrected}" for c in corrections],
                len(expansions),
            )

        return PreprocessedQuery(
            original=original,
            normalized=normalized,
            corrections=tuple(corrections),
            expansions=tuple(expansions),
        )

    @staticmethod
    def normalize(query: str) -> str:
        text = query.lower().strip()
        text = _WHITESPACE.sub(" ", text)
        text = _SINGLE_QUOTES.sub("'", text)
        text = _DOUBLE_QUOTES.sub('"', text)
        text = _DASHES.sub("-", text)
        text = text.replace("…", "...")
        text = _AROUND_APOSTROPHE.sub("'", text)
        return _AROUND_HYPHEN.sub("-", text)

    def correct_spelling(self, query: str) -> tuple[str, list[SpellCorrection]]:
        corrections: list[SpellCorrection] = []

        words: list[str] = []
        for token in query.split(" "):
            core = token.strip(_EDGE_PUNCTUATION)
            replacement = self._word_corrections.get(core) if core else None
            if replacement is None:
                words.append(token)
                continue
            corrections.append(
                SpellCorrection(
                    original=core,
                    corrected=replacement,
                    edit_distance=levenshtein_distance(core, replacement),
                )
            )
            words.append(token.replace(core, replacement, 1))
        corrected = " ".join(words)

        for mistake, replacement in self._phrase_corrections.items():
            if mistake in corrected:
                corrected = corrected.replace(mistake, replacement)
                corrections.append(
                    SpellCorrection(
                        original=mistake,
                        corrected=replacement,
                        edit_distance=levenshtein_distance(mistake, replacement),
                    )
                )

        return corrected, corrections

    def expand_synonyms(self, query: str) -> list[str]:
        if not query:
            return []

        expansions: list[str] = []
        seen = {query}

        def _add(candidate: str) -> None:
            if candidate not in seen:
                seen.add(candidate)
                expansions.append(candidate)

        for word in dict.fromkeys(query.split(" ")):
            alternates = self._word_synonyms.get(word.strip(_EDGE_PUNCTUATION))
            if not alternates:
                continue
            pattern = re.compile(rf"\b{re.escape(word.strip(_EDGE_PUNCTUATION))}\b")
            for alternate in alternates:
                _add(pattern.sub(alternate, query))

        for phrase, alternates in self._phrase_synonyms.items():
            if phrase in query:
                for alternate in alternates:
                    _add(query.replace(phrase, alternate))

        return expansions[: self._max_expansions]

    def is_misspelled(self, word: str) -> bool:
        return word.lower() in self._word_corrections

    def suggest(self, word: str, *, max_distance: int = 2, limit: int = 3) -> list[str]:
        """Known corrections whose misspelling is within *max_distance* edits."""
        lowered = word.lower()
        scored: list[tuple[int, str]] = []
        for mistake, replacement in self._word_corrections.items():
            distance = levenshtein_distance(lowered, mistake)
            if distance <= max_distance:
                scored.append((distance, replacement))
        scored.sort(key=lambda item: item[0])
        return list(dict.fromkeys(word for _, word in scored))[:limit]
