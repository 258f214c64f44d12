from context_recall.preprocess.preprocessor import (
    PreprocessedQuery,
    QueryPreprocessor,
    SpellCorrection,
    levenshtein_distance,
)

__all__ = [
    "PreprocessedQuery",
    "QueryPreprocessor",
    "SpellCorrection",
    "levenshtein_distance",
]
