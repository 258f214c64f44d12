from enum import StrEnum


class OpenAIEmbeddingModel(StrEnum):
    TEXT_EMBEDDING_3_SMALL = "openai/text-embedding-3-small"
    TEXT_EMBEDDING_3_LARGE = "openai/text-embedding-3-large"


EMBEDDING_DIMENSIONS: dict[OpenAIEmbeddingModel, int] = {
    OpenAIEmbeddingModel.TEXT_EMBEDDING_3_SMALL: 1536,
    OpenAIEmbeddingModel.TEXT_EMBEDDING_3_LARGE: 3072,
}
