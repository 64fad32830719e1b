"""
Embeddings module - query text to vector.

1. Protocol (EmbeddingProvider) defines the interface
2. Production implementation (OpenAIEmbeddings)
3. Test double (MockEmbeddings) for fast testing
4. Factory function (get_embedding_provider)
"""

from ragstore.core.protocols import EmbeddingProvider
from ragstore.embeddings.openai_embeddings import (
    MockEmbeddings,
    OpenAIEmbeddings,
    get_embedding_provider,
)

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddings",
    "MockEmbeddings",
    "get_embedding_provider",
]
