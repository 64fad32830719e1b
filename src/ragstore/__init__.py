"""
ragstore - similarity search with metadata filtering.

    from ragstore import Document, InMemoryVectorStore, SearchRequest, VectorSearchService

    store = InMemoryVectorStore()
    store.add([Document(id="a", content="...", metadata={"genre": "drama"}, embedding=[1.0, 0.0])])

    service = VectorSearchService(store)
    hits = service.similarity_search(
        SearchRequest(query_vector=[1.0, 0.0], top_k=2, filter="genre == 'drama'")
    )
"""

from ragstore.core import (
    Cancelled,
    DeleteResult,
    DeleteStatus,
    DimensionMismatch,
    EmbeddingProvider,
    EmbeddingUnavailable,
    InvalidDocument,
    InvalidRequest,
    ParseError,
    RagStoreError,
    VectorStore,
    VectorStoreError,
)
from ragstore.filters import FilterExpressionBuilder, evaluate, parse
from ragstore.retrieval import (
    CancellationToken,
    Document,
    InMemoryVectorStore,
    PgVectorStore,
    SearchRequest,
    VectorSearchService,
    cosine_similarity,
    get_vector_store,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "VectorStore",
    "EmbeddingProvider",
    "DeleteResult",
    "DeleteStatus",
    # Errors
    "RagStoreError",
    "InvalidRequest",
    "InvalidDocument",
    "DimensionMismatch",
    "ParseError",
    "EmbeddingUnavailable",
    "Cancelled",
    "VectorStoreError",
    # Filters
    "parse",
    "evaluate",
    "FilterExpressionBuilder",
    # Retrieval
    "Document",
    "cosine_similarity",
    "InMemoryVectorStore",
    "PgVectorStore",
    "get_vector_store",
    "SearchRequest",
    "CancellationToken",
    "VectorSearchService",
]
