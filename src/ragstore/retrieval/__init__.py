"""
Retrieval module - vector similarity search.

This module provides:
- Document: The document model
- cosine_similarity / rank: The similarity engine
- InMemoryVectorStore / PgVectorStore: Store implementations
- get_vector_store(): Factory function
- SearchRequest / VectorSearchService: The search orchestrator

ARCHITECTURE:
-------------
1. Protocol defines the contract (in core.protocols)
2. Multiple implementations (InMemoryVectorStore, PgVectorStore)
3. Factory function for instantiation
4. The search service works against the protocol only
"""

# Document model
from ragstore.retrieval.document import Document

# Search orchestration
from ragstore.retrieval.search import (
    CancellationToken,
    SearchRequest,
    SearchRequestBuilder,
    VectorSearchService,
)

# Similarity engine
from ragstore.retrieval.similarity import (
    cosine_similarity,
    cosine_similarity_batch,
    rank,
)

# Store implementations and factory
from ragstore.retrieval.store import (
    InMemoryVectorStore,
    PgVectorStore,
    VectorStoreConfig,
    get_vector_store,
)

__all__ = [
    # Document
    "Document",
    # Similarity
    "cosine_similarity",
    "cosine_similarity_batch",
    "rank",
    # Stores
    "VectorStoreConfig",
    "InMemoryVectorStore",
    "PgVectorStore",
    "get_vector_store",
    # Search
    "SearchRequest",
    "SearchRequestBuilder",
    "CancellationToken",
    "VectorSearchService",
]
