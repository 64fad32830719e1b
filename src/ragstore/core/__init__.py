"""
Core module - shared protocols, result types and errors.

USAGE:
------
from ragstore.core import VectorStore, EmbeddingProvider

class MyVectorStore:
    '''Implements VectorStore protocol.'''
    ...
"""

from ragstore.core.errors import (
    Cancelled,
    DimensionMismatch,
    EmbeddingUnavailable,
    InvalidDocument,
    InvalidRequest,
    ParseError,
    RagStoreError,
    VectorStoreError,
)
from ragstore.core.protocols import (
    DeleteResult,
    DeleteStatus,
    EmbeddingProvider,
    VectorStore,
)

__all__ = [
    # Protocols
    "EmbeddingProvider",
    "VectorStore",
    # Data classes
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
]
