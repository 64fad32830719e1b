"""
Core protocols defining contracts for the vector store.

All backends implement these protocols, enabling dependency injection
and easy testing.

PATTERN:
- Protocol defines the contract
- Multiple implementations possible (InMemoryVectorStore, PgVectorStore)
- Factory functions for instantiation
- Test doubles for fast unit tests
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterator, Protocol, Sequence, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from ragstore.filters.expressions import FilterExpression
    from ragstore.retrieval.document import Document


# ---------------------------------------------------------------------------
# EMBEDDING PROVIDER PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Contract for embedding generation.

    Implementations:
    - OpenAIEmbeddings (production)
    - MockEmbeddings (testing)

    Failures surface as EmbeddingUnavailable.
    """

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        ...

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts."""
        ...


# ---------------------------------------------------------------------------
# DELETE RESULT
# ---------------------------------------------------------------------------


class DeleteStatus(str, Enum):
    ALL_REMOVED = "all_removed"
    PARTIALLY_REMOVED = "partially_removed"
    NONE_FOUND = "none_found"


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete call.

    Missing ids are not an error; the status tells callers whether
    everything, something or nothing was removed.
    """

    requested: tuple[str, ...]
    removed: tuple[str, ...]

    @property
    def missing(self) -> tuple[str, ...]:
        removed = set(self.removed)
        return tuple(i for i in self.requested if i not in removed)

    @property
    def status(self) -> DeleteStatus:
        if len(self.removed) == len(self.requested):
            return DeleteStatus.ALL_REMOVED
        if not self.removed:
            return DeleteStatus.NONE_FOUND
        return DeleteStatus.PARTIALLY_REMOVED

    @property
    def all_removed(self) -> bool:
        return self.status is DeleteStatus.ALL_REMOVED


# ---------------------------------------------------------------------------
# VECTOR STORE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class VectorStore(Protocol):
    """
    Contract every store backend satisfies.

    Implementations:
    - InMemoryVectorStore (reference engine, testing/development)
    - PgVectorStore (PostgreSQL with pgvector)
    """

    def add(self, documents: Sequence[Document]) -> None:
        """Insert or replace documents by id."""
        ...

    def delete(self, ids: Sequence[str]) -> DeleteResult:
        """Remove documents by id. Missing ids are reported, not raised."""
        ...

    def scan(self, filter: FilterExpression | None = None) -> Iterator[Document]:
        """Yield stored documents, optionally only those matching ``filter``.

        Each call reflects the store state at the start of iteration.
        """
        ...

    def count(self) -> int:
        """Number of stored documents."""
        ...
