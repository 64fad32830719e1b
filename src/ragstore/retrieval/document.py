"""
Document model for the retrieval system.

Single responsibility: Define the structure of documents
stored in vector stores.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Sequence, Union

import numpy as np

from ragstore.core.errors import InvalidDocument

MetadataValue = Union[str, int, float, bool]


def as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    """Coerce a sequence of numbers to a 1-D float64 array of finite values."""
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1:
        raise InvalidDocument(f"Embedding must be one-dimensional, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise InvalidDocument("Embedding must contain only finite values")
    return vector


@dataclass(frozen=True)
class Document:
    """
    A document with embedding for retrieval.

    Documents are immutable. Updates produce new instances
    (with_embedding, with_metadata, with_score); adding a document
    whose id is already stored replaces it.
    """

    content: str
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    embedding: np.ndarray | None = field(default=None, compare=False, repr=False)
    score: float | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        for key, value in self.metadata.items():
            if not isinstance(key, str):
                raise InvalidDocument(
                    f"Metadata keys must be strings, got {type(key).__name__}",
                    context={"document_id": self.id},
                )
            if not isinstance(value, (str, int, float, bool)):
                raise InvalidDocument(
                    f"Metadata value for '{key}' must be a scalar, got {type(value).__name__}",
                    context={"document_id": self.id, "key": key},
                )
        if self.embedding is not None:
            object.__setattr__(self, "embedding", as_vector(self.embedding))

    @property
    def dimensions(self) -> int | None:
        return None if self.embedding is None else int(self.embedding.shape[0])

    def with_embedding(self, embedding: Sequence[float] | np.ndarray) -> Document:
        """Attach an embedding computed by the ingestion collaborator."""
        return replace(self, embedding=as_vector(embedding))

    def with_metadata(self, **updates: MetadataValue) -> Document:
        """Return a copy with merged metadata."""
        return replace(self, metadata={**self.metadata, **updates})

    def with_score(self, score: float) -> Document:
        return replace(self, score=score)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "content": self.content,
            "metadata": dict(self.metadata),
            "score": self.score,
        }

