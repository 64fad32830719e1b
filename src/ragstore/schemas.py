"""
I/O schemas for document files and search output.

These Pydantic models are the contract between the CLI (or any other
outer surface) and the core. Document files are validated here before
anything reaches a store, so malformed input fails with a field-level
message instead of deep inside scoring.

Document file format (JSON):

    {"documents": [
        {"id": "1", "content": "...", "metadata": {"genre": "drama", "year": 2021},
         "embedding": [0.1, 0.2]}
    ]}

A bare JSON list of document objects is accepted too.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator

from ragstore.retrieval.document import Document

# Strict types keep true/1/"1" distinct, matching filter evaluation.
MetadataScalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]


class DocumentRecord(BaseModel):
    """One document as it appears in an input file."""

    id: str | None = Field(default=None, description="Unique id; generated when omitted")
    content: str = Field(description="Text payload")
    metadata: dict[str, MetadataScalar] = Field(default_factory=dict)
    embedding: list[float] = Field(description="Precomputed embedding")

    @field_validator("embedding")
    @classmethod
    def _non_empty(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("embedding must not be empty")
        return value

    def to_document(self) -> Document:
        kwargs = {"content": self.content, "metadata": dict(self.metadata), "embedding": self.embedding}
        if self.id is not None:
            kwargs["id"] = self.id
        return Document(**kwargs)


class DocumentFile(BaseModel):
    documents: list[DocumentRecord]

    @classmethod
    def load(cls, path: Path | str) -> DocumentFile:
        """Read and validate a document file."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(raw, list):
            raw = {"documents": raw}
        return cls.model_validate(raw)


class SearchHit(BaseModel):
    """A ranked search result."""

    rank: int
    id: str
    score: float
    content: str
    metadata: dict[str, MetadataScalar]

    @classmethod
    def from_document(cls, rank: int, doc: Document) -> SearchHit:
        return cls(
            rank=rank,
            id=doc.id,
            score=doc.score if doc.score is not None else 0.0,
            content=doc.content,
            metadata=dict(doc.metadata),
        )


class SearchResponse(BaseModel):
    top_k: int
    similarity_threshold: float
    filter: str | None = None
    hits: list[SearchHit]
