"""
Vector store implementations.

Pattern: Protocol -> Production impl -> Reference impl -> Factory

This module contains:
1. VectorStoreConfig - Configuration for the PostgreSQL backend
2. InMemoryVectorStore - In-process reference engine
3. PgVectorStore - PostgreSQL with pgvector (backend adapter)
4. get_vector_store() - Factory function

Both stores satisfy ragstore.core.VectorStore: add / delete / scan / count.
Similarity scoring and ranking live in the search service, so any backend
that can enumerate documents can be searched.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Iterator, Sequence

import numpy as np

from ragstore.config import get_config
from ragstore.core.errors import DimensionMismatch, InvalidDocument, VectorStoreError
from ragstore.core.protocols import DeleteResult
from ragstore.filters.converters import to_pg_jsonpath
from ragstore.filters.evaluator import compile_filter
from ragstore.filters.expressions import FilterExpression
from ragstore.retrieval.document import Document

logger = logging.getLogger(__name__)

# Optional: Only import psycopg if available (for local dev without postgres)
try:
    import psycopg
    from pgvector.psycopg import register_vector
    from psycopg.types.json import Jsonb

    PGVECTOR_AVAILABLE = True
except ImportError:
    PGVECTOR_AVAILABLE = False


def _unique(ids: Sequence[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(ids))


def _check_dimensions(documents: Sequence[Document], expected: int | None) -> int | None:
    """Ensure every embedding is present and has one shared dimensionality."""
    for doc in documents:
        if doc.embedding is None:
            raise InvalidDocument(
                f"Document '{doc.id}' has no embedding; attach one before storing",
                context={"document_id": doc.id},
            )
        if expected is None:
            expected = doc.dimensions
        elif doc.dimensions != expected:
            raise DimensionMismatch(expected, doc.dimensions, document_id=doc.id)
        if not np.all(np.isfinite(doc.embedding)):
            raise InvalidDocument(
                f"Document '{doc.id}' has a non-finite embedding value",
                context={"document_id": doc.id},
            )
    return expected


# ---------------------------------------------------------------------------
# IN-MEMORY STORE (Reference engine)
# ---------------------------------------------------------------------------


class InMemoryVectorStore:
    """
    In-memory vector store.

    Writes take a lock; scans copy the index under the lock and iterate
    outside it, so a search never holds the lock while scoring.
    Stored documents own a private metadata view and a read-only embedding.
    """

    def __init__(self, dimensions: int | None = None):
        """
        Args:
            dimensions: Fixed embedding size. When omitted, the first stored
                embedding fixes it.
        """
        self._dimensions = dimensions
        self._documents: dict[str, Document] = {}
        self._lock = threading.RLock()

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    @staticmethod
    def _freeze(doc: Document) -> Document:
        embedding = np.array(doc.embedding, dtype=np.float64, copy=True)
        embedding.flags.writeable = False
        return replace(
            doc,
            metadata=MappingProxyType(dict(doc.metadata)),
            embedding=embedding,
            score=None,
        )

    def add(self, documents: Sequence[Document]) -> None:
        """Insert or replace documents by id.

        The whole batch is validated before anything is written.
        """
        _check_dimensions(documents, None)
        frozen = [self._freeze(doc) for doc in documents]

        with self._lock:
            self._dimensions = _check_dimensions(frozen, self._dimensions)
            for doc in frozen:
                self._documents[doc.id] = doc

        logger.debug(f"Stored {len(frozen)} documents ({len(self._documents)} total)")

    def delete(self, ids: Sequence[str]) -> DeleteResult:
        """Remove documents by id; missing ids are reported in the result."""
        requested = _unique(ids)
        removed: list[str] = []

        with self._lock:
            for doc_id in requested:
                if self._documents.pop(doc_id, None) is not None:
                    removed.append(doc_id)

        result = DeleteResult(requested=requested, removed=tuple(removed))
        logger.debug(f"Deleted {len(removed)}/{len(requested)} documents ({result.status.value})")
        return result

    def scan(self, filter: FilterExpression | None = None) -> Iterator[Document]:
        """Yield documents in insertion order as of the start of iteration."""
        predicate = compile_filter(filter)
        with self._lock:
            snapshot = list(self._documents.values())
        for doc in snapshot:
            if predicate(doc.metadata):
                yield doc

    def get(self, doc_id: str) -> Document | None:
        with self._lock:
            return self._documents.get(doc_id)

    def count(self) -> int:
        with self._lock:
            return len(self._documents)


# ---------------------------------------------------------------------------
# PGVECTOR STORE (Backend adapter)
# ---------------------------------------------------------------------------

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class VectorStoreConfig:
    """Configuration for the PostgreSQL vector store."""

    connection_string: str = "postgresql://localhost/ragstore"
    embedding_dim: int = 1536
    table_name: str = "documents"
    index_type: str = "hnsw"  # or "ivfflat"


class PgVectorStore:
    """
    PostgreSQL vector store using pgvector.

    Metadata is stored as jsonb so filters can be pushed down as jsonpath
    predicates. A serial column preserves insertion order for scans.
    """

    def __init__(self, config: VectorStoreConfig):
        if not _TABLE_NAME.match(config.table_name):
            raise ValueError(f"Invalid table name: {config.table_name!r}")
        if config.index_type not in ("hnsw", "ivfflat"):
            raise ValueError(f"Unsupported index type: {config.index_type!r}")
        self.config = config
        self._conn = None

    @property
    def dimensions(self) -> int:
        return self.config.embedding_dim

    def connect(self) -> None:
        """Establish database connection."""
        if not PGVECTOR_AVAILABLE:
            raise ImportError(
                "pgvector not available. Install with: pip install 'ragstore[postgres]'"
            )

        try:
            self._conn = psycopg.connect(self.config.connection_string, autocommit=True)
            self._conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            register_vector(self._conn)
        except psycopg.Error as e:
            raise VectorStoreError(
                "Failed to connect to PostgreSQL",
                cause=e,
                context={"table": self.config.table_name},
            ) from e

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _connection(self):
        if not self._conn:
            self.connect()
        return self._conn

    def create_schema(self) -> None:
        """Create the documents table and indexes."""
        conn = self._connection()
        table = self.config.table_name

        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                seq BIGSERIAL,
                id TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                embedding vector({self.config.embedding_dim}) NOT NULL
            )
        """
        )

        conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS {table}_embedding_idx
            ON {table}
            USING {self.config.index_type} (embedding vector_cosine_ops)
        """
        )

        # jsonb_path_ops supports the @@ jsonpath operator used for filters
        conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS {table}_metadata_idx
            ON {table}
            USING GIN (metadata jsonb_path_ops)
        """
        )

    def add(self, documents: Sequence[Document]) -> None:
        """Upsert documents in a single transaction."""
        _check_dimensions(documents, self.config.embedding_dim)
        if not documents:
            return

        conn = self._connection()
        try:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.executemany(
                        f"""
                        INSERT INTO {self.config.table_name} (id, content, metadata, embedding)
                        VALUES (%s, %s, %s, %s)
                        ON CONFLICT (id) DO UPDATE SET
                            content = EXCLUDED.content,
                            metadata = EXCLUDED.metadata,
                            embedding = EXCLUDED.embedding
                        """,
                        [
                            (doc.id, doc.content, Jsonb(dict(doc.metadata)), doc.embedding)
                            for doc in documents
                        ],
                    )
        except psycopg.Error as e:
            raise VectorStoreError("Failed to upsert documents", cause=e) from e

        logger.debug(f"Upserted {len(documents)} documents into {self.config.table_name}")

    def delete(self, ids: Sequence[str]) -> DeleteResult:
        """Delete documents by id."""
        requested = _unique(ids)
        if not requested:
            return DeleteResult(requested=(), removed=())

        conn = self._connection()
        try:
            rows = conn.execute(
                f"DELETE FROM {self.config.table_name} WHERE id = ANY(%s) RETURNING id",
                (list(requested),),
            ).fetchall()
        except psycopg.Error as e:
            raise VectorStoreError("Failed to delete documents", cause=e) from e

        deleted = {row[0] for row in rows}
        return DeleteResult(
            requested=requested,
            removed=tuple(i for i in requested if i in deleted),
        )

    def scan(self, filter: FilterExpression | None = None) -> Iterator[Document]:
        """Stream documents, pushing any filter down as a jsonpath predicate."""
        query = f"SELECT id, content, metadata, embedding FROM {self.config.table_name}"
        params: tuple = ()
        if filter is not None:
            query += " WHERE metadata @@ %s::jsonpath"
            params = (to_pg_jsonpath(filter),)
        query += " ORDER BY seq"

        conn = self._connection()
        try:
            cursor = conn.execute(query, params)
            for row in cursor:
                yield Document(
                    id=row[0],
                    content=row[1],
                    metadata=dict(row[2] or {}),
                    embedding=np.asarray(row[3], dtype=np.float64),
                )
        except psycopg.Error as e:
            raise VectorStoreError("Failed to scan documents", cause=e) from e

    def count(self) -> int:
        row = self._connection().execute(
            f"SELECT count(*) FROM {self.config.table_name}"
        ).fetchone()
        return int(row[0])


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_vector_store(
    use_postgres: bool | None = None,
    config: VectorStoreConfig | None = None,
    dimensions: int | None = None,
) -> PgVectorStore | InMemoryVectorStore:
    """
    Factory function to get the appropriate vector store.

    Args:
        use_postgres: Use PostgreSQL store (default: RAGSTORE_USE_POSTGRES)
        config: Postgres store configuration (uses DATABASE_URL if not provided)
        dimensions: Fixed embedding size for the in-memory store

    Returns:
        VectorStore implementation
    """
    settings = get_config()
    if use_postgres is None:
        use_postgres = settings.use_postgres

    if use_postgres and PGVECTOR_AVAILABLE:
        config = config or VectorStoreConfig(connection_string=settings.database_url)
        return PgVectorStore(config)

    if use_postgres:
        logger.warning("PostgreSQL requested but psycopg/pgvector are not installed; using in-memory store")
    return InMemoryVectorStore(dimensions=dimensions)
