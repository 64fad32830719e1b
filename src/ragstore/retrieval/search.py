"""
Search orchestration - similarity search over a VectorStore.

Flow for one request:
    validate -> scan (filtered by the store) -> snapshot -> check dimensions
    -> score (optionally on a thread pool) -> threshold -> stable rank -> top_k

The service holds no per-call state. Writes that complete before a search
starts are visible to it; the store snapshot taken at scan start is all
the search ever reads.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Sequence

import numpy as np

from ragstore.config import RagStoreConfig, get_config
from ragstore.core.errors import Cancelled, DimensionMismatch, InvalidRequest
from ragstore.core.protocols import EmbeddingProvider, VectorStore
from ragstore.filters.expressions import FilterExpression
from ragstore.filters.parser import parse
from ragstore.observability.attributes import search_request_attributes, search_result_attributes
from ragstore.observability.tracer import TracerProtocol, get_tracer
from ragstore.retrieval.document import Document
from ragstore.retrieval.similarity import cosine_similarity_batch, rank

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 4
SIMILARITY_THRESHOLD_ACCEPT_ALL = 0.0


# ---------------------------------------------------------------------------
# REQUEST
# ---------------------------------------------------------------------------


def _coerce_filter(value: FilterExpression | str | None) -> FilterExpression | None:
    if isinstance(value, str):
        return parse(value)
    return value


def _coerce_query_vector(value: Sequence[float] | np.ndarray) -> tuple[float, ...]:
    try:
        vector = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidRequest("query_vector must contain only numbers", cause=e) from e
    if vector.ndim != 1:
        raise InvalidRequest(
            f"query_vector must be one-dimensional, got shape {vector.shape}",
            context={"shape": list(vector.shape)},
        )
    if not np.all(np.isfinite(vector)):
        raise InvalidRequest("query_vector must contain only finite values")
    return tuple(float(x) for x in vector)


@dataclass(frozen=True)
class SearchRequest:
    """
    An immutable similarity search request.

    Invariants (checked on construction, InvalidRequest otherwise):
    - top_k is an integer >= 1
    - 0 <= similarity_threshold <= 1
    - query_vector is a non-empty 1-D vector of finite numbers

    The with_* methods return new requests, re-validated.
    """

    query_vector: tuple[float, ...]
    top_k: int = DEFAULT_TOP_K
    similarity_threshold: float = SIMILARITY_THRESHOLD_ACCEPT_ALL
    filter: FilterExpression | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "query_vector", _coerce_query_vector(self.query_vector))
        object.__setattr__(self, "filter", _coerce_filter(self.filter))
        self.validate()

    def validate(self) -> None:
        if isinstance(self.top_k, bool) or not isinstance(self.top_k, (int, np.integer)):
            raise InvalidRequest(
                f"top_k must be an integer, got {type(self.top_k).__name__}",
                context={"top_k": repr(self.top_k)},
            )
        if self.top_k < 1:
            raise InvalidRequest(f"top_k must be >= 1, got {self.top_k}", context={"top_k": self.top_k})
        threshold = self.similarity_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 1.0:
            raise InvalidRequest(
                f"similarity_threshold must be within [0, 1], got {threshold!r}",
                context={"similarity_threshold": repr(threshold)},
            )
        if not self.query_vector:
            raise InvalidRequest("query_vector must not be empty")

    @property
    def dimensions(self) -> int:
        return len(self.query_vector)

    def with_query_vector(self, query_vector: Sequence[float] | np.ndarray) -> SearchRequest:
        return replace(self, query_vector=query_vector)

    def with_top_k(self, top_k: int) -> SearchRequest:
        return replace(self, top_k=top_k)

    def with_similarity_threshold(self, threshold: float) -> SearchRequest:
        return replace(self, similarity_threshold=threshold)

    def with_similarity_threshold_all(self) -> SearchRequest:
        return replace(self, similarity_threshold=SIMILARITY_THRESHOLD_ACCEPT_ALL)

    def with_filter(self, filter: FilterExpression | str | None) -> SearchRequest:
        return replace(self, filter=filter)

    @staticmethod
    def builder() -> SearchRequestBuilder:
        return SearchRequestBuilder()


@dataclass(frozen=True)
class SearchRequestBuilder:
    """Incremental construction of a SearchRequest.

    Each step returns a new builder; nothing is validated until build().
    """

    query_vector: Sequence[float] | np.ndarray | None = None
    top_k: int = DEFAULT_TOP_K
    similarity_threshold: float = SIMILARITY_THRESHOLD_ACCEPT_ALL
    filter: FilterExpression | str | None = None

    def query(self, query_vector: Sequence[float] | np.ndarray) -> SearchRequestBuilder:
        return replace(self, query_vector=query_vector)

    def top(self, top_k: int) -> SearchRequestBuilder:
        return replace(self, top_k=top_k)

    def threshold(self, similarity_threshold: float) -> SearchRequestBuilder:
        return replace(self, similarity_threshold=similarity_threshold)

    def where(self, filter: FilterExpression | str | None) -> SearchRequestBuilder:
        return replace(self, filter=filter)

    def build(self) -> SearchRequest:
        if self.query_vector is None:
            raise InvalidRequest("query_vector is required")
        return SearchRequest(
            query_vector=self.query_vector,
            top_k=self.top_k,
            similarity_threshold=self.similarity_threshold,
            filter=self.filter,
        )


# ---------------------------------------------------------------------------
# CANCELLATION
# ---------------------------------------------------------------------------


class CancellationToken:
    """Cooperative cancellation with an optional deadline.

    Searches poll the token between steps; once cancelled (explicitly or
    by the deadline passing) they raise Cancelled and return nothing.
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Search cancelled by caller")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise Cancelled("Search deadline exceeded")


# ---------------------------------------------------------------------------
# SEARCH SERVICE
# ---------------------------------------------------------------------------


class VectorSearchService:
    """
    Answers similarity search requests against a VectorStore.

    Dependencies are INJECTED, not created internally:
    - store: any VectorStore implementation
    - embeddings: used only by similarity_search_text()
    - config: search defaults and scoring parallelism
    - tracer: span sink (NoOpTracer unless tracing is enabled)
    """

    def __init__(
        self,
        store: VectorStore,
        embeddings: EmbeddingProvider | None = None,
        config: RagStoreConfig | None = None,
        tracer: TracerProtocol | None = None,
    ):
        self._store = store
        self._embeddings = embeddings
        self._config = config or get_config()
        self._tracer = tracer or get_tracer()

    @property
    def store(self) -> VectorStore:
        return self._store

    def similarity_search(
        self,
        request: SearchRequest,
        cancel: CancellationToken | None = None,
    ) -> list[Document]:
        """Return up to top_k documents, most similar first, with scores set.

        Raises:
            InvalidRequest: request invariants violated
            DimensionMismatch: a stored embedding differs in size from the query
            Cancelled: the token was cancelled or its deadline passed
        """
        request.validate()

        with self._tracer.start_span(
            "ragstore.similarity_search",
            attributes=search_request_attributes(request),
        ) as span:
            try:
                results, candidate_count = self._search(request, cancel)
            except Exception as e:
                span.fail(e)
                raise

            span.set_attributes(search_result_attributes(candidate_count, results))
            span.succeed()

        logger.debug(
            f"Search top_k={request.top_k} threshold={request.similarity_threshold} "
            f"filtered={request.filter is not None}: {len(results)}/{candidate_count} candidates returned"
        )
        return results

    def similarity_search_text(
        self,
        query: str,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
        filter: FilterExpression | str | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[Document]:
        """Embed ``query`` and search.

        EmbeddingUnavailable from the embedding provider propagates unchanged.
        """
        if self._embeddings is None:
            raise InvalidRequest("Text search requires an embedding provider")

        request = SearchRequest(
            query_vector=self._embeddings.embed(query),
            top_k=self._config.default_top_k if top_k is None else top_k,
            similarity_threshold=(
                self._config.default_similarity_threshold
                if similarity_threshold is None
                else similarity_threshold
            ),
            filter=filter,
        )
        return self.similarity_search(request, cancel=cancel)

    # -----------------------------------------------------------------------

    def _search(
        self,
        request: SearchRequest,
        cancel: CancellationToken | None,
    ) -> tuple[list[Document], int]:
        query = np.asarray(request.query_vector, dtype=np.float64)

        candidates: list[Document] = []
        for doc in self._store.scan(request.filter):
            if cancel is not None and len(candidates) % 256 == 0:
                cancel.raise_if_cancelled()
            if doc.dimensions != request.dimensions:
                raise DimensionMismatch(request.dimensions, doc.dimensions or 0, document_id=doc.id)
            candidates.append(doc)

        if cancel is not None:
            cancel.raise_if_cancelled()
        if not candidates:
            return [], 0

        scores = self._score(query, candidates, cancel)

        ranked = [
            (doc, score)
            for doc, score in rank(candidates, scores)
            if score >= request.similarity_threshold
        ]
        results = [doc.with_score(score) for doc, score in ranked[: request.top_k]]
        return results, len(candidates)

    def _score(
        self,
        query: np.ndarray,
        candidates: Sequence[Document],
        cancel: CancellationToken | None,
    ) -> np.ndarray:
        chunk_size = max(1, self._config.scoring_chunk_size)
        chunks = [candidates[i : i + chunk_size] for i in range(0, len(candidates), chunk_size)]

        def score_chunk(chunk: Sequence[Document]) -> np.ndarray:
            if cancel is not None:
                cancel.raise_if_cancelled()
            matrix = np.vstack([doc.embedding for doc in chunk])
            return cosine_similarity_batch(query, matrix)

        workers = min(max(1, self._config.scoring_workers), len(chunks))
        if workers == 1:
            parts = [score_chunk(chunk) for chunk in chunks]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ragstore-score") as pool:
                parts = list(pool.map(score_chunk, chunks))

        if cancel is not None:
            cancel.raise_if_cancelled()
        return np.concatenate(parts)
