"""
Unit Tests for the Search Orchestrator

Tests request validation, ranking, thresholds, filtering, cancellation,
parallel scoring and tracing of VectorSearchService.
"""

import math
import threading
from unittest.mock import MagicMock

import numpy as np
import pytest

from ragstore.config import RagStoreConfig
from ragstore.core.errors import (
    Cancelled,
    DimensionMismatch,
    EmbeddingUnavailable,
    InvalidRequest,
    ParseError,
)
from ragstore.embeddings import MockEmbeddings
from ragstore.filters.builder import FilterExpressionBuilder
from ragstore.filters.parser import parse
from ragstore.observability.attributes import (
    SEARCH_CANDIDATE_COUNT,
    SEARCH_FILTER,
    SEARCH_RESULT_IDS,
    SEARCH_TOP_K,
)
from ragstore.observability.tracer import NoOpTracer
from ragstore.retrieval.document import Document
from ragstore.retrieval.search import (
    CancellationToken,
    SearchRequest,
    VectorSearchService,
)
from ragstore.retrieval.store import InMemoryVectorStore


def doc(doc_id, vector, **metadata):
    return Document(content=f"content of {doc_id}", metadata=metadata, id=doc_id, embedding=vector)


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.fixture
def service(store):
    return VectorSearchService(store, config=RagStoreConfig(), tracer=NoOpTracer())


@pytest.fixture
def movies(store):
    store.add([
        doc("1", [1.0, 0.0, 0.0], genre="drama", year=2021),
        doc("2", [0.9, 0.1, 0.0], genre="comedy", year=2019),
        doc("3", [0.0, 1.0, 0.0], genre="drama", year=2018),
        doc("4", [0.7, 0.7, 0.0], genre="documentary", year=2022),
    ])
    return store


@pytest.fixture
def random_store(store):
    rng = np.random.default_rng(42)
    store.add([
        doc(f"doc-{i}", rng.standard_normal(8), bucket=i % 3)
        for i in range(200)
    ])
    return store


# ---------------------------------------------------------------------------
# REQUEST VALIDATION
# ---------------------------------------------------------------------------


class TestSearchRequest:
    """Test request invariants."""

    def test_defaults(self):
        request = SearchRequest(query_vector=[1.0, 0.0])

        assert request.top_k == 4
        assert request.similarity_threshold == 0.0
        assert request.filter is None
        assert request.query_vector == (1.0, 0.0)
        assert request.dimensions == 2

    def test_top_k_zero_rejected(self):
        with pytest.raises(InvalidRequest):
            SearchRequest(query_vector=[1.0, 0.0], top_k=0)

    @pytest.mark.parametrize("top_k", [-1, 2.5, True, "3"])
    def test_invalid_top_k(self, top_k):
        with pytest.raises(InvalidRequest):
            SearchRequest(query_vector=[1.0], top_k=top_k)

    @pytest.mark.parametrize("threshold", [-0.1, 1.01, float("nan"), True, "0.5"])
    def test_invalid_threshold(self, threshold):
        with pytest.raises(InvalidRequest):
            SearchRequest(query_vector=[1.0], similarity_threshold=threshold)

    @pytest.mark.parametrize("threshold", [0.0, 0.5, 1.0, 1])
    def test_threshold_bounds_inclusive(self, threshold):
        assert SearchRequest(query_vector=[1.0], similarity_threshold=threshold)

    def test_empty_query_rejected(self):
        with pytest.raises(InvalidRequest):
            SearchRequest(query_vector=[])

    @pytest.mark.parametrize("query_vector", [[float("nan"), 1.0], [1.0, float("inf")]])
    def test_non_finite_query_rejected(self, query_vector):
        with pytest.raises(InvalidRequest):
            SearchRequest(query_vector=query_vector)

    def test_two_dimensional_query_rejected(self):
        with pytest.raises(InvalidRequest):
            SearchRequest(query_vector=[[1.0, 0.0], [0.0, 1.0]])

    @pytest.mark.parametrize("query_vector", [["a", "b"], [1.0, None], "1,0"])
    def test_non_numeric_query_rejected(self, query_vector):
        with pytest.raises(InvalidRequest):
            SearchRequest(query_vector=query_vector)

    def test_invalid_request_is_value_error(self):
        with pytest.raises(ValueError):
            SearchRequest(query_vector=[1.0], top_k=0)

    def test_filter_text_is_parsed(self):
        request = SearchRequest(query_vector=[1.0], filter="genre == 'drama'")

        assert request.filter == parse("genre == 'drama'")

    def test_bad_filter_text(self):
        with pytest.raises(ParseError):
            SearchRequest(query_vector=[1.0], filter="genre ==")

    def test_with_methods_return_new_requests(self):
        request = SearchRequest(query_vector=[1.0, 0.0])

        changed = (
            request.with_top_k(2)
            .with_similarity_threshold(0.5)
            .with_filter("year > 2000")
            .with_query_vector(np.array([0.0, 1.0]))
        )

        assert request.top_k == 4
        assert changed.top_k == 2
        assert changed.similarity_threshold == 0.5
        assert changed.filter == parse("year > 2000")
        assert changed.query_vector == (0.0, 1.0)
        assert changed.with_similarity_threshold_all().similarity_threshold == 0.0

    def test_with_methods_revalidate(self):
        request = SearchRequest(query_vector=[1.0])

        with pytest.raises(InvalidRequest):
            request.with_top_k(0)

    def test_frozen(self):
        request = SearchRequest(query_vector=[1.0])

        with pytest.raises(AttributeError):
            request.top_k = 10


class TestSearchRequestBuilder:
    def test_build(self):
        request = (
            SearchRequest.builder()
            .query([1.0, 0.0])
            .top(2)
            .threshold(0.3)
            .where("genre == 'drama'")
            .build()
        )

        assert request == SearchRequest(
            query_vector=[1.0, 0.0],
            top_k=2,
            similarity_threshold=0.3,
            filter=parse("genre == 'drama'"),
        )

    def test_build_requires_query(self):
        with pytest.raises(InvalidRequest):
            SearchRequest.builder().top(2).build()

    def test_build_validates(self):
        with pytest.raises(InvalidRequest):
            SearchRequest.builder().query([1.0]).top(0).build()

    def test_build_rejects_two_dimensional_query(self):
        builder = SearchRequest.builder().query(np.ones((2, 2)))

        with pytest.raises(InvalidRequest):
            builder.build()


# ---------------------------------------------------------------------------
# RANKING AND THRESHOLDS
# ---------------------------------------------------------------------------


class TestSimilaritySearch:
    """Test ranking, truncation and thresholds."""

    def test_orthogonal_documents(self, store, service):
        """A query on one axis ranks the matching axis first and the orthogonal one at 0."""
        store.add([doc("A", [1.0, 0.0]), doc("B", [0.0, 1.0])])

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0], top_k=2))

        assert [d.id for d in results] == ["A", "B"]
        assert [d.score for d in results] == [pytest.approx(1.0), pytest.approx(0.0)]

    def test_empty_store(self, service):
        assert service.similarity_search(SearchRequest(query_vector=[1.0, 0.0])) == []

    def test_ranked_by_score(self, movies, service):
        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0, 0.0], top_k=4))

        assert [d.id for d in results] == ["1", "2", "4", "3"]

    def test_truncates_to_top_k(self, movies, service):
        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0, 0.0], top_k=2))

        assert [d.id for d in results] == ["1", "2"]

    def test_threshold_excludes_low_scores(self, movies, service):
        request = SearchRequest(query_vector=[1.0, 0.0, 0.0], top_k=10, similarity_threshold=0.8)

        assert [d.id for d in service.similarity_search(request)] == ["1", "2"]

    def test_threshold_is_inclusive(self, store, service):
        store.add([doc("A", [1.0, 0.0])])

        results = service.similarity_search(
            SearchRequest(query_vector=[1.0, 0.0], similarity_threshold=1.0)
        )

        assert [d.id for d in results] == ["A"]

    def test_negative_scores_excluded_at_default_threshold(self, store, service):
        store.add([doc("A", [1.0, 0.0]), doc("opposite", [-1.0, 0.0])])

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0], top_k=5))

        assert [d.id for d in results] == ["A"]

    def test_ties_keep_insertion_order(self, store, service):
        store.add([doc(name, [1.0, 1.0]) for name in ("c", "a", "b")])

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 1.0], top_k=3))

        assert [d.id for d in results] == ["c", "a", "b"]

    def test_zero_vector_document_scores_zero(self, store, service):
        store.add([doc("zero", [0.0, 0.0]), doc("A", [1.0, 0.0])])

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0]))

        assert [(d.id, d.score) for d in results] == [("A", 1.0), ("zero", 0.0)]

    def test_extreme_magnitude_documents(self, store, service):
        store.add([doc("huge", [1e200, 0.0]), doc("tiny", [0.0, 1e-200])])

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0], top_k=2))

        assert [(d.id, d.score) for d in results] == [("huge", 1.0), ("tiny", 0.0)]

    def test_results_are_copies_with_scores(self, movies, service):
        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0, 0.0], top_k=1))

        assert results[0].score == pytest.approx(1.0)
        assert movies.get("1").score is None

    def test_deterministic(self, random_store, service):
        request = SearchRequest(query_vector=np.ones(8), top_k=10)

        first = [(d.id, d.score) for d in service.similarity_search(request)]
        second = [(d.id, d.score) for d in service.similarity_search(request)]

        assert first == second


class TestSearchProperties:
    """Invariants that hold for any request."""

    @pytest.mark.parametrize("top_k", [1, 3, 10, 500])
    @pytest.mark.parametrize("threshold", [0.0, 0.2, 0.6, 0.95])
    def test_result_invariants(self, random_store, service, top_k, threshold):
        rng = np.random.default_rng(top_k)
        request = SearchRequest(
            query_vector=rng.standard_normal(8),
            top_k=top_k,
            similarity_threshold=threshold,
        )

        results = service.similarity_search(request)
        scores = [d.score for d in results]

        assert len(results) <= top_k
        assert scores == sorted(scores, reverse=True)
        assert all(s >= threshold for s in scores)
        assert all(-1.0 <= s <= 1.0 for s in scores)

    def test_matches_brute_force(self, random_store, service):
        query = np.linspace(-1.0, 1.0, 8)
        expected = sorted(
            (
                (float(np.dot(query, d.embedding) / (np.linalg.norm(query) * np.linalg.norm(d.embedding))), d.id)
                for d in random_store.scan()
            ),
            key=lambda pair: -pair[0],
        )
        expected = [(doc_id, score) for score, doc_id in expected if score >= 0.0][:20]

        results = service.similarity_search(SearchRequest(query_vector=query, top_k=20))

        assert [d.id for d in results] == [doc_id for doc_id, _ in expected]
        for d, (_, score) in zip(results, expected):
            assert math.isclose(d.score, score, abs_tol=1e-12)


# ---------------------------------------------------------------------------
# FILTERING
# ---------------------------------------------------------------------------


class TestFilteredSearch:
    """Only documents matching the filter are considered."""

    def test_filter_expression(self, movies, service):
        request = SearchRequest(
            query_vector=[1.0, 0.0, 0.0],
            top_k=10,
            filter=parse("genre == 'drama' && year >= 2020"),
        )

        assert [d.id for d in service.similarity_search(request)] == ["1"]

    def test_filter_text(self, movies, service):
        request = SearchRequest(
            query_vector=[1.0, 0.0, 0.0],
            top_k=10,
            filter="genre in ['comedy','documentary','drama'] AND year < 2022",
        )

        assert [d.id for d in service.similarity_search(request)] == ["1", "2", "3"]

    def test_builder_filter(self, movies, service):
        b = FilterExpressionBuilder()
        request = SearchRequest(
            query_vector=[1.0, 0.0, 0.0],
            top_k=10,
            filter=b.nin("genre", ["drama"]),
        )

        assert [d.id for d in service.similarity_search(request)] == ["2", "4"]

    def test_filter_matching_nothing(self, movies, service):
        request = SearchRequest(query_vector=[1.0, 0.0, 0.0], filter="genre == 'horror'")

        assert service.similarity_search(request) == []

    def test_filter_passed_to_store(self):
        store = MagicMock()
        store.scan.return_value = iter([])
        expr = parse("a == 1")
        service = VectorSearchService(store, config=RagStoreConfig(), tracer=NoOpTracer())

        service.similarity_search(SearchRequest(query_vector=[1.0], filter=expr))

        store.scan.assert_called_once_with(expr)


# ---------------------------------------------------------------------------
# FAILURES
# ---------------------------------------------------------------------------


class TestSearchFailures:
    """Errors surface to the caller with no partial results."""

    def test_dimension_mismatch(self, movies, service):
        with pytest.raises(DimensionMismatch) as exc:
            service.similarity_search(SearchRequest(query_vector=[1.0, 0.0]))

        assert exc.value.expected == 2
        assert exc.value.actual == 3
        assert exc.value.document_id == "1"

    def test_filtered_out_documents_are_not_checked(self, store, service):
        store.add([doc("a", [1.0, 0.0], kind="x")])

        request = SearchRequest(query_vector=[1.0, 0.0, 0.0], filter="kind == 'y'")

        assert service.similarity_search(request) == []

    def test_request_validated_again(self, service):
        request = SearchRequest(query_vector=[1.0])
        object.__setattr__(request, "top_k", 0)

        with pytest.raises(InvalidRequest):
            service.similarity_search(request)


# ---------------------------------------------------------------------------
# CANCELLATION
# ---------------------------------------------------------------------------


class TestCancellation:
    """Cancelled searches raise and return nothing."""

    def test_token_starts_active(self):
        token = CancellationToken()

        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancelled_before_search(self, movies, service):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(Cancelled, match="cancelled by caller"):
            service.similarity_search(SearchRequest(query_vector=[1.0, 0.0, 0.0]), cancel=token)

    def test_deadline_exceeded(self, movies, service):
        token = CancellationToken(timeout=0)

        assert token.cancelled
        with pytest.raises(Cancelled, match="deadline exceeded"):
            service.similarity_search(SearchRequest(query_vector=[1.0, 0.0, 0.0]), cancel=token)

    def test_generous_deadline(self, movies, service):
        token = CancellationToken(timeout=60)

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0, 0.0]), cancel=token)

        assert len(results) == 4

    def test_cancelled_while_scanning(self, random_store):
        token = CancellationToken()

        class CancellingStore:
            def scan(self, filter=None):
                for i, d in enumerate(random_store.scan(filter)):
                    if i == 100:
                        token.cancel()
                    yield d

        service = VectorSearchService(
            CancellingStore(),
            config=RagStoreConfig(scoring_chunk_size=16),
            tracer=NoOpTracer(),
        )

        with pytest.raises(Cancelled):
            service.similarity_search(SearchRequest(query_vector=np.ones(8)), cancel=token)


# ---------------------------------------------------------------------------
# PARALLEL SCORING
# ---------------------------------------------------------------------------


class TestParallelScoring:
    """Thread-pool scoring returns the same ranking as serial scoring."""

    def test_parallel_matches_serial(self, random_store):
        request = SearchRequest(query_vector=np.arange(8, dtype=float), top_k=50)
        serial = VectorSearchService(random_store, config=RagStoreConfig(), tracer=NoOpTracer())
        parallel = VectorSearchService(
            random_store,
            config=RagStoreConfig(scoring_workers=4, scoring_chunk_size=7),
            tracer=NoOpTracer(),
        )

        expected = serial.similarity_search(request)
        actual = parallel.similarity_search(request)

        assert [d.id for d in actual] == [d.id for d in expected]
        assert [d.score for d in actual] == pytest.approx([d.score for d in expected])

    def test_concurrent_searches_and_writes(self, random_store, service):
        errors = []
        stop = threading.Event()

        def writer():
            i = 0
            while not stop.is_set():
                random_store.add([doc(f"extra-{i}", np.ones(8))])
                random_store.delete([f"extra-{i}"])
                i += 1

        def searcher():
            try:
                for _ in range(20):
                    results = service.similarity_search(SearchRequest(query_vector=np.ones(8), top_k=5))
                    assert len(results) <= 5
            except Exception as e:
                errors.append(e)

        write_thread = threading.Thread(target=writer)
        search_threads = [threading.Thread(target=searcher) for _ in range(4)]
        write_thread.start()
        for t in search_threads:
            t.start()
        for t in search_threads:
            t.join()
        stop.set()
        write_thread.join()

        assert errors == []


# ---------------------------------------------------------------------------
# VISIBILITY OF WRITES
# ---------------------------------------------------------------------------


class TestWriteVisibility:
    def test_added_documents_visible(self, store, service):
        store.add([doc("a", [1.0, 0.0])])
        assert [d.id for d in service.similarity_search(SearchRequest(query_vector=[1.0, 0.0]))] == ["a"]

        store.add([doc("b", [1.0, 0.1])])
        assert [d.id for d in service.similarity_search(SearchRequest(query_vector=[1.0, 0.0]))] == ["a", "b"]

    def test_deleted_documents_disappear(self, movies, service):
        movies.delete(["1"])

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0, 0.0], top_k=10))

        assert "1" not in [d.id for d in results]

    def test_replaced_document_uses_new_vector(self, store, service):
        store.add([doc("a", [1.0, 0.0]), doc("b", [0.8, 0.2])])
        store.add([doc("a", [0.0, 1.0])])

        results = service.similarity_search(SearchRequest(query_vector=[1.0, 0.0], top_k=2))

        assert [d.id for d in results] == ["b", "a"]


# ---------------------------------------------------------------------------
# TEXT SEARCH
# ---------------------------------------------------------------------------


class TestTextSearch:
    """similarity_search_text embeds the query first."""

    def test_same_text_scores_highest(self, store):
        embeddings = MockEmbeddings(dimensions=32)
        texts = ["thyroid function", "cholesterol levels", "vitamin d"]
        store.add([
            Document(content=text, id=str(i), embedding=vector)
            for i, (text, vector) in enumerate(zip(texts, embeddings.embed_batch(texts)))
        ])
        service = VectorSearchService(store, embeddings=embeddings, config=RagStoreConfig(), tracer=NoOpTracer())

        results = service.similarity_search_text("cholesterol levels", top_k=1)

        assert results[0].content == "cholesterol levels"
        assert results[0].score == pytest.approx(1.0)

    def test_uses_configured_defaults(self, random_store):
        embeddings = MagicMock()
        embeddings.embed.return_value = np.ones(8)
        service = VectorSearchService(
            random_store,
            embeddings=embeddings,
            config=RagStoreConfig(default_top_k=2, default_similarity_threshold=0.1),
            tracer=NoOpTracer(),
        )

        results = service.similarity_search_text("anything")

        assert len(results) == 2
        assert all(d.score >= 0.1 for d in results)
        embeddings.embed.assert_called_once_with("anything")

    def test_filter_text(self, movies):
        embeddings = MagicMock()
        embeddings.embed.return_value = np.array([1.0, 0.0, 0.0])
        service = VectorSearchService(movies, embeddings=embeddings, config=RagStoreConfig(), tracer=NoOpTracer())

        results = service.similarity_search_text("q", filter="genre == 'drama'")

        assert [d.id for d in results] == ["1", "3"]

    def test_embedding_failure_propagates(self, movies):
        embeddings = MagicMock()
        embeddings.embed.side_effect = EmbeddingUnavailable("provider down")
        service = VectorSearchService(movies, embeddings=embeddings, config=RagStoreConfig(), tracer=NoOpTracer())

        with pytest.raises(EmbeddingUnavailable):
            service.similarity_search_text("q")

    def test_requires_embeddings(self, service):
        with pytest.raises(InvalidRequest):
            service.similarity_search_text("q")


# ---------------------------------------------------------------------------
# TRACING
# ---------------------------------------------------------------------------


class TestSearchTracing:
    """The search span carries request and result attributes."""

    def test_span_attributes(self, movies):
        tracer = MagicMock()
        span = tracer.start_span.return_value.__enter__.return_value
        service = VectorSearchService(movies, config=RagStoreConfig(), tracer=tracer)

        service.similarity_search(
            SearchRequest(query_vector=[1.0, 0.0, 0.0], top_k=2, filter="genre == 'drama'")
        )

        name = tracer.start_span.call_args.args[0]
        attributes = tracer.start_span.call_args.kwargs["attributes"]
        assert name == "ragstore.similarity_search"
        assert attributes[SEARCH_TOP_K] == 2
        assert attributes[SEARCH_FILTER] == "genre == 'drama'"
        result_attributes = span.set_attributes.call_args.args[0]
        assert result_attributes[SEARCH_CANDIDATE_COUNT] == 2
        assert result_attributes[SEARCH_RESULT_IDS] == ["1", "3"]
        span.succeed.assert_called_once_with()
        span.fail.assert_not_called()

    def test_span_records_errors(self, movies):
        tracer = MagicMock()
        span = tracer.start_span.return_value.__enter__.return_value
        service = VectorSearchService(movies, config=RagStoreConfig(), tracer=tracer)

        with pytest.raises(DimensionMismatch):
            service.similarity_search(SearchRequest(query_vector=[1.0]))

        span.fail.assert_called_once()
        assert isinstance(span.fail.call_args.args[0], DimensionMismatch)
        span.succeed.assert_not_called()

    def test_default_tracer_is_noop(self, store, monkeypatch):
        monkeypatch.delenv("RAGSTORE_TRACING_ENABLED", raising=False)

        service = VectorSearchService(store, config=RagStoreConfig())

        assert service.similarity_search(SearchRequest(query_vector=[1.0])) == []
