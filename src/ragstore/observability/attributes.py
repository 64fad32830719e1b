"""
Semantic Conventions for Span Attributes

Attribute keys for search spans, following the OpenTelemetry
db.* conventions where one exists plus a custom ragstore namespace.

Reference: https://opentelemetry.io/docs/specs/semconv/database/
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from ragstore.retrieval.document import Document
    from ragstore.retrieval.search import SearchRequest

# ---------------------------------------------------------------------------
# DB NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

DB_OPERATION_NAME = "db.operation.name"  # "similarity_search"


# ---------------------------------------------------------------------------
# SEARCH NAMESPACE (custom)
# ---------------------------------------------------------------------------

# Request
SEARCH_TOP_K = "ragstore.search.top_k"
SEARCH_SIMILARITY_THRESHOLD = "ragstore.search.similarity_threshold"
SEARCH_DIMENSIONS = "ragstore.search.dimensions"
SEARCH_FILTER = "ragstore.search.filter"  # rendered filter text

# Result
SEARCH_CANDIDATE_COUNT = "ragstore.search.candidate_count"
SEARCH_RESULT_COUNT = "ragstore.search.result_count"
SEARCH_RESULT_IDS = "ragstore.search.result_ids"
SEARCH_TOP_SCORE = "ragstore.search.top_score"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def search_request_attributes(request: SearchRequest) -> dict:
    """Create attributes dict for a search span."""
    attrs = {
        DB_OPERATION_NAME: "similarity_search",
        SEARCH_TOP_K: request.top_k,
        SEARCH_SIMILARITY_THRESHOLD: request.similarity_threshold,
        SEARCH_DIMENSIONS: request.dimensions,
    }
    if request.filter is not None:
        attrs[SEARCH_FILTER] = str(request.filter)
    return attrs


def search_result_attributes(candidate_count: int, results: Sequence[Document]) -> dict:
    """Create attributes dict describing a finished search."""
    attrs = {
        SEARCH_CANDIDATE_COUNT: candidate_count,
        SEARCH_RESULT_COUNT: len(results),
        SEARCH_RESULT_IDS: [doc.id for doc in results],
    }
    if results and results[0].score is not None:
        attrs[SEARCH_TOP_SCORE] = results[0].score
    return attrs
