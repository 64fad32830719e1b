"""
Unit Tests for the Error Taxonomy
"""

import pytest

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


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        "error,code",
        [
            (InvalidRequest("x"), "RAG_REQ_001"),
            (InvalidDocument("x"), "RAG_DOC_001"),
            (DimensionMismatch(2, 3), "RAG_VEC_001"),
            (ParseError("bad", "a ==", 4), "RAG_FLT_001"),
            (EmbeddingUnavailable("x"), "RAG_EMB_001"),
            (Cancelled("x"), "RAG_CAN_001"),
            (VectorStoreError("x"), "RAG_STO_001"),
        ],
    )
    def test_codes(self, error, code):
        assert isinstance(error, RagStoreError)
        assert error.error_code == code
        assert error.to_dict()["error"]["code"] == code

    @pytest.mark.parametrize("cls", [InvalidRequest, InvalidDocument])
    def test_validation_errors_are_value_errors(self, cls):
        assert issubclass(cls, ValueError)

    def test_to_dict_with_cause_and_context(self):
        cause = ConnectionError("refused")
        error = VectorStoreError("Failed", cause=cause, context={"table": "documents"})

        assert error.to_dict() == {
            "error": {"type": "VectorStoreError", "code": "RAG_STO_001", "message": "Failed"},
            "context": {"table": "documents"},
            "cause": {"type": "ConnectionError", "message": "refused"},
        }

    def test_dimension_mismatch_context(self):
        error = DimensionMismatch(2, 3, document_id="doc-1")

        assert error.to_dict()["context"] == {"expected": 2, "actual": 3, "document_id": "doc-1"}
        assert "doc-1" in str(error)

    def test_parse_error_fields(self):
        error = ParseError("Expected a value", "genre ==", 8)

        assert error.reason == "Expected a value"
        assert error.position == 8
        assert str(error).splitlines() == [
            "Expected a value at position 8",
            "  genre ==",
            "          ^",
        ]
