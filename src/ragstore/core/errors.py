"""
Error taxonomy for the vector store core.

Every failure a caller can observe is one of these types. Each carries an
error code, an optional underlying cause and a context dict, so CLI and
service layers can render the same structured output.

Nothing here retries. Callers decide their own retry policy.
"""

from __future__ import annotations

from typing import Any


class RagStoreError(Exception):
    """Base exception for all ragstore errors."""

    error_code: str = "RAG_ERR_001"

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.extra_context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for JSON output."""
        result: dict[str, Any] = {
            "error": {
                "type": type(self).__name__,
                "code": self.error_code,
                "message": self.message,
            },
        }
        if self.extra_context:
            result["context"] = self.extra_context
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result


# ---------------------------------------------------------------------------
# REQUEST / DATA ERRORS
# ---------------------------------------------------------------------------


class InvalidRequest(RagStoreError, ValueError):
    """Search request violates its invariants (top_k < 1, threshold out of range)."""

    error_code = "RAG_REQ_001"


class InvalidDocument(RagStoreError, ValueError):
    """Document cannot be stored (missing embedding, non-scalar metadata)."""

    error_code = "RAG_DOC_001"


class DimensionMismatch(RagStoreError, ValueError):
    """Two vectors that must be comparable have different lengths."""

    error_code = "RAG_VEC_001"

    def __init__(
        self,
        expected: int,
        actual: int,
        *,
        document_id: str | None = None,
    ) -> None:
        message = f"Vector dimension mismatch: expected {expected}, got {actual}"
        context: dict[str, Any] = {"expected": expected, "actual": actual}
        if document_id is not None:
            message += f" (document '{document_id}')"
            context["document_id"] = document_id
        super().__init__(message, context=context)
        self.expected = expected
        self.actual = actual
        self.document_id = document_id


class ParseError(RagStoreError, ValueError):
    """Filter expression text is malformed.

    ``position`` is the zero-based character offset where parsing failed.
    ``str(error)`` includes the source line with a caret under that offset.
    """

    error_code = "RAG_FLT_001"

    def __init__(self, message: str, text: str, position: int) -> None:
        self.reason = message
        self.text = text
        self.position = position
        pointer = " " * position + "^"
        super().__init__(
            f"{message} at position {position}\n  {text}\n  {pointer}",
            context={"position": position, "text": text},
        )


# ---------------------------------------------------------------------------
# COLLABORATOR / EXECUTION ERRORS
# ---------------------------------------------------------------------------


class EmbeddingUnavailable(RagStoreError):
    """The external embedding provider failed."""

    error_code = "RAG_EMB_001"


class Cancelled(RagStoreError):
    """A search was aborted by its cancellation token or deadline."""

    error_code = "RAG_CAN_001"


class VectorStoreError(RagStoreError):
    """A backend store driver failed."""

    error_code = "RAG_STO_001"
