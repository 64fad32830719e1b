"""
Embeddings Module - Single Responsibility: Turn query text into vectors.

The search core never computes embeddings for stored documents; those
arrive already attached. This module only serves the query side of
similarity_search_text() and the CLI.

Any provider failure surfaces as EmbeddingUnavailable so callers can
apply their own retry policy.
"""

from __future__ import annotations

import hashlib
import logging
import os

import numpy as np
from openai import OpenAI, OpenAIError

from ragstore.core.errors import EmbeddingUnavailable
from ragstore.core.protocols import EmbeddingProvider

logger = logging.getLogger(__name__)


class OpenAIEmbeddings:
    """
    OpenAI-based embedding provider.

    Uses text-embedding-3-small by default (1536 dimensions).
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        client: OpenAI | None = None,
    ):
        self.model = model
        if client is None:
            try:
                client = OpenAI(api_key=api_key or os.environ.get("OPENAI_API_KEY"))
            except OpenAIError as e:
                raise EmbeddingUnavailable("OpenAI client could not be created", cause=e) from e
        self._client = client

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions for the model."""
        model_dims = {
            "text-embedding-3-small": 1536,
            "text-embedding-3-large": 3072,
            "text-embedding-ada-002": 1536,
        }
        return model_dims.get(self.model, 1536)

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts in one request."""
        if not texts:
            return []

        try:
            response = self._client.embeddings.create(input=texts, model=self.model)
        except OpenAIError as e:
            logger.warning(f"Embedding request failed for model {self.model}: {e}")
            raise EmbeddingUnavailable(
                f"Embedding provider failed: {e}",
                cause=e,
                context={"model": self.model, "batch_size": len(texts)},
            ) from e

        return [np.array(item.embedding, dtype=np.float64) for item in response.data]


class MockEmbeddings:
    """
    Mock embedding provider for testing without API calls.

    Generates deterministic pseudo-embeddings seeded from text hashes.
    NOT for production use - only for testing/development.
    """

    def __init__(self, dimensions: int = 1536):
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic pseudo-embedding from text hash."""
        seed = int.from_bytes(hashlib.sha256(text.encode()).digest()[:8], "little")
        return np.random.default_rng(seed).standard_normal(self._dimensions)

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts."""
        return [self.embed(text) for text in texts]


def get_embedding_provider(use_mock: bool = False, dimensions: int = 1536) -> EmbeddingProvider:
    """
    Factory function to get the appropriate embedding provider.

    Args:
        use_mock: If True, return MockEmbeddings (for testing)
        dimensions: Size of mock embeddings
    """
    if use_mock:
        return MockEmbeddings(dimensions=dimensions)
    return OpenAIEmbeddings()
