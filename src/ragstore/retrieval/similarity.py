"""
Similarity Engine - cosine scoring and deterministic ranking.

Conventions:
- score is dot(a, b) / (|a| * |b|), clipped to [-1, 1]
- a zero-magnitude vector scores 0.0 against anything
- ranking is a stable sort on descending score, so ties keep
  candidate (insertion) order

Vectors are divided by their largest absolute component before the
dot product, so magnitudes near the float64 limits neither overflow
nor underflow. Cosine is scale invariant, so the score is unchanged.
"""

from __future__ import annotations

from typing import Sequence, TypeVar

import numpy as np

from ragstore.core.errors import DimensionMismatch

T = TypeVar("T")


def _unit_scale(vector: np.ndarray) -> np.ndarray:
    peak = np.max(np.abs(vector)) if vector.size else 0.0
    if peak == 0.0:
        return vector
    return vector / peak


def _unit_scale_rows(matrix: np.ndarray) -> np.ndarray:
    peaks = np.max(np.abs(matrix), axis=1, keepdims=True)
    return matrix / np.where(peaks == 0.0, 1.0, peaks)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Calculate cosine similarity between two vectors."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(a.shape[0], b.shape[0])

    a = _unit_scale(a)
    b = _unit_scale(b)
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))


def cosine_similarity_batch(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Score every row of ``matrix`` against ``query``.

    Rows with zero magnitude score 0.0, as does everything when the
    query itself has zero magnitude.
    """
    query = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)
    if matrix.shape[1] != query.shape[0]:
        raise DimensionMismatch(query.shape[0], matrix.shape[1])

    query = _unit_scale(query)
    matrix = _unit_scale_rows(matrix)
    denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.zeros_like(dots)
    nonzero = denom != 0.0
    scores[nonzero] = dots[nonzero] / denom[nonzero]
    return np.clip(scores, -1.0, 1.0)


def rank(candidates: Sequence[T], scores: Sequence[float] | np.ndarray) -> list[tuple[T, float]]:
    """Pair candidates with scores, highest first, ties in candidate order."""
    scores = np.asarray(scores, dtype=np.float64)
    if len(candidates) != scores.shape[0]:
        raise ValueError(f"{len(candidates)} candidates but {scores.shape[0]} scores")
    order = np.argsort(-scores, kind="stable")
    return [(candidates[i], float(scores[i])) for i in order]
