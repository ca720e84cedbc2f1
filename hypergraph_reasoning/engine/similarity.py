"""Cosine similarity ranking over dense vectors.

All-pairs similarity is computed as a single matrix product of the
row-normalised embedding matrix with its transpose, which is what keeps
simplification tractable for a few thousand nodes. Computation runs in
float64; results are stable to about 1e-4 against a naive loop.

Malformed input never raises here: mismatched or zero-norm vectors score
0.0 and a ragged matrix yields an empty result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

import numpy as np

logger = logging.getLogger(__name__)

Vector = Sequence[float] | np.ndarray


class SimilarPair(NamedTuple):
    """Indices ``i < j`` into the input sequence and their cosine similarity."""

    i: int
    j: int
    similarity: float


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity of two vectors in [-1, 1].

    Returns 0.0 for empty, zero-norm or unequal-length vectors.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.ndim != 1 or va.shape != vb.shape or va.size == 0:
        return 0.0
    norm_product = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm_product == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm_product)


def normalize(vector: Vector) -> np.ndarray:
    """Unit-length copy of ``vector``; zero vectors are returned unchanged."""
    v = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(v))
    if norm == 0.0:
        return v.copy()
    return v / norm


def l2_distance(a: Vector, b: Vector) -> float:
    """Euclidean distance; ``inf`` when the dimensions disagree."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        return float("inf")
    return float(np.linalg.norm(va - vb))


def _as_matrix(vectors: Sequence[Vector] | np.ndarray) -> np.ndarray | None:
    if isinstance(vectors, np.ndarray):
        matrix = vectors.astype(np.float64, copy=False)
        return matrix if matrix.ndim == 2 else None
    if len(vectors) == 0:
        return np.zeros((0, 0), dtype=np.float64)
    lengths = {len(v) for v in vectors}
    if len(lengths) != 1:
        logger.warning("Ragged embedding matrix (dimensions %s); skipping similarity", sorted(lengths))
        return None
    return np.asarray(vectors, dtype=np.float64)


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    # Zero rows stay zero so they score 0 against everything
    norms[norms == 0.0] = 1.0
    return matrix / norms


def cosine_similarity_matrix(vectors: Sequence[Vector] | np.ndarray) -> np.ndarray:
    """N x N cosine similarity matrix.

    Args:
        vectors: N vectors of equal dimension

    Returns:
        Symmetric float64 matrix with a diagonal of ~1 for non-zero rows,
        or an empty (0, 0) array for empty or ragged input
    """
    matrix = _as_matrix(vectors)
    if matrix is None or matrix.size == 0:
        return np.zeros((0, 0), dtype=np.float64)
    unit = _normalize_rows(matrix)
    return unit @ unit.T


def find_similar_pairs(
    vectors: Sequence[Vector] | np.ndarray,
    threshold: float = 0.9,
) -> list[SimilarPair]:
    """All pairs ``i < j`` whose similarity is strictly above ``threshold``.

    Returns:
        Pairs sorted by similarity descending; equal similarities are
        ordered by ``(i, j)`` so the output is deterministic.
    """
    sim = cosine_similarity_matrix(vectors)
    n = sim.shape[0]
    if n < 2:
        return []

    rows, cols = np.triu_indices(n, k=1)
    values = sim[rows, cols]
    mask = values > threshold
    rows, cols, values = rows[mask], cols[mask], values[mask]

    # lexsort uses the last key as primary
    order = np.lexsort((cols, rows, -values))
    return [
        SimilarPair(int(rows[k]), int(cols[k]), float(values[k]))
        for k in order
    ]


def top_k_similar(
    query: Vector,
    vectors: Sequence[Vector] | np.ndarray,
    k: int,
    threshold: float | None = None,
) -> list[tuple[int, float]]:
    """The ``k`` vectors most similar to ``query``.

    Args:
        query: Query vector
        vectors: Candidate vectors
        k: Maximum number of results
        threshold: If given, only similarities ``>= threshold`` are returned

    Returns:
        ``(index, similarity)`` tuples, highest first, ties by index
    """
    if k <= 0:
        return []
    matrix = _as_matrix(vectors)
    q = np.asarray(query, dtype=np.float64)
    if matrix is None or matrix.size == 0 or q.ndim != 1 or matrix.shape[1] != q.shape[0]:
        return []
    q_norm = float(np.linalg.norm(q))
    if q_norm == 0.0:
        return []

    scores = _normalize_rows(matrix) @ (q / q_norm)
    order = np.lexsort((np.arange(len(scores)), -scores))
    results: list[tuple[int, float]] = []
    for idx in order:
        score = float(scores[idx])
        if threshold is not None and score < threshold:
            # Sorted descending, nothing further qualifies
            break
        results.append((int(idx), score))
        if len(results) == k:
            break
    return results
