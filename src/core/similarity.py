# src/core/similarity.py — v1
"""Cosine similarity between a query embedding and stored candidate embeddings."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)

_EPS = 1e-10


def cosine_similarities(
    query: Sequence[float], candidates: Sequence[Sequence[float]]
) -> np.ndarray:
    """Cosine similarity of ``query`` against each row of ``candidates``.

    Args:
        query: 1D query vector.
        candidates: 2D array-like of shape (n_candidates, n_features).

    Returns:
        1D array of length n_candidates with values in [-1, 1].

    Raises:
        ValueError: If dimensions do not line up.
    """
    if len(candidates) == 0:
        return np.empty((0,), dtype=np.float64)

    q = np.asarray(query, dtype=np.float64)
    m = np.asarray(candidates, dtype=np.float64)
    if q.ndim != 1:
        raise ValueError(f"Expected 1D query vector, got {q.ndim}D")
    if m.ndim != 2 or m.shape[1] != q.shape[0]:
        raise ValueError(
            f"Candidate matrix shape {m.shape} incompatible with query of size {q.shape[0]}"
        )

    q_norm = max(float(np.linalg.norm(q)), _EPS)
    m_norms = np.maximum(np.linalg.norm(m, axis=1), _EPS)
    scores = (m @ q) / (m_norms * q_norm)
    return np.clip(scores, -1.0, 1.0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors."""
    return float(cosine_similarities(a, [b])[0])
