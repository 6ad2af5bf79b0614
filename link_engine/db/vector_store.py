"""Cosine-similarity ranking over stored link embeddings."""

import logging
from typing import Sequence

import numpy as np

from link_engine.resolve.types import ScoredEntry

logger = logging.getLogger(__name__)


def cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of each row of ``matrix`` against ``query``.

    Zero-norm rows (or a zero query) score 0.0.
    """
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * query_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, matrix @ query / denom, 0.0)
    return np.clip(sims, -1.0, 1.0)


def rank_by_similarity(
    query_embedding: Sequence[float],
    candidates: Sequence[ScoredEntry],
    embeddings: Sequence[Sequence[float]],
    k: int,
) -> list[ScoredEntry]:
    """
    Rank candidates by descending cosine similarity, ties broken by use_count.

    Args:
        query_embedding: Query vector
        candidates: Entries aligned with ``embeddings`` (similarity is filled in)
        embeddings: Stored vectors, one per candidate
        k: Number of results to return

    Returns:
        Top-k entries with their similarity set
    """
    if not candidates or k <= 0:
        return []

    query = np.asarray(query_embedding, dtype=np.float64)
    dim = query.shape[0]

    rows, kept = [], []
    for candidate, vector in zip(candidates, embeddings):
        if len(vector) != dim:
            logger.warning(
                f"Skipping link {candidate.id}: embedding dimension {len(vector)} != {dim}"
            )
            continue
        rows.append(vector)
        kept.append(candidate)

    if not kept:
        return []

    sims = cosine_similarities(np.asarray(rows, dtype=np.float64), query)
    for candidate, sim in zip(kept, sims):
        candidate.similarity = float(sim)

    kept.sort(key=lambda c: (-c.similarity, -c.use_count))
    return kept[:k]
