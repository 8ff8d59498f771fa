"""Reciprocal rank fusion of the dense and lexical rankings."""
from __future__ import annotations

from typing import Iterable

from domain.entities import Chunk, SearchCandidate

DEFAULT_RRF_K = 60


def merge_duplicates(candidates: Iterable[SearchCandidate]) -> list[SearchCandidate]:
    """Collapse candidates sharing a chunk id, keeping the best score of each kind."""

    merged: dict[str, SearchCandidate] = {}
    for candidate in candidates:
        existing = merged.get(candidate.chunk.id)
        if existing is None:
            merged[candidate.chunk.id] = SearchCandidate(
                chunk=candidate.chunk,
                dense_score=candidate.dense_score,
                lexical_score=candidate.lexical_score,
            )
            continue
        existing.dense_score = max(existing.dense_score, candidate.dense_score)
        existing.lexical_score = max(existing.lexical_score, candidate.lexical_score)
    return list(merged.values())


def fuse_with_scores(
    candidates: Iterable[SearchCandidate],
    *,
    k: int = DEFAULT_RRF_K,
    limit: int = 5,
) -> list[tuple[Chunk, float]]:
    """Rank candidates by summed ``1 / (k + rank + 1)`` over both rankings.

    A zero score means the chunk is absent from that ranking and contributes
    nothing for it. Sorts are stable, so ties keep encounter order.
    """

    unique = merge_duplicates(candidates)
    dense_ranked = sorted(
        (c for c in unique if c.dense_score > 0), key=lambda c: c.dense_score, reverse=True
    )
    lexical_ranked = sorted(
        (c for c in unique if c.lexical_score > 0), key=lambda c: c.lexical_score, reverse=True
    )

    scores: dict[str, float] = {c.chunk.id: 0.0 for c in unique}
    for ranking in (dense_ranked, lexical_ranked):
        for rank, candidate in enumerate(ranking):
            scores[candidate.chunk.id] += 1.0 / (k + rank + 1)

    chunks = {c.chunk.id: c.chunk for c in unique}
    ordered = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [(chunks[chunk_id], score) for chunk_id, score in ordered[:limit]]


def fuse(
    candidates: Iterable[SearchCandidate],
    *,
    k: int = DEFAULT_RRF_K,
    limit: int = 5,
) -> list[Chunk]:
    return [chunk for chunk, _ in fuse_with_scores(candidates, k=k, limit=limit)]


__all__ = ["DEFAULT_RRF_K", "fuse", "fuse_with_scores", "merge_duplicates"]
