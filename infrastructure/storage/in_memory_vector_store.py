"""In-memory vector store for demos and tests."""
from __future__ import annotations

import heapq
from typing import Any, Mapping, Sequence

import numpy as np

from domain.entities import Chunk, SparseVector, VectorMatch
from domain.interfaces import VectorStore, matches_filter


def sparse_dot(query: SparseVector, document: Mapping[int, float]) -> float:
    """Dot product of a query sparse vector with a stored ``index -> weight`` mapping."""

    return sum(weight * document.get(index, 0.0) for index, weight in zip(query.indices, query.weights))


class InMemoryVectorStore(VectorStore):
    """Keeps vectors in numpy arrays and answers queries by brute force."""

    def __init__(self) -> None:
        self._chunks: dict[str, Chunk] = {}
        self._dense: dict[str, np.ndarray] = {}
        self._sparse: dict[str, dict[int, float]] = {}

    def upsert(
        self,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
        sparse_embeddings: Sequence[SparseVector] | None = None,
    ) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError("Number of chunks and embeddings must match.")
        if sparse_embeddings is not None and len(sparse_embeddings) != len(chunks):
            raise ValueError("Number of chunks and sparse embeddings must match.")
        for position, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
            self._chunks[chunk.id] = chunk
            self._dense[chunk.id] = self._normalize(np.asarray(embedding, dtype="float32"))
            if sparse_embeddings is not None:
                sparse = sparse_embeddings[position]
                self._sparse[chunk.id] = dict(zip(sparse.indices, sparse.weights))

    def query(
        self,
        embedding: Sequence[float],
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        if not self._dense:
            return []
        vector = self._normalize(np.asarray(embedding, dtype="float32"))
        scored: list[tuple[float, str]] = []
        for chunk_id, stored in self._dense.items():
            if not matches_filter(self._chunks[chunk_id], filter):
                continue
            scored.append((float(np.dot(vector, stored)), chunk_id))
        best = heapq.nlargest(top_k, scored, key=lambda item: item[0])
        return [VectorMatch(chunk=self._chunks[chunk_id], score=score) for score, chunk_id in best]

    def query_sparse(
        self,
        sparse_embedding: SparseVector,
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        if sparse_embedding.is_empty:
            return []
        scored: list[tuple[float, str]] = []
        for chunk_id, stored in self._sparse.items():
            if not matches_filter(self._chunks[chunk_id], filter):
                continue
            score = sparse_dot(sparse_embedding, stored)
            if score > 0:
                scored.append((score, chunk_id))
        best = heapq.nlargest(top_k, scored, key=lambda item: item[0])
        return [VectorMatch(chunk=self._chunks[chunk_id], score=score) for score, chunk_id in best]

    def count(self) -> int:
        return len(self._chunks)

    @staticmethod
    def _normalize(vector: np.ndarray) -> np.ndarray:
        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            return vector
        return vector / norm


__all__ = ["InMemoryVectorStore", "sparse_dot"]
