"""FAISS-based vector store with selector-restricted filtered search."""
from __future__ import annotations

import heapq
import logging
from typing import Any, Mapping, Sequence

import faiss
import numpy as np

from domain.entities import Chunk, SparseVector, VectorMatch
from domain.interfaces import VectorStore, matches_filter
from infrastructure.storage.in_memory_vector_store import sparse_dot

logger = logging.getLogger(__name__)


class FaissVectorStore(VectorStore):
    """Dense vectors live in an ``IndexIDMap2(IndexFlatIP)``; chunks and sparse vectors in dicts.

    Metadata filters resolve to the matching internal ids, which are handed to
    FAISS as an ``IDSelectorBatch`` so the search ranks only that subset.
    """

    def __init__(self, dimension: int, *, normalize_embeddings: bool = True) -> None:
        self.dimension = dimension
        self._normalize_embeddings = normalize_embeddings
        self._index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self._ids: dict[str, int] = {}
        self._chunks: dict[int, Chunk] = {}
        self._sparse: dict[int, dict[int, float]] = {}
        self._next_id = 0

    def upsert(
        self,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
        sparse_embeddings: Sequence[SparseVector] | None = None,
    ) -> None:
        if not chunks:
            return
        if len(chunks) != len(embeddings):
            raise ValueError("Number of chunks and embeddings must match.")
        if any(len(vector) != self.dimension for vector in embeddings):
            raise ValueError("Embedding dimension does not match FAISS index.")

        replaced = [self._ids[chunk.id] for chunk in chunks if chunk.id in self._ids]
        if replaced:
            self._index.remove_ids(np.array(replaced, dtype="int64"))

        vectors = np.array(embeddings, dtype="float32")
        if self._normalize_embeddings:
            faiss.normalize_L2(vectors)

        ids: list[int] = []
        for position, chunk in enumerate(chunks):
            internal_id = self._ids.get(chunk.id)
            if internal_id is None:
                internal_id = self._next_id
                self._next_id += 1
                self._ids[chunk.id] = internal_id
            self._chunks[internal_id] = chunk
            if sparse_embeddings is not None:
                sparse = sparse_embeddings[position]
                self._sparse[internal_id] = dict(zip(sparse.indices, sparse.weights))
            ids.append(internal_id)

        self._index.add_with_ids(vectors, np.array(ids, dtype="int64"))
        logger.debug("FAISS index now holds %d vectors", self._index.ntotal)

    def query(
        self,
        embedding: Sequence[float],
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        if self._index.ntotal == 0:
            return []
        vector = np.array([embedding], dtype="float32")
        if self._normalize_embeddings:
            faiss.normalize_L2(vector)

        params = None
        candidates = self._index.ntotal
        if filter:
            allowed = np.array(
                [internal_id for internal_id, chunk in self._chunks.items() if matches_filter(chunk, filter)],
                dtype="int64",
            )
            if allowed.size == 0:
                return []
            selector = faiss.IDSelectorBatch(allowed.size, faiss.swig_ptr(allowed))
            params = faiss.SearchParameters(sel=selector)
            candidates = int(allowed.size)
        scores, ids = self._index.search(vector, min(top_k, candidates), params=params)

        results: list[VectorMatch] = []
        for score, internal_id in zip(scores[0], ids[0]):
            if internal_id < 0:
                continue
            chunk = self._chunks.get(int(internal_id))
            if chunk is None or not matches_filter(chunk, filter):
                continue
            results.append(VectorMatch(chunk=chunk, score=float(score)))
        return results

    def query_sparse(
        self,
        sparse_embedding: SparseVector,
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        if sparse_embedding.is_empty:
            return []
        scored: list[tuple[float, int]] = []
        for internal_id, stored in self._sparse.items():
            chunk = self._chunks[internal_id]
            if not matches_filter(chunk, filter):
                continue
            score = sparse_dot(sparse_embedding, stored)
            if score > 0:
                scored.append((score, internal_id))
        best = heapq.nlargest(top_k, scored, key=lambda item: item[0])
        return [VectorMatch(chunk=self._chunks[internal_id], score=score) for score, internal_id in best]

    def count(self) -> int:
        return len(self._chunks)


__all__ = ["FaissVectorStore"]
