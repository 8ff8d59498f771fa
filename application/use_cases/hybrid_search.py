"""Use case that runs dense + lexical search against one corpus and unions the results."""
from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Sequence

from application.services.bm25_index import LexicalIndex
from application.services.sparse_embeddings import SparseEmbeddingGenerator
from domain.entities import Chunk, CorpusType, Query, SearchCandidate, SparseVector, VectorMatch
from domain.errors import MissingClientScopeError, ResourceNotInitializedError
from domain.interfaces import Embedder, VectorStore

logger = logging.getLogger(__name__)

SCORE_FLOOR = 0.001


def normalize_scores(matches: Sequence[VectorMatch]) -> dict[str, tuple[Chunk, float]]:
    """Scale scores into [0, 1] by the list maximum; negative scores clamp to 0."""

    if not matches:
        return {}
    maximum = max(max(match.score for match in matches), SCORE_FLOOR)
    normalized: dict[str, tuple[Chunk, float]] = {}
    for match in matches:
        score = max(match.score, 0.0) / maximum
        previous = normalized.get(match.chunk.id)
        if previous is None or score > previous[1]:
            normalized[match.chunk.id] = (match.chunk, score)
    return normalized


class HybridSearchExecutor:
    """Issues the dense and lexical searches for one corpus and merges them into candidates.

    Final ranking is left to fusion: document and transcript candidates from the
    same attempt are fused together downstream.
    """

    def __init__(
        self,
        *,
        embedder: Embedder,
        vector_stores: Mapping[CorpusType, VectorStore],
        lexical_index: LexicalIndex,
        sparse_generators: Mapping[CorpusType, SparseEmbeddingGenerator],
        top_k: int = 10,
    ) -> None:
        self._embedder = embedder
        self._vector_stores = dict(vector_stores)
        self._lexical_index = lexical_index
        self._sparse_generators = dict(sparse_generators)
        self.top_k = top_k

    async def embed_query(self, query: str) -> list[float]:
        return await asyncio.to_thread(self._embedder.embed_query, Query(text=query))

    async def search(
        self,
        query: str,
        corpus_type: CorpusType,
        client_scope: int | None = None,
        top_k: int | None = None,
        query_embedding: Sequence[float] | None = None,
    ) -> list[SearchCandidate]:
        limit = top_k or self.top_k
        store = self._vector_stores.get(corpus_type)
        if store is None:
            raise ResourceNotInitializedError(f"No vector store configured for {corpus_type.value} corpus.")
        generator = self._sparse_generators.get(corpus_type)
        if generator is None or not generator.is_built:
            raise ResourceNotInitializedError(f"Sparse vocabulary for {corpus_type.value} corpus is not built.")

        scoped = corpus_type is CorpusType.TRANSCRIPT
        if scoped and client_scope is None:
            raise MissingClientScopeError("Transcript search requires a client scope.")
        filter = {"client_scope": client_scope} if scoped else None

        embedding = list(query_embedding) if query_embedding is not None else await self.embed_query(query)
        sparse_vector = generator.embed(query)
        restrict_to = None
        if scoped:
            restrict_to = [
                chunk
                for chunk in self._lexical_index.chunks(corpus_type.value)
                if chunk.client_scope == client_scope
            ]

        dense_matches, sparse_matches, bm25_matches = await asyncio.gather(
            asyncio.to_thread(store.query, embedding, limit, filter),
            self._query_sparse(store, sparse_vector, limit, filter),
            asyncio.to_thread(self._lexical_index.search, query, corpus_type.value, limit, restrict_to),
        )
        logger.info(
            "Hybrid search [%s, client=%s]: dense=%d sparse=%d bm25=%d",
            corpus_type.value,
            client_scope if scoped else "-",
            len(dense_matches),
            len(sparse_matches),
            len(bm25_matches),
        )

        dense = normalize_scores(dense_matches)
        lexical = normalize_scores(bm25_matches)
        for chunk_id, (chunk, score) in normalize_scores(sparse_matches).items():
            if chunk_id not in lexical or score > lexical[chunk_id][1]:
                lexical[chunk_id] = (chunk, score)

        candidates: dict[str, SearchCandidate] = {}
        for chunk_id, (chunk, score) in dense.items():
            candidates[chunk_id] = SearchCandidate(chunk=chunk, dense_score=score)
        for chunk_id, (chunk, score) in lexical.items():
            candidate = candidates.setdefault(chunk_id, SearchCandidate(chunk=chunk))
            candidate.lexical_score = score

        return [
            candidate
            for candidate in candidates.values()
            if self._in_scope(candidate.chunk, corpus_type, client_scope if scoped else None)
        ]

    async def _query_sparse(
        self,
        store: VectorStore,
        sparse_vector: SparseVector,
        limit: int,
        filter: Mapping[str, int] | None,
    ) -> list[VectorMatch]:
        if sparse_vector.is_empty:
            logger.debug("Empty sparse vector; skipping sparse query")
            return []
        return await asyncio.to_thread(store.query_sparse, sparse_vector, limit, filter)

    @staticmethod
    def _in_scope(chunk: Chunk, corpus_type: CorpusType, client_scope: int | None) -> bool:
        if chunk.corpus_type is not corpus_type:
            logger.warning("Dropping chunk %s from the wrong corpus", chunk.id)
            return False
        if client_scope is not None and chunk.client_scope != client_scope:
            logger.warning("Dropping chunk %s outside client scope %s", chunk.id, client_scope)
            return False
        return True


__all__ = ["HybridSearchExecutor", "normalize_scores", "SCORE_FLOOR"]
