"""Abstract collaborator interfaces for the agency RAG system."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from domain.entities import Chunk, Query, SparseVector, VectorMatch


class ChunkSplitter(ABC):
    """Splits a source text into parent windows and the child chunks used for matching."""

    @abstractmethod
    def split(self, chunk: Chunk) -> tuple[list[Chunk], list[Chunk]]:
        """Return ``(parents, children)`` for a whole-source chunk."""


class Embedder(ABC):
    """Turns text (chunks or queries) into dense vector embeddings."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Return the stable identifier for this embedding model."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension for this model."""

    @abstractmethod
    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed an iterable of texts into dense vectors."""

    @abstractmethod
    def embed_query(self, query: Query) -> list[float]:
        """Embed a user query for retrieval."""


class VectorStore(ABC):
    """Stores dense (and optionally sparse) vectors per chunk and answers similarity queries.

    ``filter`` is a mapping of chunk attribute name to required value, e.g.
    ``{"client_scope": 1}``.
    """

    @abstractmethod
    def upsert(
        self,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
        sparse_embeddings: Sequence[SparseVector] | None = None,
    ) -> None:
        """Insert or replace vectors for the provided chunks."""

    @abstractmethod
    def query(
        self,
        embedding: Sequence[float],
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return the best dense matches, highest score first."""

    @abstractmethod
    def query_sparse(
        self,
        sparse_embedding: SparseVector,
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return the best sparse (dot product) matches, highest score first."""

    @abstractmethod
    def count(self) -> int:
        """Return how many chunks are stored."""


class ParentStore(ABC):
    """Holds parent chunks so matched children can be expanded to their full context."""

    @abstractmethod
    def add(self, parent: Chunk, children: Sequence[Chunk]) -> None:
        """Register a parent together with the children split from it."""

    @abstractmethod
    def get(self, lookup_key: str) -> Chunk | None:
        """Return the parent for a lookup key, or ``None``."""


class LanguageModel(ABC):
    """Text completion provider used for classification, verification, rewriting and answers."""

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Return the model completion for a prompt."""


class QueryRewriter(ABC):
    """Reformulates a query that did not retrieve relevant context."""

    @abstractmethod
    def rewrite(self, query: Query, attempt: int) -> Query:
        """Return a reformulated query for the given attempt number."""


def matches_filter(chunk: Chunk, filter: Mapping[str, Any] | None) -> bool:
    """Return True when every filter key equals the chunk attribute (or metadata value)."""

    if not filter:
        return True
    for key, expected in filter.items():
        if hasattr(chunk, key):
            actual = getattr(chunk, key)
        else:
            actual = chunk.metadata.get(key)
        if actual != expected:
            return False
    return True


__all__ = [
    "ChunkSplitter",
    "Embedder",
    "VectorStore",
    "ParentStore",
    "LanguageModel",
    "QueryRewriter",
    "matches_filter",
]
