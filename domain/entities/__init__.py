"""Domain entities for the agency RAG system."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CorpusType(str, Enum):
    """Knowledge base a chunk belongs to."""

    DOCUMENT = "document"
    TRANSCRIPT = "transcript"


class QueryType(str, Enum):
    """Which knowledge the intent classifier decided a query needs."""

    DOCUMENT = "document"
    TRANSCRIPT = "transcript"
    MIXED = "mixed"


@dataclass(slots=True, frozen=True)
class Chunk:
    """The atomic retrievable unit.

    Transcript chunks always carry the client they belong to; document chunks
    are global and never carry a client scope.
    """

    id: str
    content: str
    source_file: str
    corpus_type: CorpusType
    chunk_index: int = 0
    client_scope: int | None = None
    parent_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.corpus_type is CorpusType.TRANSCRIPT and self.client_scope is None:
            raise ValueError(f"Transcript chunk '{self.id}' requires a client scope.")
        if self.corpus_type is CorpusType.DOCUMENT and self.client_scope is not None:
            raise ValueError(f"Document chunk '{self.id}' must not carry a client scope.")

    @property
    def is_child(self) -> bool:
        return self.parent_id is not None


@dataclass(slots=True)
class Query:
    """A user query issued to the system."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class SparseVector:
    """Sparse term-weight vector: parallel lists of vocabulary indices and weights."""

    indices: list[int] = field(default_factory=list)
    weights: list[float] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.indices


@dataclass(slots=True)
class SparseVocabulary:
    """Term -> (vocabulary index, document frequency) plus the corpus size."""

    terms: dict[str, tuple[int, int]] = field(default_factory=dict)
    total_documents: int = 0

    def __len__(self) -> int:
        return len(self.terms)


@dataclass(slots=True)
class VectorMatch:
    """A scored chunk returned by a vector store or the lexical index."""

    chunk: Chunk
    score: float


@dataclass(slots=True)
class SearchCandidate:
    """Per-query candidate carrying both the dense and the lexical score."""

    chunk: Chunk
    dense_score: float = 0.0
    lexical_score: float = 0.0


@dataclass(slots=True, frozen=True)
class IntentAnalysis:
    needs_documents: bool
    needs_transcripts: bool
    confidence: float
    query_type: QueryType


@dataclass(slots=True)
class RetrievalAttempt:
    """Loop state of the orchestrator; only ``query`` changes between attempts."""

    query: str
    attempt: int = 1
    max_attempts: int = 3

    @property
    def is_final(self) -> bool:
        return self.attempt >= self.max_attempts


@dataclass(slots=True, frozen=True)
class SourceRef:
    type: str
    id: str
    score: float


@dataclass(slots=True)
class RetrievalResult:
    """Output contract of the retrieval pipeline."""

    content: str
    sources: list[SourceRef] = field(default_factory=list)
    confidence: float = 0.0
    strategy: str = "failed"
    attempts: int = 0

    @classmethod
    def empty(cls, strategy: str, attempts: int = 0) -> "RetrievalResult":
        return cls(content="", sources=[], confidence=0.0, strategy=strategy, attempts=attempts)


__all__ = [
    "CorpusType",
    "QueryType",
    "Chunk",
    "Query",
    "SparseVector",
    "SparseVocabulary",
    "VectorMatch",
    "SearchCandidate",
    "IntentAnalysis",
    "RetrievalAttempt",
    "SourceRef",
    "RetrievalResult",
]
