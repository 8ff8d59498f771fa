"""Dense chunk embedder backed by a local sentence-transformers model."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sentence_transformers import SentenceTransformer

from domain.entities import Query
from domain.interfaces import Embedder

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SentenceTransformersConfig:
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"
    normalize_embeddings: bool = True
    batch_size: int = 32
    log_every: int = 10
    query_prefix: str | None = None
    passage_prefix: str | None = None


class SentenceTransformersEmbedder(Embedder):
    """Embeds chunk texts batch by batch, logging progress over large ingests.

    The model is loaded at construction because vector stores are sized from
    ``dimension``.
    """

    def __init__(self, config: SentenceTransformersConfig | None = None) -> None:
        self._config = config or SentenceTransformersConfig()
        logger.info("Loading sentence-transformers model %s on %s", self._config.model_name, self._config.device)
        self._model = SentenceTransformer(self._config.model_name, device=self._config.device)
        self._dimension = int(self._model.get_sentence_embedding_dimension())

    @property
    def model_id(self) -> str:
        return self._config.model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    def _encode(self, texts: list[str]) -> list[list[float]]:
        embeddings = self._model.encode(
            texts,
            batch_size=self._config.batch_size,
            normalize_embeddings=self._config.normalize_embeddings,
            show_progress_bar=False,
        )
        vectors = [[float(value) for value in row] for row in embeddings]
        if any(len(vector) != self._dimension for vector in vectors):
            raise ValueError(f"{self.model_id} returned vectors that are not {self._dimension}-dimensional.")
        return vectors

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        prefix = self._config.passage_prefix or ""
        size = max(self._config.batch_size, 1)
        total_batches = (len(texts) + size - 1) // size
        vectors: list[list[float]] = []
        for number, start in enumerate(range(0, len(texts), size), start=1):
            vectors.extend(self._encode([f"{prefix}{text}" for text in texts[start : start + size]]))
            if number % self._config.log_every == 0 or number == total_batches:
                logger.info("Embedded %d/%d chunks with %s", len(vectors), len(texts), self.model_id)
        return vectors

    def embed_query(self, query: Query) -> list[float]:
        prefix = self._config.query_prefix or ""
        return self._encode([f"{prefix}{query.text}"])[0]


__all__ = ["SentenceTransformersConfig", "SentenceTransformersEmbedder"]
