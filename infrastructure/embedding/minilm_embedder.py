"""Lightweight embedder that simulates MiniLM embeddings."""
from __future__ import annotations

import hashlib
import math
import re
from typing import Sequence

from domain.entities import Query
from domain.interfaces import Embedder

_TOKEN = re.compile(r"\w+")


class MiniLMEmbedder(Embedder):
    """Deterministic hash-based embedder useful for demos/tests.

    Every token is hashed into a bucket and the bag of buckets is L2-normalised,
    so texts sharing words land close together without any model download.
    """

    def __init__(self, dimension: int = 384) -> None:
        self._dimension = dimension
        self._model_id = f"hash-minilm-{dimension}"

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dimension(self) -> int:
        return self._dimension

    def _hash(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimension
            vector[bucket] += 1.0 if digest[4] % 2 == 0 else -1.0
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return [value / norm for value in vector]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._hash(text) for text in texts]

    def embed_query(self, query: Query) -> list[float]:
        return self._hash(query.text)


__all__ = ["MiniLMEmbedder"]
