"""Embedder calling the OpenAI embeddings endpoint over HTTP."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Sequence

import requests

from domain.entities import Query
from domain.interfaces import Embedder

logger = logging.getLogger(__name__)

_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


@dataclass(slots=True)
class OpenAIEmbedderConfig:
    model: str = "text-embedding-3-small"
    api_key: str | None = None
    url: str = "https://api.openai.com/v1/embeddings"
    batch_size: int = 64
    timeout: float = 60.0


class OpenAIEmbedder(Embedder):
    def __init__(self, config: OpenAIEmbedderConfig | None = None) -> None:
        self._config = config or OpenAIEmbedderConfig()
        if self._config.model not in _DIMENSIONS:
            raise ValueError(f"Unknown OpenAI embedding model '{self._config.model}'")

    @property
    def model_id(self) -> str:
        return self._config.model

    @property
    def dimension(self) -> int:
        return _DIMENSIONS[self._config.model]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._config.batch_size):
            batch = list(texts[start : start + self._config.batch_size])
            vectors.extend(self._request(batch))
        return vectors

    def embed_query(self, query: Query) -> list[float]:
        return self._request([query.text])[0]

    def _request(self, texts: list[str]) -> list[list[float]]:
        api_key = self._config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("Missing OpenAI API key.")
        logger.debug("Requesting %d embeddings from %s", len(texts), self._config.model)
        response = requests.post(
            self._config.url,
            headers={"Authorization": f"Bearer {api_key}"},
            json={"model": self._config.model, "input": texts},
            timeout=self._config.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        items = sorted(payload["data"], key=lambda item: item["index"])
        return [list(item["embedding"]) for item in items]


__all__ = ["OpenAIEmbedder", "OpenAIEmbedderConfig"]
