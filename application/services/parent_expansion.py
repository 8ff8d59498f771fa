"""Swap matched child chunks for the parent chunk holding their full context."""
from __future__ import annotations

import logging
from typing import Iterable

from domain.entities import Chunk
from domain.interfaces import ParentStore

logger = logging.getLogger(__name__)


class ParentExpander:
    """Expands child chunks through a parent store; lookup failures degrade to the child."""

    def __init__(self, parent_store: ParentStore | None) -> None:
        self._parent_store = parent_store

    def expand(self, chunk: Chunk) -> Chunk:
        if chunk.parent_id is None or self._parent_store is None:
            return chunk
        try:
            parent = self._parent_store.get(chunk.content)
        except Exception:
            logger.exception("Parent lookup failed for chunk %s; using child content", chunk.id)
            return chunk
        if parent is None:
            logger.debug("No parent found for chunk %s", chunk.id)
            return chunk
        if parent.corpus_type is not chunk.corpus_type or parent.client_scope != chunk.client_scope:
            logger.warning(
                "Parent %s does not match the scope of child %s; using child content",
                parent.id,
                chunk.id,
            )
            return chunk
        return parent

    def expand_all(self, chunks: Iterable[Chunk]) -> list[Chunk]:
        """Expand chunks in order, keeping the first occurrence of each parent."""

        expanded: list[Chunk] = []
        seen: set[str] = set()
        for chunk in chunks:
            result = self.expand(chunk)
            if result.id in seen:
                continue
            seen.add(result.id)
            expanded.append(result)
        return expanded


__all__ = ["ParentExpander"]
