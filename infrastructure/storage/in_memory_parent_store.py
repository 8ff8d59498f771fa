"""Parent store kept in process memory."""
from __future__ import annotations

from typing import Sequence

from domain.entities import Chunk
from domain.interfaces import ParentStore


class InMemoryParentStore(ParentStore):
    """Resolves a parent by its id or by the content of any of its children."""

    def __init__(self) -> None:
        self._parents: dict[str, Chunk] = {}
        self._by_child_content: dict[str, str] = {}

    def add(self, parent: Chunk, children: Sequence[Chunk]) -> None:
        self._parents[parent.id] = parent
        for child in children:
            self._by_child_content[child.content] = parent.id

    def get(self, lookup_key: str) -> Chunk | None:
        parent = self._parents.get(lookup_key)
        if parent is not None:
            return parent
        parent_id = self._by_child_content.get(lookup_key)
        if parent_id is None:
            return None
        return self._parents.get(parent_id)

    def __len__(self) -> int:
        return len(self._parents)


__all__ = ["InMemoryParentStore"]
