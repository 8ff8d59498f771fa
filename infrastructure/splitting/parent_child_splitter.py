"""Chunk splitter producing large parent windows and small child windows inside each."""
from __future__ import annotations

from domain.entities import Chunk
from domain.interfaces import ChunkSplitter


def sliding_windows(text: str, size: int, overlap: int) -> list[tuple[int, str]]:
    """Return ``(start, fragment)`` windows of ``size`` characters overlapping by ``overlap``."""

    if size <= 0 or not 0 <= overlap < size:
        raise ValueError("window size must be positive and larger than the overlap")
    stride = size - overlap
    windows: list[tuple[int, str]] = []
    for start in range(0, len(text), stride):
        fragment = text[start : start + size].strip()
        if fragment:
            windows.append((start, fragment))
        if start + size >= len(text):
            break
    return windows


class ParentChildSplitter(ChunkSplitter):
    """Split a source into parents (context) and children (matching units)."""

    def __init__(
        self,
        parent_size: int = 1000,
        parent_overlap: int = 200,
        child_size: int = 250,
        child_overlap: int = 50,
    ) -> None:
        self.parent_size = parent_size
        self.parent_overlap = parent_overlap
        self.child_size = child_size
        self.child_overlap = child_overlap

    def split(self, chunk: Chunk) -> tuple[list[Chunk], list[Chunk]]:
        parents: list[Chunk] = []
        children: list[Chunk] = []
        for parent_index, (start, parent_text) in enumerate(
            sliding_windows(chunk.content, self.parent_size, self.parent_overlap)
        ):
            parent = Chunk(
                id=f"{chunk.source_file}_parent_{parent_index}",
                content=parent_text,
                source_file=chunk.source_file,
                corpus_type=chunk.corpus_type,
                chunk_index=parent_index,
                client_scope=chunk.client_scope,
                metadata={**chunk.metadata, "start": start},
            )
            parents.append(parent)
            for child_index, (child_start, child_text) in enumerate(
                sliding_windows(parent_text, self.child_size, self.child_overlap)
            ):
                children.append(
                    Chunk(
                        id=f"{parent.id}_child_{child_index}",
                        content=child_text,
                        source_file=chunk.source_file,
                        corpus_type=chunk.corpus_type,
                        chunk_index=child_index,
                        client_scope=chunk.client_scope,
                        parent_id=parent.id,
                        metadata={**chunk.metadata, "start": start + child_start},
                    )
                )
        return parents, children


__all__ = ["ParentChildSplitter", "sliding_windows"]
