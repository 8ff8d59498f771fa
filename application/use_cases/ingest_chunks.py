"""Use case that loads parent/child chunks into every store the retrieval pipeline reads."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from application.services.bm25_index import LexicalIndex
from application.services.sparse_embeddings import SparseEmbeddingGenerator
from domain.entities import Chunk, CorpusType
from domain.errors import ResourceNotInitializedError
from domain.interfaces import ChunkSplitter, Embedder, ParentStore, VectorStore

logger = logging.getLogger(__name__)

_DATE_SUFFIX = re.compile(r"(\d{2})-(\d{2})$")


@dataclass(slots=True)
class SourceText:
    """Already-extracted text of one source file."""

    file_name: str
    text: str
    corpus_type: CorpusType
    client_scope: int | None = None


@dataclass(slots=True)
class IngestReport:
    sources: int = 0
    parents: dict[str, int] = field(default_factory=dict)
    children: dict[str, int] = field(default_factory=dict)
    vocabulary_sizes: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def transcript_metadata(file_name: str, clients: Mapping[str, int]) -> dict[str, object]:
    """Derive the client scope and ``MM-DD`` date from a ``{name}-{MM}-{DD}.ext`` file name."""

    stem = Path(file_name).stem.lower()
    metadata: dict[str, object] = {"client_scope": None, "date": None}
    for name, scope in clients.items():
        if name.lower() in stem:
            metadata["client_scope"] = scope
            metadata["client_name"] = name
            break
    match = _DATE_SUFFIX.search(stem)
    if match:
        metadata["date"] = f"{match.group(1)}-{match.group(2)}"
    return metadata


def ingest_sources(
    sources: Iterable[SourceText],
    *,
    splitter: ChunkSplitter,
    embedder: Embedder,
    vector_stores: Mapping[CorpusType, VectorStore],
    lexical_index: LexicalIndex,
    sparse_generators: Mapping[CorpusType, SparseEmbeddingGenerator],
    parent_store: ParentStore,
    clients: Mapping[str, int] | None = None,
) -> IngestReport:
    """Split source texts into parents/children and ingest them, one full corpus at a time."""

    parents: list[Chunk] = []
    children: list[Chunk] = []
    skipped: list[str] = []
    count = 0
    for source in sources:
        count += 1
        metadata: dict[str, object] = {}
        scope = source.client_scope
        if source.corpus_type is CorpusType.TRANSCRIPT:
            metadata = transcript_metadata(source.file_name, clients or {})
            scope = scope if scope is not None else metadata.get("client_scope")  # type: ignore[assignment]
            if scope is None:
                logger.warning("Skipping transcript %s: no client could be determined", source.file_name)
                skipped.append(source.file_name)
                continue
        whole = Chunk(
            id=source.file_name,
            content=source.text,
            source_file=source.file_name,
            corpus_type=source.corpus_type,
            client_scope=scope if source.corpus_type is CorpusType.TRANSCRIPT else None,
            metadata={key: value for key, value in metadata.items() if value is not None},
        )
        source_parents, source_children = splitter.split(whole)
        parents.extend(source_parents)
        children.extend(source_children)

    report = ingest_chunks(
        parents,
        children,
        embedder=embedder,
        vector_stores=vector_stores,
        lexical_index=lexical_index,
        sparse_generators=sparse_generators,
        parent_store=parent_store,
    )
    report.sources = count
    report.skipped = skipped
    return report


def ingest_chunks(
    parents: Sequence[Chunk],
    children: Sequence[Chunk],
    *,
    embedder: Embedder,
    vector_stores: Mapping[CorpusType, VectorStore],
    lexical_index: LexicalIndex,
    sparse_generators: Mapping[CorpusType, SparseEmbeddingGenerator],
    parent_store: ParentStore,
) -> IngestReport:
    """Build vocabulary, vectors, BM25 index and parent mapping for each corpus.

    Ingestion is cumulative: new children are merged with the chunks already
    indexed for their corpus (same id replaces), and the vocabulary, sparse
    vectors and BM25 index are rebuilt over the merged corpus.
    """

    report = IngestReport()
    children_by_parent: dict[str, list[Chunk]] = {}
    for child in children:
        if child.parent_id is not None:
            children_by_parent.setdefault(child.parent_id, []).append(child)
    for parent in parents:
        parent_store.add(parent, children_by_parent.get(parent.id, []))

    for corpus_type in CorpusType:
        new_children = {chunk.id: chunk for chunk in children if chunk.corpus_type is corpus_type}
        corpus_parents = [chunk for chunk in parents if chunk.corpus_type is corpus_type]
        store = vector_stores.get(corpus_type)
        generator = sparse_generators.get(corpus_type)
        if store is None or generator is None:
            raise ResourceNotInitializedError(f"No stores configured for {corpus_type.value} corpus.")
        if not new_children and generator.is_built:
            continue
        # A corpus without content is still initialised so searches over it return no hits.
        existing = [chunk for chunk in lexical_index.chunks(corpus_type.value) if chunk.id not in new_children]
        corpus_children = existing + list(new_children.values())

        texts = [chunk.content for chunk in corpus_children]
        generator.build_vocabulary(texts)
        sparse_embeddings = [generator.embed(text) for text in texts]
        embeddings = embedder.embed_texts(texts)
        store.upsert(corpus_children, embeddings, sparse_embeddings)
        lexical_index.build(corpus_type.value, corpus_children)

        report.parents[corpus_type.value] = len(corpus_parents)
        report.children[corpus_type.value] = len(corpus_children)
        report.vocabulary_sizes[corpus_type.value] = generator.vocabulary_size
        logger.info(
            "Ingested %s corpus: %d parents, %d children, %d vocabulary terms",
            corpus_type.value,
            len(corpus_parents),
            len(corpus_children),
            generator.vocabulary_size,
        )
    return report


__all__ = ["IngestReport", "SourceText", "ingest_chunks", "ingest_sources", "transcript_metadata"]
