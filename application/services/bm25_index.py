"""BM25 lexical index kept per corpus, with ephemeral indexes for pre-filtered subsets."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Sequence

from rank_bm25 import BM25Plus

from domain.entities import Chunk, VectorMatch

logger = logging.getLogger(__name__)

_SPECIAL_CHARS = re.compile(r"[.*+?^${}()|\[\]\\]")
_QUOTES = re.compile(r"['\"]")
_WHITESPACE = re.compile(r"\s+")
_TOKEN = re.compile(r"\w+")


def sanitize_query(query: str) -> str:
    """Strip regex/lexical special characters and quotes and collapse whitespace."""

    text = _SPECIAL_CHARS.sub(" ", query)
    text = _QUOTES.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


@dataclass(slots=True)
class _State:
    index: BM25Plus | None
    chunks: list[Chunk]
    tokens: list[set[str]] = field(default_factory=list)


class LexicalIndex:
    """Keeps one BM25 index per corpus name; rebuilding a name replaces its index.

    Scoring uses BM25+, whose idf stays positive even when a term occurs in
    most of a corpus. Client subsets are often only one or two chunks, where
    Okapi idf collapses to zero or below.
    """

    def __init__(self) -> None:
        self._states: dict[str, _State] = {}

    def build(self, corpus_name: str, chunks: Sequence[Chunk]) -> None:
        self._states[corpus_name] = self._create_state(chunks)
        logger.info("BM25 index '%s' built over %d chunks", corpus_name, len(chunks))

    def has_index(self, corpus_name: str) -> bool:
        return corpus_name in self._states

    def chunks(self, corpus_name: str) -> list[Chunk]:
        state = self._states.get(corpus_name)
        return list(state.chunks) if state else []

    def search(
        self,
        query: str,
        corpus_name: str,
        top_k: int = 10,
        restrict_to: Sequence[Chunk] | None = None,
    ) -> list[VectorMatch]:
        if restrict_to is not None:
            state = self._create_state(restrict_to)
        else:
            state = self._states.get(corpus_name)
            if state is None:
                logger.warning("No BM25 index for corpus '%s'; lexical signal unavailable", corpus_name)
                return []

        if state.index is None:
            return []
        sanitized = sanitize_query(query)
        query_tokens = self._tokenize(sanitized)
        if not query_tokens:
            return []
        logger.debug("BM25 query %r sanitized to %r", query, sanitized)

        # BM25+ scores every document above zero; a hit must share a query term.
        terms = set(query_tokens)
        scores = state.index.get_scores(query_tokens)
        ranked = sorted(
            (
                VectorMatch(chunk=chunk, score=float(score))
                for chunk, score, tokens in zip(state.chunks, scores, state.tokens)
                if score > 0 and not terms.isdisjoint(tokens)
            ),
            key=lambda match: match.score,
            reverse=True,
        )
        return ranked[:top_k]

    def _create_state(self, chunks: Sequence[Chunk]) -> _State:
        corpus = [self._tokenize(chunk.content) for chunk in chunks]
        if not chunks or not any(corpus):
            return _State(index=None, chunks=list(chunks))
        return _State(index=BM25Plus(corpus), chunks=list(chunks), tokens=[set(tokens) for tokens in corpus])

    @staticmethod
    def _tokenize(text: str) -> list[str]:
        return _TOKEN.findall(text.lower())


__all__ = ["LexicalIndex", "sanitize_query"]
