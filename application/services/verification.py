"""Relevance gate that asks a language model whether the context can answer the query."""
from __future__ import annotations

import logging
import re
from typing import Sequence

from domain.entities import Chunk
from domain.interfaces import LanguageModel

logger = logging.getLogger(__name__)

_PROMPT = """You are a strict relevance verification system.

Context:
{context}

Question: {query}

Can this context answer the question, even partially?
Respond with exactly one word: YES or NO.

Response:"""

_WORD = re.compile(r"[A-Za-z]+")


def parse_verdict(raw: str) -> bool | None:
    """Return True for YES, False for NO, ``None`` for anything else.

    The first YES or NO word decides, so echoed labels such as ``Response: YES``
    still parse.
    """

    for word in _WORD.findall(raw):
        verdict = word.upper()
        if verdict == "YES":
            return True
        if verdict == "NO":
            return False
    return None


class RelevanceVerifier:
    """Boolean relevance check over the top expanded chunks.

    ``default_on_error`` is what the gate resolves to when the model call fails
    or its answer cannot be parsed: ``False`` for the strict policy, ``True``
    for the lenient one.
    """

    def __init__(
        self,
        language_model: LanguageModel,
        *,
        default_on_error: bool = False,
        max_chunks: int = 3,
        preview_chars: int = 500,
    ) -> None:
        self._language_model = language_model
        self.default_on_error = default_on_error
        self.max_chunks = max_chunks
        self.preview_chars = preview_chars

    def verify(self, chunks: Sequence[Chunk], query: str) -> bool:
        if not chunks:
            return False

        context = "\n\n".join(chunk.content[: self.preview_chars] for chunk in chunks[: self.max_chunks])
        try:
            raw = self._language_model.complete(_PROMPT.format(context=context, query=query))
        except Exception:
            logger.exception("Verification call failed; resolving to %s", self.default_on_error)
            return self.default_on_error

        verdict = parse_verdict(raw)
        if verdict is None:
            logger.warning("Unparseable verification response %r; resolving to %s", raw[:100], self.default_on_error)
            return self.default_on_error
        logger.info("Verification for %r: %s", query, "relevant" if verdict else "not relevant")
        return verdict


__all__ = ["RelevanceVerifier", "parse_verdict"]
