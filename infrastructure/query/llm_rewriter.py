"""LLM-powered query reformulation for retries."""
from __future__ import annotations

import logging
import re

from domain.entities import Query
from domain.interfaces import LanguageModel, QueryRewriter

logger = logging.getLogger(__name__)

_PROMPT = """The following query did not retrieve relevant results from a knowledge base that \
contains agency procedures and client meeting transcripts.

Original query: {query}
This is retry attempt {attempt}.

Rewrite the query so it is more likely to match the stored content:
- use more specific or alternative terminology
- keep the original intent
- reply with the rewritten query only

Rewritten query:"""

_LABEL = re.compile(r"^(rewritten|reformulated|new)?\s*query\s*:\s*", re.IGNORECASE)


class LLMQueryRewriter(QueryRewriter):
    """Ask the language model for one alternative phrasing of a query.

    Errors propagate; the orchestrator falls back to the original query.
    """

    def __init__(self, language_model: LanguageModel, max_query_length: int = 256) -> None:
        self._language_model = language_model
        self.max_query_length = max_query_length

    def rewrite(self, query: Query, attempt: int) -> Query:
        raw = self._language_model.complete(_PROMPT.format(query=query.text, attempt=attempt))
        text = self._clean(raw)
        if not text:
            logger.warning("Empty reformulation; keeping %r", query.text)
            return query
        return Query(text=text, metadata={**query.metadata, "rewritten_from": query.text, "attempt": attempt})

    def _clean(self, raw: str) -> str:
        lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
        if not lines:
            return ""
        text = _LABEL.sub("", lines[0]).strip(" \"'`-\t")
        return text[: self.max_query_length]


__all__ = ["LLMQueryRewriter"]
