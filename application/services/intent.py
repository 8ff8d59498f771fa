"""LLM-backed query intent classification with a strict parser and a broad default."""
from __future__ import annotations

import json
import logging
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.entities import IntentAnalysis, QueryType
from domain.interfaces import LanguageModel

logger = logging.getLogger(__name__)

DEFAULT_INTENT = IntentAnalysis(
    needs_documents=True,
    needs_transcripts=True,
    confidence=0.5,
    query_type=QueryType.MIXED,
)

_PROMPT = """Classify which knowledge base is needed to answer the query below.

Query: "{query}"

Knowledge bases:
- documents: agency policies, procedures, definitions and guidance
- transcripts: recorded conversations with the client

Rules:
- Questions only about what the client said, did or feels -> "transcript"
- Questions only about policy, procedure or definitions -> "document"
- Anything else, including whether a client's conversation complies with a policy -> "mixed"

Respond only with JSON of the form:
{{"needsDocuments": true, "needsTranscripts": false, "confidence": 0.9, "queryType": "document"}}
"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class _IntentPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    needs_documents: bool = Field(alias="needsDocuments")
    needs_transcripts: bool = Field(alias="needsTranscripts")
    confidence: float = Field(ge=0.0, le=1.0)
    query_type: QueryType = Field(alias="queryType")


def parse_intent(raw: str) -> IntentAnalysis | None:
    """Parse a model response into an ``IntentAnalysis``; ``None`` when malformed."""

    text = _FENCE.sub("", raw.strip())
    match = _JSON_OBJECT.search(text)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
        payload = _IntentPayload.model_validate(data)
    except (json.JSONDecodeError, ValidationError):
        return None
    return IntentAnalysis(
        needs_documents=payload.needs_documents,
        needs_transcripts=payload.needs_transcripts,
        confidence=payload.confidence,
        query_type=payload.query_type,
    )


class IntentClassifier:
    """Decides whether a query needs documents, transcripts or both."""

    def __init__(self, language_model: LanguageModel) -> None:
        self._language_model = language_model

    def classify(self, query: str) -> IntentAnalysis:
        try:
            raw = self._language_model.complete(_PROMPT.format(query=query))
        except Exception:
            logger.exception("Intent classification call failed; using broad default")
            return DEFAULT_INTENT

        intent = parse_intent(raw)
        if intent is None:
            logger.warning("Unparseable intent response %r; using broad default", raw[:200])
            return DEFAULT_INTENT
        return intent


__all__ = ["DEFAULT_INTENT", "IntentClassifier", "parse_intent"]
