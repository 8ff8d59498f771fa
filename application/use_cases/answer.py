"""Use case that turns a retrieval result into a grounded answer for the caller."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from application.use_cases.retrieve import STRATEGY_FAILED, RetrievalOrchestrator
from domain.entities import RetrievalResult
from domain.interfaces import LanguageModel

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = (
    "I couldn't find relevant information to answer your question. "
    "Please try rephrasing your question or providing more specific details."
)
GENERATION_ERROR_ANSWER = "Sorry, I encountered an error while generating the response. Please try again."
PROCESSING_ERROR_ANSWER = (
    "I apologize, but I encountered an error while processing your query. "
    "Please try again or rephrase your question."
)
LOW_CONFIDENCE_NOTE = "*Note: This answer is based on potentially incomplete information.*"

_PROMPT = """You are a helpful assistant that answers questions using only the provided context.

Context:
{context}

Question: {query}

Instructions:
- Answer from the context only and be specific.
- If information comes from a transcript, mention the speaker when relevant.
- If the context does not fully answer the question, say what is missing.

Answer:"""


class AnswerGenerator:
    """Grounded answer generation; never raises to the caller."""

    def __init__(self, language_model: LanguageModel, *, low_confidence_threshold: float = 0.7) -> None:
        self._language_model = language_model
        self.low_confidence_threshold = low_confidence_threshold

    def generate(self, query: str, retrieval: RetrievalResult) -> str:
        if not retrieval.content:
            return NO_CONTEXT_ANSWER
        try:
            answer = self._language_model.complete(_PROMPT.format(context=retrieval.content, query=query)).strip()
        except Exception:
            logger.exception("Answer generation failed")
            return GENERATION_ERROR_ANSWER

        parts = [answer]
        if retrieval.confidence < self.low_confidence_threshold:
            parts.append(LOW_CONFIDENCE_NOTE)
        sources = ", ".join(source.id for source in retrieval.sources)
        if sources:
            parts.append(f"**Sources:** {sources}")
        return "\n\n".join(parts)


@dataclass(slots=True)
class QueryResponse:
    answer: str
    retrieval_result: RetrievalResult
    processing_steps: list[str] = field(default_factory=list)


class QueryService:
    """Runs retrieval then answer generation; failures become a well-formed ``failed`` result."""

    def __init__(self, orchestrator: RetrievalOrchestrator, generator: AnswerGenerator) -> None:
        self._orchestrator = orchestrator
        self._generator = generator

    async def process(self, query: str, client_scope: int | None = None) -> QueryResponse:
        steps = [f"Query: {query!r}"]
        if client_scope is not None:
            steps.append(f"Client scope: {client_scope}")
        try:
            retrieval = await self._orchestrator.retrieve(query, client_scope)
        except Exception as exc:
            logger.exception("Query processing failed for %r", query)
            steps.append(f"Error in query processing: {exc}")
            return QueryResponse(
                answer=PROCESSING_ERROR_ANSWER,
                retrieval_result=RetrievalResult.empty(STRATEGY_FAILED),
                processing_steps=steps,
            )

        steps.append(f"Strategy: {retrieval.strategy} after {retrieval.attempts} attempt(s)")
        if retrieval.content:
            steps.append("Sources: " + ", ".join(source.id for source in retrieval.sources))
            steps.append(f"Confidence: {retrieval.confidence * 100:.1f}%")
        else:
            steps.append("No relevant content found after verification")

        answer = await asyncio.to_thread(self._generator.generate, query, retrieval)
        steps.append("Response generated")
        return QueryResponse(answer=answer, retrieval_result=retrieval, processing_steps=steps)


__all__ = [
    "AnswerGenerator",
    "QueryResponse",
    "QueryService",
    "NO_CONTEXT_ANSWER",
    "GENERATION_ERROR_ANSWER",
    "PROCESSING_ERROR_ANSWER",
    "LOW_CONFIDENCE_NOTE",
]
