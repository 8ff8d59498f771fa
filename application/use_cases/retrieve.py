"""Retrieval orchestrator: classify, search, fuse, expand, verify and retry with reformulated queries."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from application.services.fusion import DEFAULT_RRF_K, fuse_with_scores
from application.services.intent import IntentClassifier
from application.services.parent_expansion import ParentExpander
from application.services.verification import RelevanceVerifier
from application.use_cases.hybrid_search import HybridSearchExecutor
from domain.entities import (
    Chunk,
    CorpusType,
    IntentAnalysis,
    Query,
    QueryType,
    RetrievalAttempt,
    RetrievalResult,
    SearchCandidate,
    SourceRef,
)
from domain.errors import ResourceNotInitializedError
from domain.interfaces import QueryRewriter

logger = logging.getLogger(__name__)

STRATEGY_FAILED = "failed"
STRATEGY_NON_RELEVANT = "max-attempts-non-relevant"


class RetrievalState(str, Enum):
    CLASSIFYING = "classifying"
    SEARCHING = "searching"
    FUSING = "fusing"
    EXPANDING = "expanding"
    VERIFYING = "verifying"
    REFORMULATING = "reformulating"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


TERMINAL_STATES = frozenset({RetrievalState.SUCCEEDED, RetrievalState.EXHAUSTED})


class MixedStrategy(str, Enum):
    """How a query classified as mixed searches both stores."""

    PARALLEL = "parallel"
    DOCUMENT_FIRST = "document_first"
    TRANSCRIPT_FIRST = "transcript_first"


TransitionHook = Callable[[RetrievalState, RetrievalAttempt], None]


@dataclass(slots=True)
class _Run:
    """Request-local state of one ``retrieve`` call."""

    original_query: str
    client_scope: int | None
    attempt: RetrievalAttempt
    intent: IntentAnalysis | None = None
    query_embedding: list[float] | None = None
    candidates: list[SearchCandidate] = field(default_factory=list)
    fused: list[tuple[Chunk, float]] = field(default_factory=list)
    expanded: list[Chunk] = field(default_factory=list)
    result: RetrievalResult | None = None

    def reset(self) -> None:
        self.intent = None
        self.query_embedding = None
        self.candidates = []
        self.fused = []
        self.expanded = []


class RetrievalOrchestrator:
    """Bounded verify/reformulate loop over the hybrid retrieval pipeline.

    Attempts run strictly one after another. An unexpected error inside an
    attempt moves on to the next attempt while budget remains and propagates on
    the final one; a resource that was never initialised always propagates.
    """

    def __init__(
        self,
        *,
        classifier: IntentClassifier,
        search_executor: HybridSearchExecutor,
        expander: ParentExpander,
        verifier: RelevanceVerifier,
        rewriter: QueryRewriter,
        max_attempts: int = 3,
        rrf_k: int = DEFAULT_RRF_K,
        fusion_limit: int = 5,
        mixed_strategy: MixedStrategy = MixedStrategy.PARALLEL,
        cross_reference_chars: int = 500,
        on_transition: TransitionHook | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._classifier = classifier
        self._search = search_executor
        self._expander = expander
        self._verifier = verifier
        self._rewriter = rewriter
        self.max_attempts = max_attempts
        self.rrf_k = rrf_k
        self.fusion_limit = fusion_limit
        self.mixed_strategy = mixed_strategy
        self.cross_reference_chars = cross_reference_chars
        self._on_transition = on_transition
        self._handlers: dict[RetrievalState, Callable[[_Run], Awaitable[RetrievalState]]] = {
            RetrievalState.CLASSIFYING: self._classify,
            RetrievalState.SEARCHING: self._search_candidates,
            RetrievalState.FUSING: self._fuse,
            RetrievalState.EXPANDING: self._expand,
            RetrievalState.VERIFYING: self._verify,
        }

    async def retrieve(self, query: str, client_scope: int | None = None) -> RetrievalResult:
        run = _Run(
            original_query=query,
            client_scope=client_scope,
            attempt=RetrievalAttempt(query=query, attempt=1, max_attempts=self.max_attempts),
        )
        state = RetrievalState.CLASSIFYING
        while True:
            self._enter(state, run.attempt)
            if state in TERMINAL_STATES:
                assert run.result is not None
                run.result.attempts = run.attempt.attempt
                return run.result
            if state is RetrievalState.REFORMULATING:
                # Rewrite failures fall back to the original query inside the handler.
                state = await self._reformulate(run)
                continue
            try:
                state = await self._handlers[state](run)
            except ResourceNotInitializedError:
                raise
            except Exception:
                if run.attempt.is_final:
                    logger.exception("Retrieval attempt %d failed on the final attempt", run.attempt.attempt)
                    raise
                logger.exception(
                    "Retrieval attempt %d/%d failed; moving to the next attempt",
                    run.attempt.attempt,
                    run.attempt.max_attempts,
                )
                run.attempt.attempt += 1
                run.reset()
                state = RetrievalState.CLASSIFYING

    def _enter(self, state: RetrievalState, attempt: RetrievalAttempt) -> None:
        logger.debug("Attempt %d/%d -> %s", attempt.attempt, attempt.max_attempts, state.value)
        if self._on_transition is not None:
            self._on_transition(state, attempt)

    async def _classify(self, run: _Run) -> RetrievalState:
        logger.info(
            "Retrieval attempt %d/%d for query %r",
            run.attempt.attempt,
            run.attempt.max_attempts,
            run.attempt.query,
        )
        run.intent, run.query_embedding = await asyncio.gather(
            asyncio.to_thread(self._classifier.classify, run.attempt.query),
            self._search.embed_query(run.attempt.query),
        )
        logger.info("Intent: %s (confidence %.2f)", run.intent.query_type.value, run.intent.confidence)
        return RetrievalState.SEARCHING

    async def _search_candidates(self, run: _Run) -> RetrievalState:
        assert run.intent is not None
        query_type = run.intent.query_type
        if query_type is QueryType.TRANSCRIPT and run.client_scope is None:
            logger.warning("Transcript query without a client scope; not retrying")
            run.result = RetrievalResult.empty(STRATEGY_FAILED)
            return RetrievalState.EXHAUSTED

        if query_type is QueryType.DOCUMENT:
            run.candidates = await self._search.search(
                run.attempt.query, CorpusType.DOCUMENT, query_embedding=run.query_embedding
            )
        elif query_type is QueryType.TRANSCRIPT:
            run.candidates = await self._search.search(
                run.attempt.query,
                CorpusType.TRANSCRIPT,
                run.client_scope,
                query_embedding=run.query_embedding,
            )
        else:
            run.candidates = await self._search_mixed(run)

        logger.info("Found %d hybrid candidates", len(run.candidates))
        if run.candidates:
            return RetrievalState.FUSING
        if not run.attempt.is_final:
            return RetrievalState.REFORMULATING
        run.result = RetrievalResult.empty(STRATEGY_FAILED)
        return RetrievalState.EXHAUSTED

    async def _search_mixed(self, run: _Run) -> list[SearchCandidate]:
        query = run.attempt.query
        scope = run.client_scope
        if self.mixed_strategy is MixedStrategy.DOCUMENT_FIRST:
            documents = await self._search.search(query, CorpusType.DOCUMENT, query_embedding=run.query_embedding)
            if not documents or scope is None:
                return documents
            context = self._context_from(documents)
            transcripts = await self._search.search(
                f"{query} evidence of: {context}", CorpusType.TRANSCRIPT, scope
            )
            logger.info("Document-first cross-reference: %d documents, %d transcripts", len(documents), len(transcripts))
            return self._top(documents, 2) + transcripts

        if self.mixed_strategy is MixedStrategy.TRANSCRIPT_FIRST and scope is not None:
            transcripts = await self._search.search(
                query, CorpusType.TRANSCRIPT, scope, query_embedding=run.query_embedding
            )
            if transcripts:
                context = self._context_from(transcripts)
                documents = await self._search.search(
                    f"{query} for client situation: {context}", CorpusType.DOCUMENT
                )
                logger.info(
                    "Transcript-first cross-reference: %d transcripts, %d documents",
                    len(transcripts),
                    len(documents),
                )
                return self._top(transcripts, 2) + documents
            logger.info("No client context found; falling back to document search")
            return await self._search.search(query, CorpusType.DOCUMENT, query_embedding=run.query_embedding)

        searches = [self._search.search(query, CorpusType.DOCUMENT, query_embedding=run.query_embedding)]
        if scope is not None:
            searches.append(
                self._search.search(query, CorpusType.TRANSCRIPT, scope, query_embedding=run.query_embedding)
            )
        results = await asyncio.gather(*searches)
        return [candidate for candidates in results for candidate in candidates]

    def _top(self, candidates: list[SearchCandidate], count: int) -> list[SearchCandidate]:
        keep = {chunk.id for chunk, _ in fuse_with_scores(candidates, k=self.rrf_k, limit=count)}
        return [candidate for candidate in candidates if candidate.chunk.id in keep]

    def _context_from(self, candidates: list[SearchCandidate]) -> str:
        top = fuse_with_scores(candidates, k=self.rrf_k, limit=3)
        return " ".join(chunk.content for chunk, _ in top)[: self.cross_reference_chars]

    async def _fuse(self, run: _Run) -> RetrievalState:
        run.fused = fuse_with_scores(run.candidates, k=self.rrf_k, limit=self.fusion_limit)
        logger.info("RRF kept %d chunks", len(run.fused))
        return RetrievalState.EXPANDING

    async def _expand(self, run: _Run) -> RetrievalState:
        children = [chunk for chunk, _ in run.fused]
        run.expanded = await asyncio.to_thread(self._expander.expand_all, children)
        logger.info("Expanded to %d context chunks", len(run.expanded))
        return RetrievalState.VERIFYING

    async def _verify(self, run: _Run) -> RetrievalState:
        assert run.intent is not None
        relevant = await asyncio.to_thread(self._verifier.verify, run.expanded, run.attempt.query)
        if relevant:
            run.result = RetrievalResult(
                content="\n\n".join(chunk.content for chunk in run.expanded),
                sources=self._sources(run),
                confidence=run.intent.confidence,
                strategy=f"verified-hybrid-retrieval-attempt-{run.attempt.attempt}",
            )
            return RetrievalState.SUCCEEDED
        if not run.attempt.is_final:
            return RetrievalState.REFORMULATING
        logger.info("Max attempts reached with non-relevant context")
        run.result = RetrievalResult.empty(STRATEGY_NON_RELEVANT)
        return RetrievalState.EXHAUSTED

    async def _reformulate(self, run: _Run) -> RetrievalState:
        try:
            rewritten = await asyncio.to_thread(
                self._rewriter.rewrite, Query(text=run.original_query), run.attempt.attempt
            )
            new_query = rewritten.text.strip() or run.original_query
        except Exception:
            logger.exception("Query reformulation failed; reusing the original query")
            new_query = run.original_query
        logger.info("Reformulated query for attempt %d: %r", run.attempt.attempt + 1, new_query)
        run.attempt.query = new_query
        run.attempt.attempt += 1
        run.reset()
        return RetrievalState.CLASSIFYING

    @staticmethod
    def _sources(run: _Run) -> list[SourceRef]:
        best: dict[str, tuple[str, float]] = {}
        for chunk, score in run.fused:
            previous = best.get(chunk.source_file)
            if previous is None or score > previous[1]:
                best[chunk.source_file] = (chunk.corpus_type.value, score)

        sources: list[SourceRef] = []
        for chunk in run.expanded:
            if any(source.id == chunk.source_file for source in sources):
                continue
            corpus, score = best.get(chunk.source_file, (chunk.corpus_type.value, 0.0))
            sources.append(SourceRef(type=corpus, id=chunk.source_file, score=score))
        return sources


__all__ = [
    "MixedStrategy",
    "RetrievalOrchestrator",
    "RetrievalState",
    "STRATEGY_FAILED",
    "STRATEGY_NON_RELEVANT",
    "TERMINAL_STATES",
]
