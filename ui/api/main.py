"""FastAPI layer that exposes ingest/ask operations."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from application.use_cases.ingest_chunks import SourceText, ingest_sources
from domain.entities import CorpusType
from infrastructure.config import (
    Container,
    ContainerConfig,
    build_default_container,
    build_query_service,
    resolve_client_scope,
)
from ui.logging_utils import setup_logging


class SourcePayload(BaseModel):
    file_name: str
    content: str
    client_id: int | None = None


class IngestRequest(BaseModel):
    documents: list[SourcePayload] = Field(default_factory=list)
    transcripts: list[SourcePayload] = Field(default_factory=list)


class IngestResponse(BaseModel):
    sources: int
    parents: dict[str, int]
    children: dict[str, int]
    skipped: list[str]


class AskRequest(BaseModel):
    query: str = Field(..., min_length=1)
    client_id: int | None = None
    client: str | None = None


class SourceModel(BaseModel):
    type: str
    id: str
    score: float


class AskResponse(BaseModel):
    answer: str
    sources: list[SourceModel]
    strategy: str
    confidence: float
    attempts: int
    steps: list[str]


def create_app(container: Container) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        yield

    app = FastAPI(title="Agency RAG API", lifespan=lifespan)
    app.state.container = container
    query_service = build_query_service(container)

    @app.get("/health")
    def health_endpoint() -> dict[str, object]:
        return {
            "status": "ok",
            "chunks": {corpus.value: store.count() for corpus, store in container.vector_stores.items()},
        }

    @app.post("/ingest", response_model=IngestResponse)
    def ingest_endpoint(payload: IngestRequest) -> IngestResponse:
        sources = [
            SourceText(item.file_name, item.content, CorpusType.DOCUMENT) for item in payload.documents
        ] + [
            SourceText(item.file_name, item.content, CorpusType.TRANSCRIPT, item.client_id)
            for item in payload.transcripts
        ]
        report = ingest_sources(
            sources,
            splitter=container.splitter,
            embedder=container.embedder,
            vector_stores=container.vector_stores,
            lexical_index=container.lexical_index,
            sparse_generators=container.sparse_generators,
            parent_store=container.parent_store,
            clients=container.clients,
        )
        return IngestResponse(
            sources=report.sources,
            parents=report.parents,
            children=report.children,
            skipped=report.skipped,
        )

    @app.post("/ask", response_model=AskResponse)
    async def ask_endpoint(payload: AskRequest) -> AskResponse:
        try:
            scope = resolve_client_scope(container.clients, payload.client_id, payload.client)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        response = await query_service.process(payload.query, scope)
        result = response.retrieval_result
        return AskResponse(
            answer=response.answer,
            sources=[SourceModel(type=source.type, id=source.id, score=source.score) for source in result.sources],
            strategy=result.strategy,
            confidence=result.confidence,
            attempts=result.attempts,
            steps=response.processing_steps,
        )

    return app


app = create_app(build_default_container(ContainerConfig.from_env()))
