"""Dependency wiring for the agency RAG application."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Literal, Mapping

from application.services.bm25_index import LexicalIndex
from application.services.intent import IntentClassifier
from application.services.parent_expansion import ParentExpander
from application.services.sparse_embeddings import SparseEmbeddingGenerator
from application.services.verification import RelevanceVerifier
from application.use_cases.answer import AnswerGenerator, QueryService
from application.use_cases.hybrid_search import HybridSearchExecutor
from application.use_cases.retrieve import MixedStrategy, RetrievalOrchestrator
from domain.entities import CorpusType
from domain.interfaces import ChunkSplitter, Embedder, LanguageModel, ParentStore, QueryRewriter, VectorStore
from infrastructure.embedding.minilm_embedder import MiniLMEmbedder
from infrastructure.embedding.openai_embedder import OpenAIEmbedder, OpenAIEmbedderConfig
from infrastructure.llm.http_language_model import HttpLanguageModel, LanguageModelConfig
from infrastructure.query.llm_rewriter import LLMQueryRewriter
from infrastructure.query.simple_rewriter import SimpleQueryRewriter
from infrastructure.splitting.parent_child_splitter import ParentChildSplitter
from infrastructure.storage.in_memory_parent_store import InMemoryParentStore
from infrastructure.storage.in_memory_vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

EmbedderName = Literal["hash-minilm", "sentence-transformers", "openai"]
VectorStoreName = Literal["in_memory", "faiss"]
RewriterName = Literal["llm", "simple"]
VerificationPolicy = Literal["strict", "lenient"]

DEFAULT_CLIENTS: dict[str, int] = {"nathan": 1, "robert": 2}


def parse_clients(raw: str) -> dict[str, int]:
    """Parse ``name=id,name=id`` into a client registry."""

    clients: dict[str, int] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, _, scope = item.partition("=")
        if not name.strip() or not scope.strip().isdigit():
            raise ValueError(f"Invalid client entry '{item}', expected name=id")
        clients[name.strip().lower()] = int(scope)
    return clients


@dataclass(slots=True)
class ContainerConfig:
    """Configuration for selecting models, stores and retrieval parameters."""

    embedder: EmbedderName = "hash-minilm"
    embedding_model: str | None = None
    vector_store: VectorStoreName = "in_memory"
    llm_provider: str = "ollama"
    llm_model: str = "llama3.1"
    llm_url: str = "http://localhost:11434"
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    answer_temperature: float = 0.7
    rewriter: RewriterName = "llm"
    max_attempts: int = 3
    top_k: int = 10
    rrf_k: int = 60
    fusion_limit: int = 5
    verification_policy: VerificationPolicy = "strict"
    mixed_strategy: str = MixedStrategy.PARALLEL.value
    clients: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_CLIENTS))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ContainerConfig":
        env = os.environ if environ is None else environ
        defaults = cls()

        def read(name: str, default: str) -> str:
            return env.get(f"AGENCY_RAG_{name}", default)

        return cls(
            embedder=read("EMBEDDER", defaults.embedder),  # type: ignore[arg-type]
            embedding_model=read("EMBEDDING_MODEL", "") or None,
            vector_store=read("VECTOR_STORE", defaults.vector_store),  # type: ignore[arg-type]
            llm_provider=read("LLM_PROVIDER", defaults.llm_provider),
            llm_model=read("LLM_MODEL", defaults.llm_model),
            llm_url=read("LLM_URL", defaults.llm_url),
            openai_url=read("OPENAI_URL", defaults.openai_url),
            answer_temperature=float(read("ANSWER_TEMPERATURE", str(defaults.answer_temperature))),
            rewriter=read("REWRITER", defaults.rewriter),  # type: ignore[arg-type]
            max_attempts=int(read("MAX_ATTEMPTS", str(defaults.max_attempts))),
            top_k=int(read("TOP_K", str(defaults.top_k))),
            rrf_k=int(read("RRF_K", str(defaults.rrf_k))),
            fusion_limit=int(read("FUSION_LIMIT", str(defaults.fusion_limit))),
            verification_policy=read("VERIFICATION_POLICY", defaults.verification_policy),  # type: ignore[arg-type]
            mixed_strategy=read("MIXED_STRATEGY", defaults.mixed_strategy),
            clients=parse_clients(read("CLIENTS", "")) or dict(DEFAULT_CLIENTS),
        )


@dataclass(slots=True)
class Container:
    """Explicit context object holding every collaborator of one running system."""

    config: ContainerConfig
    splitter: ChunkSplitter
    embedder: Embedder
    vector_stores: dict[CorpusType, VectorStore]
    lexical_index: LexicalIndex
    sparse_generators: dict[CorpusType, SparseEmbeddingGenerator]
    parent_store: ParentStore
    language_model: LanguageModel
    answer_model: LanguageModel
    rewriter: QueryRewriter

    @property
    def clients(self) -> dict[str, int]:
        return self.config.clients


def _sentence_transformers(config: ContainerConfig) -> Embedder:
    from infrastructure.embedding.sentence_transformers_embedder import (
        SentenceTransformersConfig,
        SentenceTransformersEmbedder,
    )

    st_config = SentenceTransformersConfig()
    if config.embedding_model:
        st_config.model_name = config.embedding_model
    return SentenceTransformersEmbedder(st_config)


def _openai_embedder(config: ContainerConfig) -> Embedder:
    oa_config = OpenAIEmbedderConfig()
    if config.embedding_model:
        oa_config.model = config.embedding_model
    return OpenAIEmbedder(oa_config)


def _faiss_store(dimension: int) -> VectorStore:
    from infrastructure.storage.faiss_vector_store import FaissVectorStore

    return FaissVectorStore(dimension)


_EMBEDDER_FACTORIES: dict[EmbedderName, Callable[[ContainerConfig], Embedder]] = {
    "hash-minilm": lambda config: MiniLMEmbedder(),
    "sentence-transformers": _sentence_transformers,
    "openai": _openai_embedder,
}

_VECTOR_STORE_FACTORIES: dict[VectorStoreName, Callable[[int], VectorStore]] = {
    "in_memory": lambda dimension: InMemoryVectorStore(),
    "faiss": _faiss_store,
}


def _language_model(config: ContainerConfig, temperature: float) -> LanguageModel:
    return HttpLanguageModel(
        LanguageModelConfig(
            provider=config.llm_provider,
            model=config.llm_model,
            temperature=temperature,
            ollama_url=config.llm_url,
            openai_url=config.openai_url,
        )
    )


def build_default_container(
    config: ContainerConfig | None = None,
    *,
    language_model: LanguageModel | None = None,
    answer_model: LanguageModel | None = None,
    embedder: Embedder | None = None,
) -> Container:
    """Instantiate the default infrastructure stack.

    ``language_model`` drives classification, verification and rewriting at
    temperature 0; ``answer_model`` writes the final answer and defaults to
    ``language_model`` when that is given.
    """

    cfg = config or ContainerConfig()
    if embedder is None:
        try:
            embedder = _EMBEDDER_FACTORIES[cfg.embedder](cfg)
        except KeyError as exc:
            raise ValueError(f"Unknown embedder '{cfg.embedder}'") from exc
    try:
        store_factory = _VECTOR_STORE_FACTORIES[cfg.vector_store]
    except KeyError as exc:
        raise ValueError(f"Unknown vector store '{cfg.vector_store}'") from exc
    if cfg.rewriter not in ("llm", "simple"):
        raise ValueError(f"Unknown rewriter '{cfg.rewriter}'")

    if language_model is None:
        language_model = _language_model(cfg, temperature=0.0)
        answer_model = answer_model or _language_model(cfg, temperature=cfg.answer_temperature)
    answer_model = answer_model or language_model
    rewriter: QueryRewriter = (
        LLMQueryRewriter(language_model) if cfg.rewriter == "llm" else SimpleQueryRewriter()
    )

    logger.info(
        "Building container: embedder=%s vector_store=%s llm=%s:%s",
        embedder.model_id,
        cfg.vector_store,
        cfg.llm_provider,
        cfg.llm_model,
    )
    return Container(
        config=cfg,
        splitter=ParentChildSplitter(),
        embedder=embedder,
        vector_stores={corpus: store_factory(embedder.dimension) for corpus in CorpusType},
        lexical_index=LexicalIndex(),
        sparse_generators={corpus: SparseEmbeddingGenerator() for corpus in CorpusType},
        parent_store=InMemoryParentStore(),
        language_model=language_model,
        answer_model=answer_model,
        rewriter=rewriter,
    )


def build_orchestrator(container: Container) -> RetrievalOrchestrator:
    cfg = container.config
    if cfg.verification_policy not in ("strict", "lenient"):
        raise ValueError(f"Unknown verification policy '{cfg.verification_policy}'")
    try:
        mixed_strategy = MixedStrategy(cfg.mixed_strategy)
    except ValueError as exc:
        raise ValueError(f"Unknown mixed strategy '{cfg.mixed_strategy}'") from exc

    return RetrievalOrchestrator(
        classifier=IntentClassifier(container.language_model),
        search_executor=HybridSearchExecutor(
            embedder=container.embedder,
            vector_stores=container.vector_stores,
            lexical_index=container.lexical_index,
            sparse_generators=container.sparse_generators,
            top_k=cfg.top_k,
        ),
        expander=ParentExpander(container.parent_store),
        verifier=RelevanceVerifier(
            container.language_model,
            default_on_error=cfg.verification_policy == "lenient",
        ),
        rewriter=container.rewriter,
        max_attempts=cfg.max_attempts,
        rrf_k=cfg.rrf_k,
        fusion_limit=cfg.fusion_limit,
        mixed_strategy=mixed_strategy,
    )


def build_query_service(container: Container) -> QueryService:
    return QueryService(build_orchestrator(container), AnswerGenerator(container.answer_model))


def resolve_client_scope(
    clients: Mapping[str, int],
    client_id: int | None = None,
    client: str | None = None,
) -> int | None:
    """Resolve an explicit id or a registered client name to a client scope."""

    if client_id is not None:
        return client_id
    if client is None or not client.strip():
        return None
    try:
        return clients[client.strip().lower()]
    except KeyError as exc:
        raise ValueError(f"Unknown client '{client}'") from exc


__all__ = [
    "Container",
    "ContainerConfig",
    "DEFAULT_CLIENTS",
    "build_default_container",
    "build_orchestrator",
    "build_query_service",
    "parse_clients",
    "resolve_client_scope",
]
