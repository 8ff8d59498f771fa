import unittest

from application.services.intent import IntentClassifier
from application.services.parent_expansion import ParentExpander
from application.services.verification import RelevanceVerifier
from application.use_cases.hybrid_search import HybridSearchExecutor
from application.use_cases.retrieve import (
    STRATEGY_FAILED,
    STRATEGY_NON_RELEVANT,
    MixedStrategy,
    RetrievalOrchestrator,
    RetrievalState,
)
from domain.errors import ResourceNotInitializedError
from infrastructure.config import ContainerConfig, build_default_container
from infrastructure.embedding.minilm_embedder import MiniLMEmbedder
from tests.fakes import (
    DOCUMENTS,
    INTENT,
    REWRITE,
    TRANSCRIPTS,
    VERIFY,
    ScriptedLanguageModel,
    ingest,
    make_container,
)


class FlakyEmbedder(MiniLMEmbedder):
    """Fails the first ``failures`` query embeddings."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def embed_query(self, query):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("embedding provider timed out")
        return super().embed_query(query)


def _orchestrator(container, model, **kwargs) -> RetrievalOrchestrator:
    return RetrievalOrchestrator(
        classifier=IntentClassifier(model),
        search_executor=HybridSearchExecutor(
            embedder=container.embedder,
            vector_stores=container.vector_stores,
            lexical_index=container.lexical_index,
            sparse_generators=container.sparse_generators,
        ),
        expander=ParentExpander(container.parent_store),
        verifier=RelevanceVerifier(model),
        rewriter=container.rewriter,
        **kwargs,
    )


def _source_files(result) -> list[str]:
    return [source.id for source in result.sources]


class TestRetrievalScenarios(unittest.IsolatedAsyncioTestCase):
    async def test_client_scoped_transcript_question(self) -> None:
        model = ScriptedLanguageModel(query_type="transcript", confidence=0.9)
        container = make_container(model)
        ingest(container, documents=DOCUMENTS, transcripts=TRANSCRIPTS)

        result = await _orchestrator(container, model).retrieve("What did Nathan say about his medication?", 1)

        self.assertEqual(result.strategy, "verified-hybrid-retrieval-attempt-1")
        self.assertEqual(result.attempts, 1)
        self.assertAlmostEqual(result.confidence, 0.9)
        self.assertTrue(result.sources)
        self.assertTrue(all(name.startswith("nathan-") for name in _source_files(result)))
        self.assertTrue(all(source.type == "transcript" for source in result.sources))
        self.assertIn("medication", result.content)
        self.assertNotIn("Robert", result.content)

    async def test_empty_document_corpus_exhausts_with_failed(self) -> None:
        model = ScriptedLanguageModel(query_type="document")
        container = make_container(model)
        ingest(container, documents={}, transcripts=TRANSCRIPTS)

        result = await _orchestrator(container, model).retrieve("What is the attendance policy?")

        self.assertEqual(result.content, "")
        self.assertEqual(result.confidence, 0.0)
        self.assertEqual(result.strategy, STRATEGY_FAILED)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(model.prompts(INTENT)), 3)
        self.assertEqual(len(model.prompts(REWRITE)), 2)
        self.assertEqual(model.prompts(VERIFY), [])

    async def test_retry_bound_follows_max_attempts(self) -> None:
        for max_attempts in (1, 2, 5):
            with self.subTest(max_attempts=max_attempts):
                model = ScriptedLanguageModel(query_type="document")
                container = make_container(model)
                ingest(container, transcripts=TRANSCRIPTS)
                result = await _orchestrator(container, model, max_attempts=max_attempts).retrieve("policy")
                self.assertEqual(result.strategy, STRATEGY_FAILED)
                self.assertEqual(result.attempts, max_attempts)
                self.assertEqual(len(model.prompts(INTENT)), max_attempts)

    async def test_verification_gate_never_returns_rejected_content(self) -> None:
        model = ScriptedLanguageModel(query_type="document", verdicts=["NO"])
        container = make_container(model)
        ingest(container, documents=DOCUMENTS)

        result = await _orchestrator(container, model).retrieve("What is the attendance policy?")

        self.assertEqual(result.content, "")
        self.assertEqual(result.sources, [])
        self.assertEqual(result.strategy, STRATEGY_NON_RELEVANT)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(model.prompts(VERIFY)), 3)

    async def test_reformulation_starts_from_original_query(self) -> None:
        model = ScriptedLanguageModel(query_type="document", verdicts=["NO"], rewrite="attendance recording rules")
        container = make_container(model)
        ingest(container, documents=DOCUMENTS)

        await _orchestrator(container, model).retrieve("What is the attendance policy?")

        rewrites = model.prompts(REWRITE)
        self.assertEqual(len(rewrites), 2)
        self.assertTrue(all("What is the attendance policy?" in prompt for prompt in rewrites))
        self.assertIn("attendance recording rules", model.prompts(INTENT)[1])

    async def test_success_after_reformulation(self) -> None:
        model = ScriptedLanguageModel(query_type="document", verdicts=["NO", "YES"])
        container = make_container(model)
        ingest(container, documents=DOCUMENTS)

        result = await _orchestrator(container, model).retrieve("What is the attendance policy?")

        self.assertEqual(result.strategy, "verified-hybrid-retrieval-attempt-2")
        self.assertEqual(result.attempts, 2)
        self.assertTrue(result.content)

    async def test_transcript_query_without_scope_is_not_retried(self) -> None:
        model = ScriptedLanguageModel(query_type="transcript")
        container = make_container(model)
        ingest(container, documents=DOCUMENTS, transcripts=TRANSCRIPTS)

        result = await _orchestrator(container, model).retrieve("What did Nathan say?")

        self.assertEqual(result.strategy, STRATEGY_FAILED)
        self.assertEqual(result.attempts, 1)
        self.assertEqual(result.content, "")
        self.assertEqual(model.prompts(REWRITE), [])


class TestRetrievalFailures(unittest.IsolatedAsyncioTestCase):
    async def test_rewriter_failure_reuses_original_query(self) -> None:
        model = ScriptedLanguageModel(query_type="document", verdicts=["NO", "YES"], fail_on={REWRITE})
        container = make_container(model)
        ingest(container, documents=DOCUMENTS)

        result = await _orchestrator(container, model).retrieve("What is the attendance policy?")

        self.assertEqual(result.strategy, "verified-hybrid-retrieval-attempt-2")
        self.assertIn("What is the attendance policy?", model.prompts(INTENT)[1])

    async def test_empty_rewrite_reuses_original_query(self) -> None:
        model = ScriptedLanguageModel(query_type="document", verdicts=["NO", "YES"], rewrite="   ")
        container = make_container(model)
        ingest(container, documents=DOCUMENTS)

        await _orchestrator(container, model).retrieve("What is the attendance policy?")

        self.assertIn("What is the attendance policy?", model.prompts(INTENT)[1])

    async def test_transient_failure_moves_to_next_attempt(self) -> None:
        model = ScriptedLanguageModel(query_type="document")
        container = build_default_container(ContainerConfig(), language_model=model, embedder=FlakyEmbedder(1))
        ingest(container, documents=DOCUMENTS)

        result = await _orchestrator(container, model).retrieve("What is the attendance policy?")

        self.assertEqual(result.strategy, "verified-hybrid-retrieval-attempt-2")

    async def test_failure_on_final_attempt_propagates(self) -> None:
        model = ScriptedLanguageModel(query_type="document")
        container = build_default_container(ContainerConfig(), language_model=model, embedder=FlakyEmbedder(10))
        ingest(container, documents=DOCUMENTS)

        with self.assertRaises(RuntimeError):
            await _orchestrator(container, model, max_attempts=2).retrieve("What is the attendance policy?")

    async def test_uninitialised_store_is_fatal(self) -> None:
        model = ScriptedLanguageModel(query_type="document")
        container = make_container(model)

        with self.assertRaises(ResourceNotInitializedError):
            await _orchestrator(container, model).retrieve("What is the attendance policy?")
        self.assertEqual(len(model.prompts(INTENT)), 1)

    def test_max_attempts_must_be_positive(self) -> None:
        model = ScriptedLanguageModel()
        with self.assertRaises(ValueError):
            _orchestrator(make_container(model), model, max_attempts=0)


class TestMixedStrategies(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.model = ScriptedLanguageModel(query_type="mixed")
        self.container = make_container(self.model)
        ingest(self.container, documents=DOCUMENTS, transcripts=TRANSCRIPTS)

    async def _retrieve(self, strategy: MixedStrategy, client_scope):
        orchestrator = _orchestrator(self.container, self.model, mixed_strategy=strategy)
        return await orchestrator.retrieve("Does the medication procedure match what the client said?", client_scope)

    async def test_strategies_respect_client_scope(self) -> None:
        for strategy in MixedStrategy:
            for scope, other in ((1, "robert-"), (2, "nathan-")):
                with self.subTest(strategy=strategy, scope=scope):
                    result = await self._retrieve(strategy, scope)
                    self.assertTrue(result.content)
                    self.assertFalse(any(name.startswith(other) for name in _source_files(result)))

    async def test_mixed_without_scope_uses_documents_only(self) -> None:
        for strategy in MixedStrategy:
            with self.subTest(strategy=strategy):
                result = await self._retrieve(strategy, None)
                self.assertTrue(result.sources)
                self.assertTrue(all(source.type == "document" for source in result.sources))

    async def test_fusion_limit_caps_context(self) -> None:
        result = await self._retrieve(MixedStrategy.PARALLEL, 1)
        self.assertLessEqual(len(result.sources), 5)

    async def test_transition_hook_sees_every_state(self) -> None:
        seen: list[RetrievalState] = []
        orchestrator = _orchestrator(
            self.container,
            self.model,
            on_transition=lambda state, attempt: seen.append(state),
        )
        await orchestrator.retrieve("attendance policy", 1)
        self.assertEqual(
            seen,
            [
                RetrievalState.CLASSIFYING,
                RetrievalState.SEARCHING,
                RetrievalState.FUSING,
                RetrievalState.EXPANDING,
                RetrievalState.VERIFYING,
                RetrievalState.SUCCEEDED,
            ],
        )


if __name__ == "__main__":
    unittest.main()
