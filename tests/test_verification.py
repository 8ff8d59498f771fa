import unittest

from application.services.verification import RelevanceVerifier, parse_verdict
from domain.entities import Chunk, CorpusType
from tests.fakes import VERIFY, ScriptedLanguageModel


def _chunks(count: int, length: int = 50) -> list[Chunk]:
    return [
        Chunk(id=f"c{i}", content=str(i) * length, source_file=f"c{i}.txt", corpus_type=CorpusType.DOCUMENT)
        for i in range(count)
    ]


class TestParseVerdict(unittest.TestCase):
    def test_verdicts(self) -> None:
        cases = {
            "YES": True,
            "yes.": True,
            "  No, it cannot": False,
            "**NO**": False,
            "Response: YES": True,
            "Answer - no": False,
            "The context says YES, it answers": True,
            "Maybe": None,
            "": None,
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertIs(parse_verdict(raw), expected)


class TestRelevanceVerifier(unittest.TestCase):
    def test_empty_context_is_never_relevant(self) -> None:
        model = ScriptedLanguageModel(verdicts=["YES"])
        self.assertFalse(RelevanceVerifier(model).verify([], "query"))
        self.assertEqual(model.calls, [])

    def test_follows_model_verdict(self) -> None:
        self.assertTrue(RelevanceVerifier(ScriptedLanguageModel(verdicts=["YES"])).verify(_chunks(1), "q"))
        self.assertFalse(RelevanceVerifier(ScriptedLanguageModel(verdicts=["NO"])).verify(_chunks(1), "q"))

    def test_strict_policy_fails_closed(self) -> None:
        model = ScriptedLanguageModel(fail_on={VERIFY})
        self.assertFalse(RelevanceVerifier(model).verify(_chunks(1), "q"))

    def test_lenient_policy_fails_open(self) -> None:
        model = ScriptedLanguageModel(fail_on={VERIFY})
        self.assertTrue(RelevanceVerifier(model, default_on_error=True).verify(_chunks(1), "q"))

    def test_echoed_label_is_not_an_error(self) -> None:
        model = ScriptedLanguageModel(verdicts=["Response: YES"])
        self.assertTrue(RelevanceVerifier(model).verify(_chunks(1), "q"))

    def test_unparseable_answer_uses_default(self) -> None:
        model = ScriptedLanguageModel(verdicts=["It depends"])
        self.assertFalse(RelevanceVerifier(model).verify(_chunks(1), "q"))
        self.assertTrue(RelevanceVerifier(model, default_on_error=True).verify(_chunks(1), "q"))

    def test_prompt_uses_top_three_truncated_chunks(self) -> None:
        model = ScriptedLanguageModel()
        RelevanceVerifier(model).verify(_chunks(5, length=800), "q")
        prompt = model.prompts(VERIFY)[0]
        self.assertIn("0" * 500, prompt)
        self.assertNotIn("0" * 501, prompt)
        self.assertIn("2" * 500, prompt)
        self.assertNotIn("3" * 10, prompt)


if __name__ == "__main__":
    unittest.main()
