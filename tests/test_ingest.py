import unittest

from application.use_cases.ingest_chunks import transcript_metadata
from domain.entities import Chunk, CorpusType
from infrastructure.splitting.parent_child_splitter import ParentChildSplitter, sliding_windows
from tests.fakes import DOCUMENTS, TRANSCRIPTS, ScriptedLanguageModel, ingest, make_container

CLIENTS = {"nathan": 1, "robert": 2}


class TestTranscriptMetadata(unittest.TestCase):
    def test_client_and_date_from_file_name(self) -> None:
        metadata = transcript_metadata("Nathan-03-14.pdf", CLIENTS)
        self.assertEqual(metadata["client_scope"], 1)
        self.assertEqual(metadata["date"], "03-14")

    def test_unknown_client(self) -> None:
        metadata = transcript_metadata("alice-01-02.txt", CLIENTS)
        self.assertIsNone(metadata["client_scope"])
        self.assertEqual(metadata["date"], "01-02")

    def test_missing_date(self) -> None:
        self.assertIsNone(transcript_metadata("robert-notes.txt", CLIENTS)["date"])


class TestParentChildSplitter(unittest.TestCase):
    def test_sliding_windows_overlap(self) -> None:
        windows = sliding_windows("abcdefghij", size=4, overlap=1)
        self.assertEqual(windows, [(0, "abcd"), (3, "defg"), (6, "ghij")])

    def test_invalid_window(self) -> None:
        with self.assertRaises(ValueError):
            sliding_windows("text", size=10, overlap=10)

    def test_parents_and_children_ids(self) -> None:
        text = "abcdefghi " * 200
        source = Chunk(
            id="robert-03-15.txt",
            content=text,
            source_file="robert-03-15.txt",
            corpus_type=CorpusType.TRANSCRIPT,
            client_scope=2,
        )
        parents, children = ParentChildSplitter().split(source)

        self.assertEqual(len(parents), 3)
        self.assertEqual(parents[1].id, "robert-03-15.txt_parent_1")
        self.assertTrue(all(len(parent.content) <= 1000 for parent in parents))
        self.assertTrue(all(len(child.content) <= 250 for child in children))
        self.assertEqual(children[0].id, "robert-03-15.txt_parent_0_child_0")
        parent_ids = {parent.id for parent in parents}
        for child in children:
            self.assertIn(child.parent_id, parent_ids)
            self.assertEqual(child.client_scope, 2)
            parent = next(p for p in parents if p.id == child.parent_id)
            self.assertIn(child.content, parent.content)


class TestIngest(unittest.TestCase):
    def setUp(self) -> None:
        self.container = make_container(ScriptedLanguageModel())

    def test_populates_every_store(self) -> None:
        report = ingest(self.container, documents=DOCUMENTS, transcripts=TRANSCRIPTS)

        self.assertEqual(report.sources, len(DOCUMENTS) + len(TRANSCRIPTS))
        self.assertEqual(report.children, {"document": len(DOCUMENTS), "transcript": len(TRANSCRIPTS)})
        self.assertEqual(self.container.vector_stores[CorpusType.DOCUMENT].count(), len(DOCUMENTS))
        self.assertEqual(self.container.vector_stores[CorpusType.TRANSCRIPT].count(), len(TRANSCRIPTS))
        self.assertTrue(self.container.lexical_index.has_index("document"))
        self.assertTrue(all(generator.is_built for generator in self.container.sparse_generators.values()))

        children = self.container.lexical_index.chunks("transcript")
        scopes = {child.source_file: child.client_scope for child in children}
        self.assertEqual(scopes["nathan-03-14.txt"], 1)
        self.assertEqual(scopes["robert-03-22.txt"], 2)
        self.assertEqual(children[0].metadata["date"], "03-14")
        parent = self.container.parent_store.get(children[0].content)
        self.assertEqual(parent.id, children[0].parent_id)

    def test_empty_corpus_is_initialised(self) -> None:
        report = ingest(self.container, transcripts=TRANSCRIPTS)
        self.assertEqual(report.children["document"], 0)
        self.assertTrue(self.container.sparse_generators[CorpusType.DOCUMENT].is_built)
        self.assertEqual(self.container.vector_stores[CorpusType.DOCUMENT].count(), 0)

    def test_transcript_without_known_client_is_skipped(self) -> None:
        report = ingest(self.container, transcripts={"alice-01-02.txt": "Alice talked about the weather."})
        self.assertEqual(report.skipped, ["alice-01-02.txt"])
        self.assertEqual(self.container.vector_stores[CorpusType.TRANSCRIPT].count(), 0)

    def test_ingestion_is_cumulative(self) -> None:
        first = dict(list(DOCUMENTS.items())[:2])
        second = dict(list(DOCUMENTS.items())[2:])
        ingest(self.container, documents=first)
        report = ingest(self.container, documents=second)

        self.assertEqual(report.children["document"], len(DOCUMENTS))
        self.assertEqual(len(self.container.lexical_index.chunks("document")), len(DOCUMENTS))
        self.assertEqual(self.container.vector_stores[CorpusType.DOCUMENT].count(), len(DOCUMENTS))

    def test_reingesting_a_file_replaces_its_chunks(self) -> None:
        ingest(self.container, documents=DOCUMENTS)
        ingest(self.container, documents={"attendance-policy.txt": "Attendance policy: updated wording."})
        chunks = self.container.lexical_index.chunks("document")
        self.assertEqual(len(chunks), len(DOCUMENTS))
        updated = next(chunk for chunk in chunks if chunk.source_file == "attendance-policy.txt")
        self.assertEqual(updated.content, "Attendance policy: updated wording.")


if __name__ == "__main__":
    unittest.main()
