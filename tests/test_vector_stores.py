import importlib.util
import unittest

from domain.entities import Chunk, CorpusType, Query, SparseVector
from infrastructure.embedding.minilm_embedder import MiniLMEmbedder
from infrastructure.storage.in_memory_vector_store import InMemoryVectorStore


def _chunks() -> list[Chunk]:
    return [
        Chunk(id="doc", content="policy", source_file="doc.txt", corpus_type=CorpusType.DOCUMENT),
        Chunk(id="n1", content="nathan", source_file="n.txt", corpus_type=CorpusType.TRANSCRIPT, client_scope=1),
        Chunk(id="r1", content="robert", source_file="r.txt", corpus_type=CorpusType.TRANSCRIPT, client_scope=2),
    ]


EMBEDDINGS = [[1.0, 0.0, 0.0], [0.8, 0.6, 0.0], [0.0, 0.0, 1.0]]
SPARSE = [SparseVector([0], [1.0]), SparseVector([0, 1], [0.6, 0.8]), SparseVector([2], [1.0])]


class VectorStoreContract:
    def make_store(self, dimension: int = 3):
        raise NotImplementedError

    def setUp(self) -> None:
        self.store = self.make_store()
        self.store.upsert(_chunks(), EMBEDDINGS, SPARSE)

    def test_dense_query_orders_by_similarity(self) -> None:
        matches = self.store.query([1.0, 0.0, 0.0], top_k=3)
        self.assertEqual([match.chunk.id for match in matches], ["doc", "n1", "r1"])
        self.assertAlmostEqual(matches[0].score, 1.0, places=5)

    def test_dense_query_applies_filter(self) -> None:
        matches = self.store.query([1.0, 0.0, 0.0], top_k=3, filter={"client_scope": 2})
        self.assertEqual([match.chunk.id for match in matches], ["r1"])

    def test_sparse_query(self) -> None:
        matches = self.store.query_sparse(SparseVector([1], [1.0]), top_k=5)
        self.assertEqual([match.chunk.id for match in matches], ["n1"])
        self.assertAlmostEqual(matches[0].score, 0.8)

    def test_sparse_query_applies_filter(self) -> None:
        matches = self.store.query_sparse(SparseVector([0], [1.0]), filter={"client_scope": 1})
        self.assertEqual([match.chunk.id for match in matches], ["n1"])

    def test_empty_sparse_query(self) -> None:
        self.assertEqual(self.store.query_sparse(SparseVector()), [])

    def test_upsert_replaces_by_id(self) -> None:
        replacement = Chunk(id="doc", content="new policy", source_file="doc.txt", corpus_type=CorpusType.DOCUMENT)
        self.store.upsert([replacement], [[0.0, 1.0, 0.0]])
        self.assertEqual(self.store.count(), 3)
        matches = self.store.query([0.0, 1.0, 0.0], top_k=1)
        self.assertEqual(matches[0].chunk.content, "new policy")

    def test_filtered_query_finds_minority_client(self) -> None:
        embedder = MiniLMEmbedder()
        store = self.make_store(embedder.dimension)
        chunks = [
            Chunk(
                id=f"r{i}",
                content=f"Robert medication note {i}",
                source_file=f"robert-{i}.txt",
                corpus_type=CorpusType.TRANSCRIPT,
                client_scope=2,
            )
            for i in range(60)
        ]
        chunks.append(
            Chunk(
                id="n0",
                content="Nathan medication note",
                source_file="nathan.txt",
                corpus_type=CorpusType.TRANSCRIPT,
                client_scope=1,
            )
        )
        store.upsert(chunks, embedder.embed_texts([chunk.content for chunk in chunks]))
        query = embedder.embed_query(Query(text="Robert medication note"))

        matches = store.query(query, top_k=10, filter={"client_scope": 1})
        self.assertEqual([match.chunk.id for match in matches], ["n0"])
        self.assertEqual(len(store.query(query, top_k=10, filter={"client_scope": 2})), 10)
        self.assertEqual(store.query(query, top_k=10, filter={"client_scope": 3}), [])

    def test_mismatched_lengths_raise(self) -> None:
        with self.assertRaises(ValueError):
            self.store.upsert(_chunks(), EMBEDDINGS[:1])


class TestInMemoryVectorStore(VectorStoreContract, unittest.TestCase):
    def make_store(self, dimension: int = 3):
        return InMemoryVectorStore()

    def test_empty_store(self) -> None:
        self.assertEqual(InMemoryVectorStore().query([1.0, 0.0, 0.0]), [])


@unittest.skipIf(importlib.util.find_spec("faiss") is None, "faiss not installed")
class TestFaissVectorStore(VectorStoreContract, unittest.TestCase):
    def make_store(self, dimension: int = 3):
        from infrastructure.storage.faiss_vector_store import FaissVectorStore

        return FaissVectorStore(dimension=dimension)

    def test_dimension_mismatch(self) -> None:
        with self.assertRaises(ValueError):
            self.store.upsert(_chunks()[:1], [[1.0, 0.0]])


if __name__ == "__main__":
    unittest.main()
