"""TF-IDF style sparse embeddings with a per-corpus vocabulary."""
from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Any, Iterable

from nltk.stem import PorterStemmer

from domain.entities import SparseVector, SparseVocabulary
from domain.errors import VocabularyNotBuiltError

logger = logging.getLogger(__name__)

STOPWORDS = frozenset({
    "about", "above", "after", "again", "against", "all", "also", "and", "any", "are",
    "aren", "because", "been", "before", "being", "below", "between", "both", "but",
    "can", "cannot", "could", "did", "didn", "does", "doesn", "doing", "don", "down",
    "during", "each", "few", "for", "from", "further", "had", "has", "have", "having",
    "her", "here", "hers", "herself", "him", "himself", "his", "how", "into", "isn",
    "its", "itself", "just", "let", "more", "most", "must", "myself", "nor", "not",
    "now", "off", "once", "only", "other", "ought", "our", "ours", "ourselves", "out",
    "over", "own", "same", "shall", "she", "should", "some", "such", "than", "that",
    "the", "their", "theirs", "them", "themselves", "then", "there", "these", "they",
    "this", "those", "through", "too", "under", "until", "very", "was", "wasn", "were",
    "weren", "what", "when", "where", "which", "while", "who", "whom", "why", "will",
    "with", "won", "would", "you", "your", "yours", "yourself", "yourselves",
})

_NON_WORD = re.compile(r"[^\w\s]")
_stemmer = PorterStemmer()


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation, drop short tokens and stopwords, then stem."""

    cleaned = _NON_WORD.sub(" ", text.lower())
    tokens = [token for token in cleaned.split() if len(token) > 2 and token not in STOPWORDS]
    return [_stemmer.stem(token) for token in tokens]


class SparseEmbeddingGenerator:
    """Builds a document-frequency vocabulary and turns text into L2-normalised sparse vectors."""

    def __init__(
        self,
        *,
        min_freq: float = 0.01,
        max_freq: float = 0.8,
        min_documents: int = 2,
        score_threshold: float = 0.01,
    ) -> None:
        self.min_freq = min_freq
        self.max_freq = max_freq
        self.min_documents = min_documents
        self.score_threshold = score_threshold
        self._vocabulary: SparseVocabulary | None = None

    @property
    def is_built(self) -> bool:
        return self._vocabulary is not None

    @property
    def vocabulary(self) -> SparseVocabulary:
        if self._vocabulary is None:
            raise VocabularyNotBuiltError("Sparse vocabulary has not been built.")
        return self._vocabulary

    @property
    def vocabulary_size(self) -> int:
        return len(self._vocabulary) if self._vocabulary is not None else 0

    def document_frequency_bounds(self, total_documents: int) -> tuple[int, int]:
        lower = max(self.min_documents, math.floor(total_documents * self.min_freq))
        upper = math.floor(total_documents * self.max_freq)
        return lower, upper

    def build_vocabulary(self, corpus: Iterable[str]) -> SparseVocabulary:
        """Replace the vocabulary with one built from ``corpus``."""

        documents = list(corpus)
        document_frequencies: Counter[str] = Counter()
        for text in documents:
            document_frequencies.update(set(tokenize(text)))

        lower, upper = self.document_frequency_bounds(len(documents))
        terms: dict[str, tuple[int, int]] = {}
        too_rare = too_common = 0
        for term, frequency in document_frequencies.items():
            if frequency < lower:
                too_rare += 1
            elif frequency > upper:
                too_common += 1
            else:
                terms[term] = (len(terms), frequency)

        self._vocabulary = SparseVocabulary(terms=terms, total_documents=len(documents))
        logger.info(
            "Sparse vocabulary built: %d terms from %d documents (df range %d-%d, too rare=%d, too common=%d)",
            len(terms),
            len(documents),
            lower,
            upper,
            too_rare,
            too_common,
        )
        return self._vocabulary

    def embed(self, text: str) -> SparseVector:
        vocabulary = self.vocabulary
        term_counts = Counter(tokenize(text))

        indices: list[int] = []
        weights: list[float] = []
        for term, count in term_counts.items():
            entry = vocabulary.terms.get(term)
            if entry is None:
                continue
            index, document_frequency = entry
            weight = math.log(1 + count) * math.log(vocabulary.total_documents / document_frequency)
            if weight > self.score_threshold:
                indices.append(index)
                weights.append(weight)

        magnitude = math.sqrt(sum(weight * weight for weight in weights))
        if magnitude > 0:
            weights = [weight / magnitude for weight in weights]
        return SparseVector(indices=indices, weights=weights)

    def export_vocabulary(self) -> dict[str, Any]:
        vocabulary = self.vocabulary
        return {
            "vocabulary": {term: index for term, (index, _) in vocabulary.terms.items()},
            "document_frequencies": {term: df for term, (_, df) in vocabulary.terms.items()},
            "total_documents": vocabulary.total_documents,
        }

    def import_vocabulary(self, data: dict[str, Any]) -> None:
        frequencies = data["document_frequencies"]
        terms = {
            term: (int(index), int(frequencies[term]))
            for term, index in data["vocabulary"].items()
        }
        self._vocabulary = SparseVocabulary(terms=terms, total_documents=int(data["total_documents"]))
        logger.info("Imported sparse vocabulary: %d terms, %d documents", len(terms), self._vocabulary.total_documents)


__all__ = ["SparseEmbeddingGenerator", "STOPWORDS", "tokenize"]
