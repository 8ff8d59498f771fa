"""Error taxonomy shared by the retrieval core."""
from __future__ import annotations


class AgencyRagError(Exception):
    """Base class for errors raised by the retrieval pipeline."""


class ResourceNotInitializedError(AgencyRagError):
    """A store, index or vocabulary was used before ingestion set it up."""


class VocabularyNotBuiltError(ResourceNotInitializedError):
    """Sparse embeddings were requested before ``build_vocabulary`` ran."""


class MissingClientScopeError(AgencyRagError):
    """A transcript search was issued without a client scope."""


__all__ = [
    "AgencyRagError",
    "ResourceNotInitializedError",
    "VocabularyNotBuiltError",
    "MissingClientScopeError",
]
