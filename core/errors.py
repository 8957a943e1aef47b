"""
Error Taxonomy for the Retrieval Core

Every failure raised by the search subsystem derives from RetrievalError,
so callers can catch the whole family in one place. None of these errors
is fatal: the CorpusStore turns each of them into a degraded but valid
result set.

Hierarchy:
    RetrievalError
    ├── DuplicateDocumentId
    ├── DocumentNotFound
    ├── IndexNotBuilt
    └── EmbeddingProviderUnavailable
        ├── EmbeddingProviderTimeout
        └── EmbeddingDimensionMismatch

Usage:
    from core.errors import EmbeddingProviderUnavailable

    try:
        results = semantic_index.search("acceso remoto")
    except EmbeddingProviderUnavailable as e:
        logger.warning(f"Semantic search unavailable ({e.provider}): {e}")
"""

from typing import Optional


class RetrievalError(Exception):
    """Base exception for the retrieval core."""


# =============================================================================
# Corpus Errors
# =============================================================================

class DuplicateDocumentId(RetrievalError):
    """A document id is already present in the corpus or build batch."""

    def __init__(self, doc_id: str):
        super().__init__(f"Duplicate document id: {doc_id!r}")
        self.doc_id = doc_id


class DocumentNotFound(RetrievalError):
    """No document with the given id exists in the corpus."""

    def __init__(self, doc_id: str):
        super().__init__(f"Document not found: {doc_id!r}")
        self.doc_id = doc_id


class IndexNotBuilt(RetrievalError):
    """An index was queried before its first build."""

    def __init__(self, engine: str):
        super().__init__(f"{engine} index has not been built")
        self.engine = engine


# =============================================================================
# Embedding Provider Errors
# =============================================================================

class EmbeddingProviderUnavailable(RetrievalError):
    """
    The embedding provider could not produce a usable vector.

    Attributes:
        provider: Name of the provider that failed
        retryable: Whether a later attempt could succeed
        original_error: Underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        provider: str,
        retryable: bool = True,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable
        self.original_error = original_error


class EmbeddingProviderTimeout(EmbeddingProviderUnavailable):
    """An embedding call exceeded the caller-supplied timeout."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(
            f"Embedding call to {provider} timed out after {timeout:.3f}s",
            provider,
            retryable=True
        )
        self.timeout = timeout


class EmbeddingDimensionMismatch(EmbeddingProviderUnavailable):
    """A provider returned a vector of the wrong length."""

    def __init__(self, provider: str, expected: int, actual: int):
        super().__init__(
            f"{provider} returned a {actual}-dimensional vector, expected {expected}",
            provider,
            retryable=False
        )
        self.expected = expected
        self.actual = actual
