"""
Semantic Search Engine over Dense Embeddings

Ranks documents by cosine similarity between the query embedding and
each document embedding. Vectors come from an injected EmbeddingProvider,
so the engine works the same with a local transformer model or with the
deterministic hashing provider used in tests.

Features:
- Content truncated before embedding to bound provider cost
- Optional worker pool for document embedding (results keyed by id)
- All-or-nothing builds: a provider failure keeps the previous index
- Zero-vector safe cosine similarity, no similarity floor

Usage:
    from core.embedding_provider import create_provider
    from search.embeddings import EmbeddingIndex

    index = EmbeddingIndex(create_provider("hashing"))
    index.build(documents)
    results = index.search("gestión de incidentes", limit=5)
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import logging

import numpy as np

from core.embedding_provider import EmbeddingProvider
from core.errors import EmbeddingDimensionMismatch

from .engine import DocumentLookup, Ranking, SearchEngine
from .models import Document, EngineType

logger = logging.getLogger(__name__)

DEFAULT_MAX_EMBED_CHARS = 512


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector is all zeros
    """
    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    similarity = float(np.dot(vec1, vec2) / (norm1 * norm2))
    return max(-1.0, min(1.0, similarity))


def similarity_scores(query_vec: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query against every row of matrix."""
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype=np.float32)

    query_norm = np.linalg.norm(query_vec)
    if query_norm == 0:
        return np.zeros(matrix.shape[0], dtype=np.float32)

    row_norms = np.linalg.norm(matrix, axis=1)
    denominators = row_norms * query_norm
    dots = matrix @ query_vec

    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nonzero = denominators > 0
    scores[nonzero] = dots[nonzero] / denominators[nonzero]
    return np.clip(scores, -1.0, 1.0)


@dataclass(frozen=True)
class EmbeddingSnapshot:
    """Immutable vector index for one build; row i belongs to doc_ids[i]."""
    doc_ids: Tuple[str, ...]
    matrix: np.ndarray
    dimension: int
    model_id: str

    @property
    def total_docs(self) -> int:
        return len(self.doc_ids)


class EmbeddingIndex(SearchEngine[EmbeddingSnapshot]):
    """
    Cosine-similarity ranking engine.

    Embeddings are regenerated for every document on each build; nothing
    is cached between builds.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_embed_chars: int = DEFAULT_MAX_EMBED_CHARS,
        timeout: Optional[float] = None,
        max_workers: int = 1,
        document_lookup: Optional[DocumentLookup] = None
    ):
        """
        Args:
            provider: Source of normalized, fixed-dimension vectors
            max_embed_chars: Content is cut to this many characters before embedding
            timeout: Seconds allowed per provider call (None waits indefinitely)
            max_workers: Parallel embedding calls during a build
            document_lookup: Optional id -> Document resolver
        """
        super().__init__(document_lookup)
        if max_embed_chars <= 0:
            raise ValueError(f"max_embed_chars must be positive, got {max_embed_chars}")
        self.provider = provider
        self.max_embed_chars = max_embed_chars
        self.timeout = timeout
        self.max_workers = max(1, int(max_workers))

    @property
    def engine_type(self) -> EngineType:
        return EngineType.SEMANTIC

    def _truncate(self, text: str) -> str:
        text = text or ""
        return text[:self.max_embed_chars]

    def _embed(self, text: str) -> np.ndarray:
        return self.provider.embed(self._truncate(text), timeout=self.timeout)

    def _embed_documents(self, documents: List[Document]) -> Dict[str, np.ndarray]:
        """Embed every document; the first failure aborts the whole batch."""
        if self.max_workers == 1 or len(documents) == 1:
            return {doc.id: self._embed(doc.content) for doc in documents}

        vectors: Dict[str, np.ndarray] = {}
        with ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="embed-build"
        ) as executor:
            futures = {doc.id: executor.submit(self._embed, doc.content) for doc in documents}
            try:
                for doc_id, future in futures.items():
                    vectors[doc_id] = future.result()
            except Exception:
                for future in futures.values():
                    future.cancel()
                raise
        return vectors

    def _build_snapshot(self, documents: List[Document]) -> EmbeddingSnapshot:
        if not documents:
            logger.debug("Built empty embedding index")
            return EmbeddingSnapshot(
                doc_ids=(),
                matrix=np.zeros((0, 0), dtype=np.float32),
                dimension=0,
                model_id=self.provider.model_id,
            )

        vectors = self._embed_documents(documents)

        dimension = int(vectors[documents[0].id].shape[0])
        for doc in documents:
            actual = int(vectors[doc.id].shape[0])
            if actual != dimension:
                raise EmbeddingDimensionMismatch(self.provider.name, dimension, actual)

        doc_ids = tuple(doc.id for doc in documents)
        matrix = np.vstack([vectors[doc_id] for doc_id in doc_ids]).astype(np.float32)
        matrix.setflags(write=False)

        logger.debug(
            f"Built embedding index: {len(doc_ids)} documents, dimension {dimension}, "
            f"model {self.provider.model_id}"
        )

        return EmbeddingSnapshot(
            doc_ids=doc_ids,
            matrix=matrix,
            dimension=dimension,
            model_id=self.provider.model_id,
        )

    def _search_snapshot(self, snapshot: EmbeddingSnapshot, query: str) -> Ranking:
        if snapshot.total_docs == 0 or not query or not query.strip():
            return []

        query_vec = self._embed(query)
        if query_vec.shape[0] != snapshot.dimension:
            raise EmbeddingDimensionMismatch(
                self.provider.name, snapshot.dimension, int(query_vec.shape[0])
            )

        scores = similarity_scores(query_vec, snapshot.matrix)
        ranked = [(doc_id, float(score)) for doc_id, score in zip(snapshot.doc_ids, scores)]
        ranked.sort(key=lambda item: (-item[1], item[0]))
        return ranked

    def _snapshot_stats(self, snapshot: EmbeddingSnapshot) -> Dict[str, Any]:
        return {
            'total_documents': snapshot.total_docs,
            'embedding_dimension': snapshot.dimension,
            'provider_model_id': snapshot.model_id,
        }

    def snapshot(self) -> EmbeddingSnapshot:
        """Current immutable index state (for inspection and tests)."""
        snapshot, _ = self._require_published()
        return snapshot
