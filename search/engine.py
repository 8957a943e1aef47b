"""
Search Engine Contract

Both ranking engines implement the same build/search/stats interface so
the CorpusStore and the benchmark can use them interchangeably.

Index state lives in an immutable snapshot. A build assembles a new
snapshot in local variables and publishes it with one attribute
assignment; searches read the attribute once and work on that snapshot
for the rest of the call, so they never see a half-built index and never
wait for a writer. Builds are serialized with a lock.
"""

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar
import threading

from core.errors import DuplicateDocumentId, IndexNotBuilt

from .models import Document, EngineType, SearchResult

DocumentLookup = Callable[[str], Optional[Document]]

SnapshotT = TypeVar('SnapshotT')

# (doc_id, score) pairs produced by an engine before materialization
Ranking = List[Tuple[str, float]]


def check_unique_ids(documents: Sequence[Document]) -> List[str]:
    """
    Return document ids in batch order.

    Raises:
        DuplicateDocumentId: On the first repeated id
    """
    seen = set()
    ids = []
    for doc in documents:
        if doc.id in seen:
            raise DuplicateDocumentId(doc.id)
        seen.add(doc.id)
        ids.append(doc.id)
    return ids


class SearchEngine(ABC, Generic[SnapshotT]):
    """
    Abstract base class for ranking engines.

    Subclasses implement _build_snapshot(), _search_snapshot() and
    _snapshot_stats(); this class handles locking, publication and
    result materialization.
    """

    def __init__(self, document_lookup: Optional[DocumentLookup] = None):
        """
        Args:
            document_lookup: Resolves a document id to its Document when
                materializing results. When omitted, each snapshot keeps a
                read-only view of the batch it was built from.
        """
        self._document_lookup = document_lookup
        self._build_lock = threading.Lock()
        # (snapshot, id -> Document view), replaced as one reference
        self._published: Optional[Tuple[SnapshotT, Mapping[str, Document]]] = None
        self._version = 0

    @property
    @abstractmethod
    def engine_type(self) -> EngineType:
        """Engine identifier."""
        pass

    @property
    def name(self) -> str:
        return self.engine_type.value

    @property
    def is_built(self) -> bool:
        return self._published is not None

    @property
    def version(self) -> int:
        """Number of successful builds so far."""
        return self._version

    def build(self, documents: Sequence[Document]) -> None:
        """
        Rebuild the index from scratch.

        The previous snapshot stays live until the new one is complete;
        on failure it is kept unchanged.

        Raises:
            DuplicateDocumentId: If two documents share an id
        """
        documents = list(documents)
        with self._build_lock:
            check_unique_ids(documents)
            snapshot = self._build_snapshot(documents)
            if self._document_lookup is not None:
                docs_view = MappingProxyType({})
            else:
                docs_view = MappingProxyType({doc.id: doc for doc in documents})
            self._published = (snapshot, docs_view)
            self._version += 1

    def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        """
        Rank indexed documents against a query.

        Args:
            query: Free-text query
            limit: Maximum number of results

        Returns:
            Results in descending score order (possibly empty)

        Raises:
            IndexNotBuilt: If build() has never succeeded
        """
        snapshot, documents = self._require_published()
        if limit <= 0:
            return []

        ranked = self._search_snapshot(snapshot, query)
        return self._materialize(ranked, documents, limit)

    def stats(self) -> Dict[str, Any]:
        """Describe the current snapshot."""
        snapshot, _ = self._require_published()
        stats = {'engine': self.name}
        stats.update(self._snapshot_stats(snapshot))
        return stats

    @abstractmethod
    def _build_snapshot(self, documents: List[Document]) -> SnapshotT:
        """Construct a complete snapshot for a batch of unique documents."""
        pass

    @abstractmethod
    def _search_snapshot(self, snapshot: SnapshotT, query: str) -> Ranking:
        """Return every matching (doc_id, score) pair, best first."""
        pass

    @abstractmethod
    def _snapshot_stats(self, snapshot: SnapshotT) -> Dict[str, Any]:
        pass

    def _require_published(self) -> Tuple[SnapshotT, Mapping[str, Document]]:
        published = self._published
        if published is None:
            raise IndexNotBuilt(self.name)
        return published

    def _materialize(
        self,
        ranked: Ranking,
        documents: Mapping[str, Document],
        limit: int
    ) -> List[SearchResult]:
        results = []
        for doc_id, score in ranked:
            if self._document_lookup is not None:
                doc = self._document_lookup(doc_id)
            else:
                doc = documents.get(doc_id)
            # Documents removed since the last build are skipped
            if doc is None:
                continue
            results.append(SearchResult(
                document_id=doc_id,
                score=float(score),
                content=doc.content,
                metadata=doc.metadata,
            ))
            if len(results) >= limit:
                break
        return results
