"""
Corpus Store

Owns the canonical document collection and the lifecycle of both indices.

Features:
- Insertion-ordered document storage with duplicate-id rejection
- Lazy rebuild: mutations only mark indices stale, the next query rebuilds
- Single-writer builds; readers keep using the previous snapshot while a
  rebuild is running
- Basic case-insensitive substring search that never fails
- Automatic fallback to basic search when an engine is unavailable
- Audit logging and metrics for every search and build

Usage:
    from search.corpus import CorpusStore
    from search.models import Document

    store = CorpusStore(provider=create_provider("hashing"))
    store.add_document(Document("pol-001", "Política de contraseñas ..."))
    docs = store.search("contraseñas", engine="semantic")
"""

from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Union
import logging
import threading
import time

from core.embedding_provider import EmbeddingProvider
from core.errors import DocumentNotFound, DuplicateDocumentId
from core.logging_config import AuditLogger
from core.metrics import MetricsCollector, PhaseTimer

from .benchmark import RetrievalBenchmark
from .bm25 import LexicalIndex
from .embeddings import DEFAULT_MAX_EMBED_CHARS, EmbeddingIndex
from .engine import SearchEngine
from .models import BenchmarkReport, Document, EngineType, IndexState

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20
DEFAULT_INDEX_METADATA_FIELDS = ("key_phrases", "filename")

EngineSelector = Union[EngineType, str]


class _IndexSlot:
    """An engine plus the corpus version its live snapshot was built from."""

    def __init__(self, engine: SearchEngine):
        self.engine = engine
        self.build_lock = threading.Lock()
        self.built_version: Optional[int] = None
        self.building = False


class CorpusStore:
    """
    Canonical document storage and query dispatcher.

    Create one store at application startup and pass it to whatever needs
    it; core.config.create_corpus_store wires one from configuration.
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        k1: Optional[float] = None,
        b: Optional[float] = None,
        idf_floor: Optional[float] = None,
        max_embed_chars: int = DEFAULT_MAX_EMBED_CHARS,
        embed_timeout: Optional[float] = None,
        embed_workers: int = 1,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        benchmark_iterations: int = 5,
        benchmark_limit: int = 10,
        index_metadata_fields: Sequence[str] = DEFAULT_INDEX_METADATA_FIELDS,
        metrics: Optional[MetricsCollector] = None,
        audit: Optional[AuditLogger] = None
    ):
        """
        Args:
            provider: Embedding provider for semantic search (None disables it)
            k1, b, idf_floor: BM25 parameters
            max_embed_chars: Truncation length before embedding
            embed_timeout: Seconds allowed per embedding call
            embed_workers: Parallel embedding calls during a build
            search_limit: Default maximum results per search
            benchmark_iterations: Default timed runs per engine
            benchmark_limit: Result limit used while benchmarking
            index_metadata_fields: Metadata fields appended to the content
                before indexing, in order (str or list of str values)
            metrics: Collector for query and build metrics
            audit: Audit logger for searches and builds
        """
        self._lock = threading.RLock()
        self._documents: Dict[str, Document] = {}
        self._version = 0

        self.search_limit = search_limit
        self.benchmark_iterations = benchmark_iterations
        self.benchmark_limit = benchmark_limit
        self.index_metadata_fields = tuple(index_metadata_fields)
        self.metrics = metrics or MetricsCollector()
        self.audit = audit or AuditLogger()

        self._slots: Dict[EngineType, _IndexSlot] = {
            EngineType.LEXICAL: _IndexSlot(LexicalIndex(
                k1=k1,
                b=b,
                idf_floor=idf_floor,
                document_lookup=self.get_document,
            ))
        }
        if provider is not None:
            self._slots[EngineType.SEMANTIC] = _IndexSlot(EmbeddingIndex(
                provider,
                max_embed_chars=max_embed_chars,
                timeout=embed_timeout,
                max_workers=embed_workers,
                document_lookup=self.get_document,
            ))
        self.provider = provider

    # =========================================================================
    # Documents
    # =========================================================================

    def add_document(self, doc: Document) -> None:
        """
        Add a document and mark every index stale.

        Raises:
            DuplicateDocumentId: If the id is already stored
        """
        with self._lock:
            if doc.id in self._documents:
                raise DuplicateDocumentId(doc.id)
            self._documents[doc.id] = doc
            self._version += 1
        logger.debug(f"Added document {doc.id}")

    def add_documents(self, docs: List[Document]) -> None:
        """Add a batch; nothing is stored if any id is a duplicate."""
        with self._lock:
            seen = set(self._documents)
            for doc in docs:
                if doc.id in seen:
                    raise DuplicateDocumentId(doc.id)
                seen.add(doc.id)
            for doc in docs:
                self._documents[doc.id] = doc
            if docs:
                self._version += 1

    def remove_document(self, doc_id: str) -> Document:
        """
        Remove a document and mark every index stale.

        Raises:
            DocumentNotFound: If no document has this id
        """
        with self._lock:
            doc = self._documents.pop(doc_id, None)
            if doc is None:
                raise DocumentNotFound(doc_id)
            self._version += 1
        logger.debug(f"Removed document {doc_id}")
        return doc

    def get_document(self, doc_id: str) -> Optional[Document]:
        return self._documents.get(doc_id)

    def all_documents(self) -> List[Document]:
        """All documents in insertion order."""
        with self._lock:
            return list(self._documents.values())

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def documents_by_metadata(self, key: str, value: str) -> List[Document]:
        """
        Documents whose metadata field contains value (case-insensitive).

        The field may hold a string or a list of strings, e.g.
        documents_by_metadata("standards", "iso 27001").
        """
        needle = value.lower()
        return [
            doc for doc in self.all_documents()
            if any(needle in text for text in _metadata_strings(doc.metadata.get(key)))
        ]

    # =========================================================================
    # Search
    # =========================================================================

    def search(
        self,
        query: str,
        engine: EngineSelector = EngineType.LEXICAL,
        limit: Optional[int] = None
    ) -> List[Document]:
        """
        Search the corpus.

        Ranked engines rebuild a stale index before querying. If the
        engine cannot answer, the failure is logged and basic search is
        used instead, so this method only raises for an unknown engine
        identifier.

        Args:
            query: Free-text query
            engine: 'lexical' (alias 'bm25'), 'semantic' (alias 'faiss') or 'basic'
            limit: Maximum documents returned (default search_limit)

        Returns:
            Matching documents, ranked for lexical/semantic, insertion
            order for basic
        """
        engine_type = EngineType.parse(engine)
        limit = self.search_limit if limit is None else limit

        if len(self._documents) == 0:
            return []

        if engine_type == EngineType.BASIC:
            return self._run_basic(query, limit)

        slot = self._slots.get(engine_type)
        start = time.perf_counter()
        try:
            if slot is None:
                raise LookupError(f"{engine_type.value} engine is not configured")
            self._ensure_ready(slot)
            results = slot.engine.search(query, limit)

        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            error_type = type(e).__name__
            logger.warning(
                f"{engine_type.value} search failed, using basic search: {error_type}: {e}",
                extra={'engine': engine_type.value, 'error_type': error_type}
            )
            self.metrics.record_query(engine_type.value, latency_ms, 0, success=False)
            self.metrics.record_fallback(engine_type.value, error_type)
            return self._run_basic(query, limit, fallback_from=engine_type.value)

        documents = [doc for doc in (self.get_document(r.document_id) for r in results)
                     if doc is not None]
        latency_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_query(engine_type.value, latency_ms, len(documents))
        self.audit.log_search(query, len(documents), mode=engine_type.value)
        return documents

    def basic_search(self, query: str, limit: Optional[int] = None) -> List[Document]:
        """
        Case-insensitive substring scan over content and metadata values.

        Unranked: matches come back in insertion order. A blank query
        matches nothing.
        """
        needle = (query or "").strip().lower()
        if not needle:
            return []

        matches = []
        for doc in self.all_documents():
            if needle in doc.content.lower() or any(
                needle in text
                for value in doc.metadata.values()
                for text in _metadata_strings(value)
            ):
                matches.append(doc)
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    def _run_basic(
        self,
        query: str,
        limit: int,
        fallback_from: Optional[str] = None
    ) -> List[Document]:
        start = time.perf_counter()
        documents = self.basic_search(query, limit)
        latency_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_query(EngineType.BASIC.value, latency_ms, len(documents))
        self.audit.log_search(
            query, len(documents), mode=EngineType.BASIC.value, fallback_from=fallback_from
        )
        return documents

    # =========================================================================
    # Index Lifecycle
    # =========================================================================

    def _ensure_ready(self, slot: _IndexSlot) -> None:
        """
        Rebuild an index whose snapshot is older than the corpus.

        If another thread is already rebuilding and a previous snapshot
        exists, return immediately so the caller reads that snapshot.
        """
        if slot.built_version == self._version:
            return

        acquired = slot.build_lock.acquire(blocking=not slot.engine.is_built)
        if not acquired:
            logger.debug(f"{slot.engine.name} rebuild in progress, serving previous snapshot")
            return

        try:
            with self._lock:
                version = self._version
                documents = list(self._documents.values())
            if slot.built_version == version:
                return
            documents = [self._indexed_document(doc) for doc in documents]

            slot.building = True
            with PhaseTimer(
                "index_build", self.metrics, engine=slot.engine.name, documents=len(documents)
            ) as timer:
                slot.engine.build(documents)
            slot.built_version = version

            self.audit.log_index_build(slot.engine.name, len(documents), timer.duration_ms)
            logger.info(
                f"Rebuilt {slot.engine.name} index with {len(documents)} documents",
                extra={'engine': slot.engine.name, 'duration_ms': round(timer.duration_ms, 3)}
            )
        finally:
            slot.building = False
            slot.build_lock.release()

    def _indexed_document(self, doc: Document) -> Document:
        """The document as the engines see it: content plus indexed metadata."""
        parts = [doc.content]
        for field_name in self.index_metadata_fields:
            value = doc.metadata.get(field_name)
            if isinstance(value, str):
                parts.append(value)
            elif isinstance(value, (list, tuple)):
                parts.extend(item for item in value if isinstance(item, str))

        if len(parts) == 1:
            return doc
        return Document(doc.id, " ".join(parts), doc.metadata)

    def rebuild(self, engine: Optional[EngineSelector] = None) -> None:
        """
        Bring indices up to date now instead of on the next query.

        Unlike search(), build failures propagate to the caller.
        """
        if engine is None:
            slots = list(self._slots.values())
        else:
            slots = [self._get_slot(EngineType.parse(engine))]
        for slot in slots:
            self._ensure_ready(slot)

    def state(self, engine: EngineSelector) -> IndexState:
        """Current lifecycle state of an engine's index."""
        slot = self._get_slot(EngineType.parse(engine))
        if slot.building:
            return IndexState.BUILDING
        if not slot.engine.is_built:
            return IndexState.EMPTY
        if slot.built_version == self._version:
            return IndexState.READY
        return IndexState.STALE

    def _get_slot(self, engine_type: EngineType) -> _IndexSlot:
        slot = self._slots.get(engine_type)
        if slot is None:
            raise ValueError(f"No index for engine: {engine_type.value}")
        return slot

    # =========================================================================
    # Benchmark and Statistics
    # =========================================================================

    def benchmark(self, query: str, iterations: Optional[int] = None) -> BenchmarkReport:
        """
        Compare the configured ranked engines on one query.

        Stale indices are rebuilt first; an engine that cannot be built is
        reported with its build error instead of timings and is not retried.
        """
        unavailable: Dict[str, str] = {}
        for slot in self._slots.values():
            try:
                self._ensure_ready(slot)
            except Exception as e:
                logger.warning(f"Could not build {slot.engine.name} index for benchmark: {e}")
                self.metrics.record_error(type(e).__name__)
                unavailable[slot.engine.name] = f"{type(e).__name__}: {e}"

        bench = RetrievalBenchmark(
            {slot.engine.name: slot.engine for slot in self._slots.values()},
            documents=[self._indexed_document(doc) for doc in self.all_documents()],
            limit=self.benchmark_limit,
            unavailable=unavailable,
        )
        return bench.compare(query, iterations or self.benchmark_iterations)

    def engine_stats(self) -> Dict[str, Any]:
        """Per-engine index stats; engines never built report not_initialized."""
        stats: Dict[str, Any] = {}
        for engine_type in (EngineType.LEXICAL, EngineType.SEMANTIC):
            slot = self._slots.get(engine_type)
            if slot is None or not slot.engine.is_built:
                stats[engine_type.value] = {'status': 'not_initialized'}
            else:
                stats[engine_type.value] = slot.engine.stats()
        stats['states'] = {
            engine_type.value: self.state(engine_type).value
            for engine_type in self._slots
        }
        return stats

    def statistics(self) -> Dict[str, Any]:
        """Document count overall and by metadata 'type'."""
        documents = self.all_documents()
        by_type = Counter(str(doc.metadata.get('type', 'unknown')) for doc in documents)
        return {
            'total': len(documents),
            'by_type': dict(by_type),
        }

    def close(self):
        """Release provider resources."""
        if self.provider is not None:
            self.provider.close()


def _metadata_strings(value: Any) -> List[str]:
    """Lowercased string values of a metadata field (str or list of str)."""
    if isinstance(value, str):
        return [value.lower()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [item.lower() for item in value if isinstance(item, str)]
    return []
