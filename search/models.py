"""
Data Models for the Retrieval Core

Documents, search results, engine identifiers and benchmark reports.
Everything here is immutable once created; reports and results can be
handed to the reporting layer without defensive copies.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


# =============================================================================
# Enums
# =============================================================================

class EngineType(Enum):
    """
    Search strategies a caller can select.

    LEXICAL: BM25 term-frequency ranking
    SEMANTIC: Embedding cosine-similarity ranking
    BASIC: Unranked case-insensitive substring scan
    """
    LEXICAL = "lexical"
    SEMANTIC = "semantic"
    BASIC = "basic"

    @classmethod
    def parse(cls, value: Any) -> 'EngineType':
        """
        Resolve an engine identifier.

        Accepts an EngineType, its value, or the legacy names
        'bm25' and 'faiss'.
        """
        if isinstance(value, cls):
            return value

        key = str(value).strip().lower()
        aliases = {'bm25': cls.LEXICAL, 'faiss': cls.SEMANTIC}
        if key in aliases:
            return aliases[key]
        return cls(key)


class IndexState(Enum):
    """Lifecycle of an index owned by the CorpusStore."""
    EMPTY = "empty"
    BUILDING = "building"
    READY = "ready"
    STALE = "stale"


# =============================================================================
# Documents and Results
# =============================================================================

@dataclass(frozen=True)
class Document:
    """
    A corpus document supplied by the ingestion layer.

    Attributes:
        id: Unique, externally assigned identifier
        content: Text to index
        metadata: Opaque key-value data (filename, type, standards, ...)
    """
    id: str
    content: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'content': self.content,
            'metadata': dict(self.metadata),
        }


@dataclass(frozen=True)
class SearchResult:
    """
    A ranked hit returned by a search engine.

    Scores are engine specific (BM25 is unbounded, cosine lies in
    [-1, 1]) and must not be compared across engines.
    """
    document_id: str
    score: float
    content: str
    metadata: Mapping[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document_id': self.document_id,
            'score': self.score,
            'content': self.content,
            'metadata': dict(self.metadata),
        }


# =============================================================================
# Benchmark Report
# =============================================================================

@dataclass(frozen=True)
class TimingStats:
    """Latency aggregate for one engine; all zero when no run succeeded."""
    avg_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    result_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'avg_ms': self.avg_ms,
            'min_ms': self.min_ms,
            'max_ms': self.max_ms,
            'result_count': self.result_count,
        }


@dataclass(frozen=True)
class EngineRun:
    """Timed runs of a single engine for one query."""
    engine: str
    timings_ms: Tuple[float, ...]
    sample_results: Tuple[SearchResult, ...]
    stats: TimingStats
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return bool(self.timings_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'engine': self.engine,
            'timings_ms': list(self.timings_ms),
            'sample_results': [r.to_dict() for r in self.sample_results],
            'stats': self.stats.to_dict(),
            'error': self.error,
        }


@dataclass(frozen=True)
class Comparison:
    """Which engine was faster on average, and by how much."""
    faster: Optional[str]
    time_difference_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'faster': self.faster,
            'time_difference_ms': self.time_difference_ms,
        }


@dataclass(frozen=True)
class BenchmarkReport:
    """Result of one RetrievalBenchmark.compare call."""
    query: str
    iterations: int
    runs: Mapping[str, EngineRun]
    comparison: Comparison

    def __post_init__(self):
        if not isinstance(self.runs, MappingProxyType):
            object.__setattr__(self, 'runs', MappingProxyType(dict(self.runs)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'iterations': self.iterations,
            'engines': {name: run.to_dict() for name, run in self.runs.items()},
            'comparison': self.comparison.to_dict(),
        }
