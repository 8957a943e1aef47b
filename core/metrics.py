"""
Observability and Metrics for the Retrieval Core

Collects in-process metrics for:
- Query latency and result counts per engine
- Index build durations
- Engine fallbacks and their causes
- Error counts by type

Features:
- Thread-safe collection (one RLock)
- Bounded latency history
- Percentile summaries for dashboards

Usage:
    from core.metrics import MetricsCollector, PhaseTimer

    metrics = MetricsCollector()
    metrics.record_query("lexical", latency_ms=1.8, result_count=4)

    with PhaseTimer("index_build", metrics, engine="semantic", documents=120):
        semantic_index.build(documents)

    summary = metrics.get_summary()
"""

import logging
import statistics
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_LATENCY_SAMPLES = 10000


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class IndexBuildMetric:
    """Metrics for a single index build."""
    engine: str
    documents: int
    duration_ms: float
    success: bool
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "engine": self.engine,
            "documents": self.documents,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "timestamp": self.timestamp.isoformat()
        }


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collection for search and indexing.

    One collector is created by the application and injected into the
    CorpusStore; nothing here is global.
    """

    def __init__(self, max_recent_builds: int = 50):
        """
        Initialize metrics collector.

        Args:
            max_recent_builds: Number of build records kept for the summary
        """
        self.max_recent_builds = max_recent_builds

        self._lock = threading.RLock()
        self._latencies: Dict[str, List[float]] = defaultdict(list)
        self._query_counts: Dict[str, int] = defaultdict(int)
        self._failed_queries: Dict[str, int] = defaultdict(int)
        self._result_totals: Dict[str, int] = defaultdict(int)
        self._builds: List[IndexBuildMetric] = []
        self._fallbacks: Dict[str, int] = defaultdict(int)
        self._error_counts: Dict[str, int] = defaultdict(int)

    def record_query(
        self,
        engine: str,
        latency_ms: float,
        result_count: int,
        success: bool = True
    ):
        """
        Record a search call.

        Args:
            engine: Engine identifier (lexical, semantic, basic)
            latency_ms: Wall-clock duration in milliseconds
            result_count: Number of results returned
            success: Whether the engine answered without error
        """
        with self._lock:
            self._query_counts[engine] += 1
            self._result_totals[engine] += result_count

            if success:
                samples = self._latencies[engine]
                samples.append(latency_ms)
                # Keep latencies bounded
                if len(samples) > MAX_LATENCY_SAMPLES:
                    self._latencies[engine] = samples[-MAX_LATENCY_SAMPLES // 2:]
            else:
                self._failed_queries[engine] += 1

    def record_index_build(
        self,
        engine: str,
        documents: int,
        duration_ms: float,
        success: bool = True
    ):
        """Record an index (re)build."""
        with self._lock:
            self._builds.append(IndexBuildMetric(
                engine=engine,
                documents=documents,
                duration_ms=duration_ms,
                success=success
            ))
            if len(self._builds) > self.max_recent_builds:
                self._builds = self._builds[-self.max_recent_builds:]

    def record_fallback(self, from_engine: str, error_type: str):
        """Record that a search degraded from one engine to basic search."""
        with self._lock:
            self._fallbacks[from_engine] += 1
            self._error_counts[error_type] += 1

    def record_error(self, error_type: str):
        """Record an error by type."""
        with self._lock:
            self._error_counts[error_type] += 1

    def get_summary(self) -> Dict[str, Any]:
        """
        Get aggregated metrics for display.

        Returns:
            Dictionary with per-engine query stats, builds, fallbacks and errors
        """
        with self._lock:
            engines = {}
            for engine, count in self._query_counts.items():
                engines[engine] = {
                    "queries": count,
                    "failures": self._failed_queries.get(engine, 0),
                    "results_returned": self._result_totals.get(engine, 0),
                    "latency": self._calculate_latency_stats(self._latencies.get(engine, [])),
                }

            return {
                "generated_at": datetime.now().isoformat(),
                "engines": engines,
                "builds": [b.to_dict() for b in self._builds[-10:]],
                "total_builds": len(self._builds),
                "fallbacks": dict(self._fallbacks),
                "errors": dict(self._error_counts),
            }

    def reset(self):
        """Reset all statistics."""
        with self._lock:
            self._latencies.clear()
            self._query_counts.clear()
            self._failed_queries.clear()
            self._result_totals.clear()
            self._builds.clear()
            self._fallbacks.clear()
            self._error_counts.clear()

    @staticmethod
    def _calculate_latency_stats(latencies: List[float]) -> Dict[str, float]:
        """Calculate latency statistics."""
        if not latencies:
            return {"avg_ms": 0, "p50_ms": 0, "p95_ms": 0, "max_ms": 0}

        sorted_latencies = sorted(latencies)
        n = len(sorted_latencies)

        return {
            "avg_ms": statistics.mean(sorted_latencies),
            "p50_ms": sorted_latencies[int(n * 0.50)],
            "p95_ms": sorted_latencies[int(n * 0.95)] if n > 20 else sorted_latencies[-1],
            "max_ms": sorted_latencies[-1]
        }


class PhaseTimer:
    """
    Context manager for timing an index build.

    Usage:
        with PhaseTimer("index_build", collector, engine="lexical", documents=42):
            lexical_index.build(documents)
    """

    def __init__(
        self,
        phase_name: str,
        collector: Optional[MetricsCollector] = None,
        engine: str = "",
        documents: int = 0
    ):
        """
        Initialize phase timer.

        Args:
            phase_name: Name of the phase (used in log lines)
            collector: Metrics collector to report to (None only logs)
            engine: Engine whose index is being built
            documents: Number of documents in the batch
        """
        self.phase_name = phase_name
        self.collector = collector
        self.engine = engine
        self.documents = documents
        self.start_time = None
        self.duration_ms = 0.0

    def __enter__(self) -> 'PhaseTimer':
        """Start timing."""
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Record duration."""
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        success = exc_type is None

        if self.collector is not None:
            self.collector.record_index_build(
                self.engine, self.documents, self.duration_ms, success=success
            )

        logger.debug(
            f"{self.phase_name} for {self.engine or 'unknown'} "
            f"{'completed' if success else 'failed'} in {self.duration_ms:.1f}ms"
        )
        return False
