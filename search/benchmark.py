"""
Retrieval Benchmark

Times repeated identical queries against several engines and reports
which one answered faster on average.

For each engine the query is run `iterations` times with a fixed result
limit. The first run's results are kept as the representative sample;
the remaining runs only contribute timings. An engine that raises gets
an empty timing sequence and zeroed stats, and the other engines are
still measured.

Usage:
    from search.benchmark import RetrievalBenchmark

    bench = RetrievalBenchmark({"lexical": lexical, "semantic": semantic})
    bench.initialize(documents)
    report = bench.compare("control de acceso", iterations=5)
    print(report.comparison.faster)
"""

from typing import Callable, Dict, List, Mapping, Optional, Sequence
import logging
import statistics
import time

from core.logging_config import log_performance

from .engine import SearchEngine
from .models import BenchmarkReport, Comparison, Document, EngineRun, SearchResult, TimingStats

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 5
DEFAULT_LIMIT = 10


def summarize_timings(timings_ms: Sequence[float], result_count: int) -> TimingStats:
    """Aggregate a timing sequence; an empty sequence yields zeros."""
    if not timings_ms:
        return TimingStats(result_count=result_count)

    return TimingStats(
        avg_ms=statistics.mean(timings_ms),
        min_ms=min(timings_ms),
        max_ms=max(timings_ms),
        result_count=result_count,
    )


def compare_runs(runs: Mapping[str, EngineRun]) -> Comparison:
    """
    Pick the engine with the lowest average latency.

    Engines without timings are ignored. Ties go to the engine listed
    first. When fewer than two engines were measured the difference is 0.
    """
    measured = [(name, run.stats.avg_ms) for name, run in runs.items() if run.succeeded]
    if not measured:
        return Comparison(faster=None, time_difference_ms=0.0)

    faster = min(measured, key=lambda item: item[1])[0]
    averages = [avg for _, avg in measured]
    return Comparison(faster=faster, time_difference_ms=abs(max(averages) - min(averages)))


def _failed_run(name: str, error: str) -> EngineRun:
    return EngineRun(
        engine=name,
        timings_ms=(),
        sample_results=(),
        stats=TimingStats(),
        error=error,
    )


class RetrievalBenchmark:
    """
    Comparative latency harness for search engines.

    Engines are only read during timing; builds needed before the first
    measurement happen outside the timed region.
    """

    def __init__(
        self,
        engines: Mapping[str, SearchEngine],
        documents: Optional[Sequence[Document]] = None,
        clock: Callable[[], float] = time.perf_counter,
        limit: int = DEFAULT_LIMIT,
        unavailable: Optional[Mapping[str, str]] = None
    ):
        """
        Args:
            engines: Engines to compare, keyed by report name (order is kept)
            documents: Corpus used to build engines that are not built yet
            clock: Monotonic clock returning seconds
            limit: Result limit used for every timed search
            unavailable: Engines already known to be unusable, mapped to the
                error to report; they are neither built nor timed
        """
        if not engines:
            raise ValueError("At least one engine is required")
        self.engines: Dict[str, SearchEngine] = dict(engines)
        self.documents: List[Document] = list(documents or [])
        self.clock = clock
        self.limit = limit
        self.unavailable: Dict[str, str] = dict(unavailable or {})

    def get_engines(self) -> Dict[str, SearchEngine]:
        return dict(self.engines)

    @log_performance()
    def initialize(self, documents: Sequence[Document]) -> Dict[str, float]:
        """
        Build every engine from a corpus.

        Returns:
            Build duration in milliseconds per engine
        """
        self.documents = list(documents)
        durations = {}
        for name, engine in self.engines.items():
            start = self.clock()
            engine.build(self.documents)
            durations[name] = (self.clock() - start) * 1000
            logger.info(f"{name} indexed {len(self.documents)} documents in {durations[name]:.1f}ms")
        return durations

    def compare(self, query: str, iterations: int = DEFAULT_ITERATIONS) -> BenchmarkReport:
        """
        Benchmark one query against every engine.

        Args:
            query: Query text
            iterations: Timed runs per engine

        Returns:
            Frozen BenchmarkReport
        """
        if iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {iterations}")

        runs = {name: self._run_engine(name, engine, query, iterations)
                for name, engine in self.engines.items()}
        comparison = compare_runs(runs)

        logger.info(
            f"Benchmark '{query[:50]}': faster={comparison.faster} "
            f"by {comparison.time_difference_ms:.2f}ms over {iterations} iterations"
        )

        return BenchmarkReport(
            query=query,
            iterations=iterations,
            runs=runs,
            comparison=comparison,
        )

    def _run_engine(
        self,
        name: str,
        engine: SearchEngine,
        query: str,
        iterations: int
    ) -> EngineRun:
        if name in self.unavailable:
            logger.debug(f"Skipping {name}: {self.unavailable[name]}")
            return _failed_run(name, self.unavailable[name])

        timings: List[float] = []
        sample: List[SearchResult] = []

        try:
            if not engine.is_built:
                engine.build(self.documents)

            for i in range(iterations):
                start = self.clock()
                results = engine.search(query, self.limit)
                timings.append((self.clock() - start) * 1000)
                if i == 0:
                    sample = results

        except Exception as e:
            logger.warning(f"Benchmark of {name} failed: {type(e).__name__}: {e}")
            return _failed_run(name, f"{type(e).__name__}: {e}")

        return EngineRun(
            engine=name,
            timings_ms=tuple(timings),
            sample_results=tuple(sample),
            stats=summarize_timings(timings, len(sample)),
        )
