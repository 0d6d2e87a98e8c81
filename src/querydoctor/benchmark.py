"""
Repeated-trial benchmarking of a query.

Protocol per benchmark:
1. Warm-up runs, spaced apart, to prime caches. Their results and any
   errors are discarded (errors are logged).
2. Exactly ``iterations`` measured runs, each followed by a spacing
   delay. Each run's plan is ingested and its wall-clock time replaces
   the self-reported execution time.
3. Mean, min, max and population standard deviation of the measured times.

Any measured run failing aborts the benchmark with BenchmarkAbort; no
partial statistics are returned.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from querydoctor.analyzer.metrics import ingest_plan, with_execution_time
from querydoctor.analyzer.models import BenchmarkResult, PerformanceMetrics, QueryComparison
from querydoctor.exceptions import BenchmarkAbort, ValidationError

if TYPE_CHECKING:
    from querydoctor.config import Config
    from querydoctor.db.probe import PlanSource

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


def summarize_times(times: Sequence[float]) -> tuple[float, float, float, float]:
    """(mean, min, max, population standard deviation) of a non-empty sequence."""
    if not times:
        raise ValidationError("Cannot summarize an empty set of timings", field="times")
    n = len(times)
    mean = sum(times) / n
    variance = sum((t - mean) ** 2 for t in times) / n
    return mean, min(times), max(times), math.sqrt(variance)


def improvement_percent(baseline_ms: float, candidate_ms: float) -> float:
    """How much faster the candidate is, as a percentage of the baseline (0 for a zero baseline)."""
    if baseline_ms == 0:
        return 0.0
    return (baseline_ms - candidate_ms) / baseline_ms * 100


class BenchmarkRunner:
    """
    Runs warm-up and measured executions through a PlanSource.

    Delays and the clock are injectable so tests can run instantly.

    Example:
        runner = BenchmarkRunner(probe)
        result = await runner.benchmark("SELECT ...", iterations=5)
        print(result.average_time, result.standard_deviation)
    """

    def __init__(
        self,
        source: "PlanSource",
        warmup_runs: int = 3,
        warmup_delay_ms: float = 50.0,
        iteration_delay_ms: float = 100.0,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.perf_counter,
    ) -> None:
        self.source = source
        self.warmup_runs = warmup_runs
        self.warmup_delay_ms = warmup_delay_ms
        self.iteration_delay_ms = iteration_delay_ms
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, source: "PlanSource", config: "Config") -> "BenchmarkRunner":
        return cls(
            source,
            warmup_runs=config.benchmark_warmup_runs,
            warmup_delay_ms=config.benchmark_warmup_delay_ms,
            iteration_delay_ms=config.benchmark_iteration_delay_ms,
        )

    async def _warm_up(self, query: str) -> None:
        for attempt in range(1, self.warmup_runs + 1):
            try:
                await self.source.run_explain(query)
            except Exception as e:
                logger.warning("Warm-up run %d failed (ignored): %s", attempt, e)
            await self._sleep(self.warmup_delay_ms / 1000)

    async def _measure(self, query: str) -> PerformanceMetrics:
        start = self._clock()
        raw = await self.source.run_explain(query)
        elapsed_ms = (self._clock() - start) * 1000
        _, metrics = ingest_plan(raw)
        return with_execution_time(metrics, elapsed_ms)

    async def benchmark(self, query: str, iterations: int = 5) -> BenchmarkResult:
        """
        Benchmark one query.

        Raises:
            ValidationError: If ``iterations`` is below 1 or the query is blank.
            BenchmarkAbort: On the first failing measured run.
        """
        if iterations < 1:
            raise ValidationError("iterations must be at least 1", field="iterations")
        if not query or not query.strip():
            raise ValidationError("SQL query must not be empty", field="query")

        await self._warm_up(query)

        results: list[PerformanceMetrics] = []
        for iteration in range(1, iterations + 1):
            try:
                metrics = await self._measure(query)
            except Exception as e:
                logger.error("Benchmark run %d of %d failed: %s", iteration, iterations, e)
                raise BenchmarkAbort(iteration, e) from e
            results.append(metrics)
            await self._sleep(self.iteration_delay_ms / 1000)

        mean, fastest, slowest, stddev = summarize_times([m.execution_time for m in results])
        logger.info(
            "Benchmarked %d runs: avg %.2fms (min %.2f, max %.2f, sd %.2f)",
            iterations,
            mean,
            fastest,
            slowest,
            stddev,
        )
        return BenchmarkResult(
            query=query,
            iterations=iterations,
            average_time=mean,
            min_time=fastest,
            max_time=slowest,
            standard_deviation=stddev,
            results=results,
        )

    async def compare_queries(
        self,
        baseline: str,
        candidate: str,
        iterations: int = 5,
    ) -> QueryComparison:
        """Benchmark two queries one after the other and compare their averages."""
        first = await self.benchmark(baseline, iterations)
        second = await self.benchmark(candidate, iterations)

        improvement = improvement_percent(first.average_time, second.average_time)
        if improvement > 0:
            recommendation = f"Query 2 is {improvement:.2f}% faster than Query 1"
        else:
            recommendation = f"Query 1 is {abs(improvement):.2f}% faster than Query 2"

        return QueryComparison(
            baseline=first,
            candidate=second,
            improvement=improvement,
            recommendation=recommendation,
        )
