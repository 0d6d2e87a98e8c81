"""
BatchOrchestrator - run a target analyzer over many databases.

Per target:
    acquire permit -> cache lookup -> (hit: success)
                   -> attempt, retry with linear backoff -> success | failed | timeout
                   -> release permit

All targets are gathered together; one target failing never cancels or
delays the others. The summary is computed once, after every target has
reached a terminal state, so it does not depend on completion order.

Each attempt runs under ``asyncio.wait_for``: when the per-attempt timeout
elapses the in-flight analysis is cancelled, not merely reported late.

Usage:
    orchestrator = BatchOrchestrator(
        full_analyzer=PipelineTargetAnalyzer(get_probe),
        max_concurrency=5,
        event_sink=LoggingEventSink(),
    )
    result = await orchestrator.analyze_databases(targets)
    print(result.summary.overall_health_score)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence

from pydantic import ValidationError as PydanticValidationError

from querydoctor.analyzer.metrics import round_half_up
from querydoctor.batch.cache import ResultCache, cache_key
from querydoctor.batch.events import BatchEvent, BatchEventType, EventSink
from querydoctor.batch.models import (
    AnalysisTarget,
    BatchAnalysisResult,
    BatchResult,
    BatchStatus,
    BatchSummary,
    HealthDistribution,
    TargetHealth,
)
from querydoctor.exceptions import ConfigurationError, TargetFailure, ValidationError

if TYPE_CHECKING:
    from querydoctor.batch.targets import TargetAnalyzer
    from querydoctor.config import Config

logger = logging.getLogger(__name__)

TOP_RECOMMENDATION_LIMIT = 10

Sleep = Callable[[float], Awaitable[None]]


class _AttemptTimeout(Exception):
    """An attempt exceeded the per-attempt timeout."""


def health_band(score: float) -> str:
    if score >= 9:
        return "excellent"
    if score >= 7:
        return "good"
    if score >= 5:
        return "fair"
    if score >= 3:
        return "poor"
    return "critical"


def summarize(results: Sequence[BatchResult]) -> BatchSummary:
    """
    Aggregate the successful targets of a finished batch.

    Targets whose health carries no score are left out of the average and
    the distribution but still contribute issue counts and recommendations.
    """
    healths = [h for h in (r.health for r in results) if h is not None]

    scores = [h.score for h in healths if h.score is not None]
    overall = round_half_up(sum(scores) / len(scores)) if scores else 0

    bands: Counter[str] = Counter(health_band(score) for score in scores)

    # Counter keeps insertion order, and sorted() is stable, so ties stay first-seen.
    recommendation_counts: Counter[str] = Counter(
        rec for h in healths for rec in h.top_recommendations if rec
    )
    top = sorted(recommendation_counts.items(), key=lambda item: -item[1])

    return BatchSummary(
        overall_health_score=overall,
        total_issues=sum(h.total_issues for h in healths),
        critical_issues=sum(h.critical_issues for h in healths),
        security_risks=sum(1 for h in healths if h.security_at_risk),
        performance_issues=sum(1 for h in healths if h.performance_at_risk),
        top_recommendations=[rec for rec, _ in top[:TOP_RECOMMENDATION_LIMIT]],
        databases_by_health=HealthDistribution(**bands),
    )


class BatchOrchestrator:
    """
    Bounded-concurrency batch analysis with retries and a shared result cache.

    Args:
        full_analyzer: Runs the complete analysis for a target.
        quick_analyzer: Runs the lightweight analysis; defaults to full_analyzer.
        max_concurrency: Targets analyzed at the same time.
        timeout_seconds: Per-attempt timeout; None disables it.
        retry_attempts: Extra attempts after the first failure.
        retry_delay_seconds: Backoff unit; attempt n waits n * this before retrying.
        cache_results: Read and write the result cache.
        quick_mode: Use quick_analyzer; also part of the cache key.
        cache: Shared cache, created from cache_ttl_seconds if omitted.
        event_sink: Receives progress events.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        full_analyzer: "TargetAnalyzer",
        quick_analyzer: "TargetAnalyzer | None" = None,
        *,
        max_concurrency: int = 5,
        timeout_seconds: float | None = 300.0,
        retry_attempts: int = 2,
        retry_delay_seconds: float = 1.0,
        cache_results: bool = True,
        quick_mode: bool = False,
        cache_ttl_seconds: float = 1800.0,
        cache: ResultCache | None = None,
        event_sink: EventSink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1", config_key="max_concurrency")
        if retry_attempts < 0:
            raise ConfigurationError("retry_attempts cannot be negative", config_key="retry_attempts")

        self.full_analyzer = full_analyzer
        self.quick_analyzer = quick_analyzer or full_analyzer
        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = retry_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.cache_results = cache_results
        self.quick_mode = quick_mode
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache = cache if cache is not None else ResultCache(ttl_seconds=cache_ttl_seconds)
        self.event_sink = event_sink
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: "Config",
        full_analyzer: "TargetAnalyzer",
        quick_analyzer: "TargetAnalyzer | None" = None,
        **overrides: Any,
    ) -> "BatchOrchestrator":
        settings: dict[str, Any] = {
            "max_concurrency": config.max_concurrency,
            "timeout_seconds": config.batch_timeout_seconds,
            "retry_attempts": config.retry_attempts,
            "retry_delay_seconds": config.retry_delay_seconds,
            "cache_results": config.cache_enabled,
            "quick_mode": config.quick_mode,
            "cache_ttl_seconds": config.cache_ttl_seconds,
            "cache": ResultCache(
                ttl_seconds=config.cache_ttl_seconds,
                max_entries=config.cache_max_entries,
            ),
        }
        settings.update(overrides)
        return cls(full_analyzer, quick_analyzer, **settings)

    # ── Events ──────────────────────────────────────────────────────────

    def _emit(self, event_type: BatchEventType, target_id: str | None = None, **data: Any) -> None:
        if self.event_sink is None:
            return
        try:
            self.event_sink(BatchEvent(type=event_type, target_id=target_id, data=data))
        except Exception:
            logger.exception("Event sink failed on %s", event_type.value)

    # ── Batch ───────────────────────────────────────────────────────────

    async def analyze_databases(self, targets: Sequence[AnalysisTarget]) -> BatchAnalysisResult:
        """Analyze every target and aggregate once all have settled."""
        started = time.perf_counter()
        self._emit(BatchEventType.START, total=len(targets))
        logger.info(
            "Analyzing %d database(s), concurrency %d, %s mode",
            len(targets),
            self.max_concurrency,
            "quick" if self.quick_mode else "full",
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(target: AnalysisTarget) -> BatchResult:
            async with semaphore:
                result = await self._settle(target)
            self._emit(BatchEventType.DATABASE_COMPLETE, target.id, status=result.status.value, result=result)
            return result

        results = list(await asyncio.gather(*(run(t) for t in targets)))

        summary = summarize(results)
        batch = BatchAnalysisResult(
            total_databases=len(targets),
            successful=sum(1 for r in results if r.status == BatchStatus.SUCCESS),
            failed=sum(1 for r in results if r.status == BatchStatus.FAILED),
            skipped=sum(1 for r in results if r.status == BatchStatus.SKIPPED),
            timed_out=sum(1 for r in results if r.status == BatchStatus.TIMEOUT),
            results=results,
            summary=summary,
            execution_time_ms=(time.perf_counter() - started) * 1000,
        )
        logger.info(
            "Batch complete: %d ok, %d failed, %d timed out in %.0fms",
            batch.successful,
            batch.failed,
            batch.timed_out,
            batch.execution_time_ms,
        )
        self._emit(BatchEventType.COMPLETE, result=batch)
        return batch

    async def _settle(self, target: AnalysisTarget) -> BatchResult:
        """Never raises: anything unexpected becomes a failed result."""
        started = time.perf_counter()
        try:
            return await self.analyze_target(target)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected error analyzing %s", target.id)
            return BatchResult(
                target=target,
                status=BatchStatus.FAILED,
                error=f"{type(e).__name__}: {e}",
                execution_time_ms=(time.perf_counter() - started) * 1000,
            )

    # ── Single target ───────────────────────────────────────────────────

    async def _attempt(self, target: AnalysisTarget) -> TargetHealth:
        """One analyzer call, normalized to TargetHealth. A malformed payload fails the attempt."""
        analyzer = self.quick_analyzer if self.quick_mode else self.full_analyzer
        if self.timeout_seconds is None:
            value = await analyzer(target)
        else:
            try:
                value = await asyncio.wait_for(analyzer(target), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise _AttemptTimeout(
                    f"Analysis timed out after {self.timeout_seconds:g}s"
                ) from e

        try:
            return TargetHealth.from_result(value)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid health result for '{target.id}': {e.error_count()} invalid field(s)",
                field="result",
            ) from e

    async def analyze_target(self, target: AnalysisTarget) -> BatchResult:
        """
        Analyze one target: cache lookup, then attempts with linear backoff.

        A cache hit counts no attempts. Attempt n failing waits
        ``retry_delay_seconds * n`` before the next one; after
        ``retry_attempts`` retries the target is failed (or timed out, if
        the last attempt hit the timeout).
        """
        started = time.perf_counter()
        self._emit(BatchEventType.DATABASE_START, target.id)

        def elapsed_ms() -> float:
            return (time.perf_counter() - started) * 1000

        key = cache_key(target, self.quick_mode)
        if self.cache_results:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s", target.id)
                self._emit(BatchEventType.DATABASE_CACHE_HIT, target.id)
                return BatchResult(
                    target=target,
                    status=BatchStatus.SUCCESS,
                    result=cached,
                    execution_time_ms=elapsed_ms(),
                    cache_hit=True,
                )

        retry_count = 0
        while True:
            try:
                health = await self._attempt(target)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                timed_out = isinstance(e, _AttemptTimeout)
                message = str(e) or type(e).__name__
                retry_count += 1

                if retry_count > self.retry_attempts:
                    failure = TargetFailure(target.id, retry_count, message)
                    logger.warning("%s", failure.message)
                    self._emit(BatchEventType.DATABASE_FAILED, target.id, error=message)
                    return BatchResult(
                        target=target,
                        status=BatchStatus.TIMEOUT if timed_out else BatchStatus.FAILED,
                        error=message,
                        execution_time_ms=elapsed_ms(),
                        retry_count=retry_count,
                    )

                logger.warning(
                    "Attempt %d for %s failed, retrying: %s",
                    retry_count,
                    target.id,
                    message,
                )
                self._emit(BatchEventType.DATABASE_RETRY, target.id, attempt=retry_count, error=message)
                await self._sleep(self.retry_delay_seconds * retry_count)
                continue

            if self.cache_results:
                self.cache.set(key, health, ttl_seconds=self.cache_ttl_seconds)

            return BatchResult(
                target=target,
                status=BatchStatus.SUCCESS,
                result=health,
                execution_time_ms=elapsed_ms(),
                retry_count=retry_count,
            )

    # ── Cache management ────────────────────────────────────────────────

    def clear_cache(self) -> None:
        self.cache.clear()
        self._emit(BatchEventType.CACHE_CLEARED)

    def stats(self) -> dict[str, Any]:
        """Current settings plus cache statistics."""
        return {
            "config": {
                "max_concurrency": self.max_concurrency,
                "timeout_seconds": self.timeout_seconds,
                "retry_attempts": self.retry_attempts,
                "retry_delay_seconds": self.retry_delay_seconds,
                "cache_results": self.cache_results,
                "quick_mode": self.quick_mode,
            },
            "cache": self.cache.stats,
        }
