"""
Tests for batch analysis: models, cache, events and the orchestrator.

Target analyzers are plain async callables defined here; retry delays
are recorded instead of slept, except in the concurrency test which
measures real wall time.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import Any

import pytest

from querydoctor.batch import (
    AnalysisTarget,
    BatchEventType,
    BatchOrchestrator,
    BatchStatus,
    InMemoryEventSink,
    ResultCache,
    TargetHealth,
    cache_key,
    summarize,
    target_fingerprint,
)
from querydoctor.batch.models import BatchResult
from querydoctor.config import Config
from querydoctor.exceptions import ConfigurationError


def target(n: int, **kwargs: Any) -> AnalysisTarget:
    return AnalysisTarget(id=f"db{n}", connection_identifier=f"postgresql://db{n}/app", **kwargs)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ScriptedAnalyzer:
    """
    Returns ``health`` for every target after failing ``failures[target.id]`` times.

    Calls are counted per target id.
    """

    def __init__(self, health: Any = None, failures: dict[str, int] | None = None) -> None:
        self.health = health if health is not None else {"overallScore": 8, "totalIssues": 1}
        self.failures = dict(failures or {})
        self.calls: dict[str, int] = defaultdict(int)

    async def __call__(self, t: AnalysisTarget) -> Any:
        self.calls[t.id] += 1
        if self.calls[t.id] <= self.failures.get(t.id, 0):
            raise ConnectionError(f"attempt {self.calls[t.id]} failed")
        return self.health


def orchestrator(analyzer: Any, **kwargs: Any) -> BatchOrchestrator:
    kwargs.setdefault("sleep", RecordingSleep())
    return BatchOrchestrator(analyzer, **kwargs)


# =============================================================================
# Models
# =============================================================================


class TestAnalysisTarget:
    def test_camel_case_connection_string(self) -> None:
        t = AnalysisTarget.model_validate({"id": "a", "connectionString": "postgresql://a/app"})

        assert t.connection_identifier == "postgresql://a/app"
        assert t.display_name == "a"

    def test_name_wins_for_display(self) -> None:
        assert target(1, name="Orders").display_name == "Orders"


class TestTargetHealth:
    def test_camel_case_keys(self) -> None:
        health = TargetHealth.from_result(
            {"overallScore": 7, "totalIssues": 3, "criticalIssues": 1, "securityRisk": "HIGH"}
        )

        assert health.score == 7
        assert health.total_issues == 3
        assert health.critical_issues == 1
        assert health.security_at_risk
        assert not health.performance_at_risk

    def test_score_and_snake_case(self) -> None:
        health = TargetHealth.from_result({"score": 9, "total_issues": 2, "performance_risk": "critical"})

        assert health.score == 9
        assert health.total_issues == 2
        assert health.performance_at_risk

    def test_nested_summary_fallback(self) -> None:
        health = TargetHealth.from_result(
            {"overallScore": 0, "summary": {"overallScore": 6, "topRecommendations": ["Add index"]}}
        )

        assert health.score == 6
        assert health.top_recommendations == ["Add index"]

    def test_unusable_result(self) -> None:
        assert TargetHealth.from_result("ok").score is None

    def test_instance_passes_through(self) -> None:
        health = TargetHealth(score=5)
        assert TargetHealth.from_result(health) is health

    def test_failed_result_has_no_health(self) -> None:
        result = BatchResult(target=target(1), status=BatchStatus.FAILED, result={"overallScore": 9})
        assert result.health is None


# =============================================================================
# Cache
# =============================================================================


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestCacheKeys:
    def test_fingerprint(self) -> None:
        assert target_fingerprint("postgresql://db1/app", quick_mode=False) == "6dcf0ac2"
        assert target_fingerprint("postgresql://db1/app", quick_mode=True) == "0b656a1e"

    def test_key_includes_id_and_mode(self) -> None:
        assert cache_key(target(1), quick_mode=False) == "batch_db1_6dcf0ac2"
        assert cache_key(target(1), quick_mode=True) != cache_key(target(1), quick_mode=False)


class TestResultCache:
    def test_ttl_expiry(self) -> None:
        clock = FakeClock()
        cache = ResultCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")

        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self) -> None:
        clock = FakeClock()
        cache = ResultCache(ttl_seconds=10, clock=clock)
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2)

        clock.now = 5
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_lru_eviction(self) -> None:
        cache = ResultCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.stats["evictions"] == 1

    def test_stats_and_clear(self) -> None:
        cache = ResultCache()
        cache.set("a", 1)
        cache.get("a")
        cache.get("missing")

        assert cache.stats["hits"] == 1
        assert cache.stats["misses"] == 1
        assert cache.stats["hit_rate"] == 0.5

        cache.clear()
        assert cache.stats["size"] == 0
        assert cache.stats["hits"] == 0

    def test_delete(self) -> None:
        cache = ResultCache()
        cache.set("a", 1)
        assert cache.delete("a")
        assert not cache.delete("a")


# =============================================================================
# Orchestrator
# =============================================================================


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_bounded_parallelism(self) -> None:
        delay = 0.05
        in_flight = 0
        peak = 0

        async def slow(t: AnalysisTarget) -> dict:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(delay)
            in_flight -= 1
            return {"overallScore": 10}

        runner = orchestrator(slow, max_concurrency=2, cache_results=False)
        started = time.perf_counter()
        result = await runner.analyze_databases([target(i) for i in range(5)])
        elapsed = time.perf_counter() - started

        assert result.successful == 5
        assert peak == 2
        # ceil(5 / 2) = 3 rounds; fully serial would be 5
        assert 3 * delay * 0.9 <= elapsed < 4.5 * delay

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self) -> None:
        async def jittery(t: AnalysisTarget) -> dict:
            await asyncio.sleep(0.01 * (5 - int(t.id[2:])))
            return {"overallScore": 5}

        result = await orchestrator(jittery, cache_results=False).analyze_databases(
            [target(i) for i in range(5)]
        )
        assert [r.target.id for r in result.results] == [f"db{i}" for i in range(5)]


class TestRetries:
    @pytest.mark.asyncio
    async def test_success_on_third_attempt(self) -> None:
        analyzer = ScriptedAnalyzer(failures={"db1": 2})
        sleep = RecordingSleep()
        runner = orchestrator(analyzer, retry_attempts=2, retry_delay_seconds=1.0, sleep=sleep)

        result = await runner.analyze_databases([target(1)])
        item = result.results[0]

        assert item.status == BatchStatus.SUCCESS
        assert item.retry_count == 2
        assert analyzer.calls["db1"] == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_failure_after_all_attempts(self) -> None:
        analyzer = ScriptedAnalyzer(failures={"db1": 3})
        sink = InMemoryEventSink()
        runner = orchestrator(analyzer, retry_attempts=2, event_sink=sink)

        result = await runner.analyze_databases([target(1)])
        item = result.results[0]

        assert item.status == BatchStatus.FAILED
        assert item.retry_count == 3
        assert item.error == "attempt 3 failed"
        assert analyzer.calls["db1"] == 3
        assert result.failed == 1
        assert [e.data["attempt"] for e in sink.of_type(BatchEventType.DATABASE_RETRY)] == [1, 2]
        assert len(sink.of_type(BatchEventType.DATABASE_FAILED)) == 1

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self) -> None:
        analyzer = ScriptedAnalyzer(failures={"db2": 99})
        result = await orchestrator(analyzer, retry_attempts=1).analyze_databases(
            [target(1), target(2), target(3)]
        )

        assert result.successful == 2
        assert result.failed == 1
        assert result.result_for("db2").error == "attempt 2 failed"

    @pytest.mark.asyncio
    async def test_no_retries(self) -> None:
        analyzer = ScriptedAnalyzer(failures={"db1": 1})
        result = await orchestrator(analyzer, retry_attempts=0).analyze_databases([target(1)])

        assert result.results[0].status == BatchStatus.FAILED
        assert result.results[0].retry_count == 1


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timed_out_attempt_is_cancelled(self) -> None:
        cancelled = []

        async def hangs(t: AnalysisTarget) -> dict:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(t.id)
                raise
            return {}

        runner = orchestrator(hangs, timeout_seconds=0.01, retry_attempts=0)
        result = await runner.analyze_databases([target(1)])
        item = result.results[0]

        assert item.status == BatchStatus.TIMEOUT
        assert item.error == "Analysis timed out after 0.01s"
        assert result.timed_out == 1
        assert result.failed == 0
        assert cancelled == ["db1"]

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self) -> None:
        calls = 0

        async def slow_then_fast(t: AnalysisTarget) -> dict:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return {"overallScore": 9}

        runner = orchestrator(slow_then_fast, timeout_seconds=0.01, retry_attempts=1)
        item = (await runner.analyze_databases([target(1)])).results[0]

        assert item.status == BatchStatus.SUCCESS
        assert item.retry_count == 1

    @pytest.mark.asyncio
    async def test_last_failure_decides_status(self) -> None:
        calls = 0

        async def timeout_then_error(t: AnalysisTarget) -> dict:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            raise ValueError("bad credentials")

        runner = orchestrator(timeout_then_error, timeout_seconds=0.01, retry_attempts=1)
        item = (await runner.analyze_databases([target(1)])).results[0]

        assert item.status == BatchStatus.FAILED
        assert item.error == "bad credentials"

    @pytest.mark.asyncio
    async def test_timeout_disabled(self) -> None:
        async def quick(t: AnalysisTarget) -> dict:
            await asyncio.sleep(0.02)
            return {"overallScore": 9}

        item = (await orchestrator(quick, timeout_seconds=None).analyze_databases([target(1)])).results[0]
        assert item.status == BatchStatus.SUCCESS


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_run_hits_cache(self) -> None:
        analyzer = ScriptedAnalyzer()
        sink = InMemoryEventSink()
        runner = orchestrator(analyzer, event_sink=sink)

        await runner.analyze_databases([target(1)])
        second = await runner.analyze_databases([target(1)])

        item = second.results[0]
        assert item.cache_hit
        assert item.status == BatchStatus.SUCCESS
        assert item.retry_count == 0
        assert analyzer.calls["db1"] == 1
        assert len(sink.of_type(BatchEventType.DATABASE_CACHE_HIT)) == 1

    @pytest.mark.asyncio
    async def test_mode_is_part_of_key(self) -> None:
        analyzer = ScriptedAnalyzer()
        cache = ResultCache()
        await orchestrator(analyzer, cache=cache).analyze_databases([target(1)])
        await orchestrator(analyzer, cache=cache, quick_mode=True).analyze_databases([target(1)])

        assert analyzer.calls["db1"] == 2

    @pytest.mark.asyncio
    async def test_quick_mode_uses_quick_analyzer(self) -> None:
        full = ScriptedAnalyzer()
        quick = ScriptedAnalyzer()
        await orchestrator(full, quick_analyzer=quick, quick_mode=True).analyze_databases([target(1)])

        assert quick.calls["db1"] == 1
        assert full.calls["db1"] == 0

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self) -> None:
        analyzer = ScriptedAnalyzer(failures={"db1": 1})
        runner = orchestrator(analyzer, retry_attempts=0)

        await runner.analyze_databases([target(1)])
        second = await runner.analyze_databases([target(1)])

        assert second.results[0].status == BatchStatus.SUCCESS
        assert not second.results[0].cache_hit

    @pytest.mark.asyncio
    async def test_caching_disabled(self) -> None:
        analyzer = ScriptedAnalyzer()
        runner = orchestrator(analyzer, cache_results=False)

        await runner.analyze_databases([target(1)])
        await runner.analyze_databases([target(1)])
        assert analyzer.calls["db1"] == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self) -> None:
        analyzer = ScriptedAnalyzer()
        sink = InMemoryEventSink()
        runner = orchestrator(analyzer, event_sink=sink)

        await runner.analyze_databases([target(1)])
        runner.clear_cache()
        await runner.analyze_databases([target(1)])

        assert analyzer.calls["db1"] == 2
        assert len(sink.of_type(BatchEventType.CACHE_CLEARED)) == 1
        assert runner.stats()["cache"]["size"] == 1


class BrokenCache(ResultCache):
    def get(self, key: str) -> Any:
        raise RuntimeError("cache backend down")


class TestIsolation:
    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_result(self) -> None:
        runner = orchestrator(ScriptedAnalyzer(), cache=BrokenCache())
        result = await runner.analyze_databases([target(1), target(2)])

        assert result.failed == 2
        assert result.results[0].error == "RuntimeError: cache backend down"

    @pytest.mark.asyncio
    async def test_malformed_health_fails_only_that_target(self) -> None:
        bad = {"overallScore": "n/a", "securityRisk": 3}
        calls: dict[str, int] = defaultdict(int)

        async def analyzer(t: AnalysisTarget) -> Any:
            calls[t.id] += 1
            return bad if t.id == "db2" else {"overallScore": 8, "totalIssues": 1}

        runner = orchestrator(analyzer)
        result = await runner.analyze_databases([target(1), target(2), target(3)])

        assert result.successful == 2
        assert result.failed == 1
        failed = result.result_for("db2")
        assert failed.status == BatchStatus.FAILED
        assert failed.error == "Invalid health result for 'db2': 2 invalid field(s)"
        # Retried like any other failed attempt
        assert failed.retry_count == 3
        assert calls["db2"] == 3
        assert result.summary.overall_health_score == 8

    @pytest.mark.asyncio
    async def test_malformed_health_is_not_cached(self) -> None:
        async def analyzer(t: AnalysisTarget) -> Any:
            return {"overallScore": "n/a"}

        runner = orchestrator(analyzer, retry_attempts=0)
        await runner.analyze_databases([target(1)])

        assert runner.cache.stats["size"] == 0

    @pytest.mark.asyncio
    async def test_cache_holds_normalized_health(self) -> None:
        runner = orchestrator(ScriptedAnalyzer({"summary": {"overallScore": 6}}))
        first = await runner.analyze_databases([target(1)])
        second = await runner.analyze_databases([target(1)])

        assert isinstance(first.results[0].result, TargetHealth)
        assert second.results[0].cache_hit
        assert second.results[0].health == TargetHealth(score=6)

    @pytest.mark.asyncio
    async def test_failing_sink_is_ignored(self) -> None:
        def sink(event: Any) -> None:
            raise RuntimeError("display closed")

        result = await orchestrator(ScriptedAnalyzer(), event_sink=sink).analyze_databases([target(1)])
        assert result.successful == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        result = await orchestrator(ScriptedAnalyzer()).analyze_databases([])

        assert result.total_databases == 0
        assert result.summary.overall_health_score == 0


class TestEvents:
    @pytest.mark.asyncio
    async def test_event_sequence(self) -> None:
        sink = InMemoryEventSink()
        await orchestrator(ScriptedAnalyzer(), event_sink=sink).analyze_databases([target(1), target(2)])

        types = [e.type for e in sink.events]
        assert types[0] == BatchEventType.START
        assert sink.events[0].data == {"total": 2}
        assert types[-1] == BatchEventType.COMPLETE
        assert types.count(BatchEventType.DATABASE_START) == 2
        assert types.count(BatchEventType.DATABASE_COMPLETE) == 2

        complete = sink.of_type(BatchEventType.DATABASE_COMPLETE)[0]
        assert complete.data["status"] == "success"


# =============================================================================
# Summary
# =============================================================================


def ok(n: int, health: Any) -> BatchResult:
    return BatchResult(target=target(n), status=BatchStatus.SUCCESS, result=health)


class TestSummary:
    def test_aggregates_successful_targets(self) -> None:
        results = [
            ok(1, {"overallScore": 10, "totalIssues": 0, "topRecommendations": ["Add index"]}),
            ok(2, {"overallScore": 8, "totalIssues": 2, "criticalIssues": 1, "performanceRisk": "high",
                   "topRecommendations": ["Add LIMIT", "Add index"]}),
            ok(3, {"overallScore": 0, "totalIssues": 9, "securityRisk": "critical",
                   "topRecommendations": ["Add LIMIT", "Vacuum"]}),
            BatchResult(target=target(4), status=BatchStatus.FAILED, error="down"),
        ]
        summary = summarize(results)

        # round((10 + 8 + 0) / 3)
        assert summary.overall_health_score == 6
        assert summary.total_issues == 11
        assert summary.critical_issues == 1
        assert summary.performance_issues == 1
        assert summary.security_risks == 1
        assert summary.databases_by_health.model_dump() == {
            "excellent": 1,
            "good": 1,
            "fair": 0,
            "poor": 0,
            "critical": 1,
        }
        assert summary.top_recommendations == ["Add index", "Add LIMIT", "Vacuum"]

    def test_average_rounds_half_up(self) -> None:
        summary = summarize([ok(1, {"overallScore": 7}), ok(2, {"overallScore": 8})])
        assert summary.overall_health_score == 8

    def test_missing_score_is_excluded(self) -> None:
        summary = summarize([ok(1, {"overallScore": 4}), ok(2, {"totalIssues": 3})])

        assert summary.overall_health_score == 4
        assert summary.total_issues == 3

    @pytest.mark.parametrize(
        "score,band",
        [(10, "excellent"), (9, "excellent"), (8.9, "good"), (7, "good"), (5, "fair"),
         (4.5, "poor"), (3, "poor"), (2.9, "critical"), (0, "critical")],
    )
    def test_bands(self, score: float, band: str) -> None:
        summary = summarize([ok(1, {"overallScore": score})])
        assert getattr(summary.databases_by_health, band) == 1

    def test_top_ten_by_count(self) -> None:
        recs = [f"rec {i}" for i in range(12)]
        results = [ok(1, {"overallScore": 5, "topRecommendations": recs}),
                   ok(2, {"overallScore": 5, "topRecommendations": ["rec 11"]})]

        top = summarize(results).top_recommendations
        assert len(top) == 10
        assert top[0] == "rec 11"
        assert top[1:] == [f"rec {i}" for i in range(9)]


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    def test_from_config(self) -> None:
        config = Config(max_concurrency=3, retry_attempts=1, batch_timeout_seconds=None, cache_max_entries=7)
        runner = BatchOrchestrator.from_config(config, ScriptedAnalyzer())

        assert runner.max_concurrency == 3
        assert runner.retry_attempts == 1
        assert runner.timeout_seconds is None
        assert runner.cache.max_entries == 7

    def test_overrides_win(self) -> None:
        runner = BatchOrchestrator.from_config(Config(), ScriptedAnalyzer(), max_concurrency=9)
        assert runner.max_concurrency == 9

    def test_invalid_concurrency(self) -> None:
        with pytest.raises(ConfigurationError):
            BatchOrchestrator(ScriptedAnalyzer(), max_concurrency=0)

    def test_stats(self) -> None:
        stats = BatchOrchestrator(ScriptedAnalyzer(), retry_attempts=4).stats()

        assert stats["config"]["retry_attempts"] == 4
        assert stats["cache"]["size"] == 0
