"""Tests for plan ingestion: raw EXPLAIN JSON to PerformanceMetrics."""

from __future__ import annotations

import json

import pytest

from conftest import make_plan, node, seq_scan
from querydoctor.analyzer.metrics import (
    cache_hit_ratio,
    format_buffer_usage,
    ingest_plan,
    round_half_up,
    with_execution_time,
)


class TestRounding:
    @pytest.mark.parametrize(
        "value,expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (2.4999, 2), (99.5, 100), (-0.5, 0)],
    )
    def test_half_rounds_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected


class TestCacheHitRatio:
    def test_zero_blocks_is_zero(self) -> None:
        assert cache_hit_ratio(0, 0) == 0

    def test_all_hits(self) -> None:
        assert cache_hit_ratio(500, 0) == 100

    def test_all_reads(self) -> None:
        assert cache_hit_ratio(0, 500) == 0

    def test_rounds_half_up(self) -> None:
        # 1 / 8 = 12.5%
        assert cache_hit_ratio(1, 7) == 13

    @pytest.mark.parametrize("hit,read", [(1, 2), (3, 997), (999, 1), (7, 0), (0, 7), (-5, 3)])
    def test_always_within_bounds(self, hit: float, read: float) -> None:
        assert 0 <= cache_hit_ratio(hit, read) <= 100


class TestIngestPlan:
    def test_scalars(self) -> None:
        _, metrics = ingest_plan(
            make_plan(execution_time=120.0, planning_time=20.0, hit=900, read=100, total_cost=55.5)
        )

        assert metrics.execution_time == 120.0
        assert metrics.planning_time == 20.0
        assert metrics.actual_time == 100.0
        assert metrics.actual_cost == 120.0
        assert metrics.estimated_cost == 55.5
        assert metrics.cache_hit_ratio == 90
        assert metrics.shared_hit_blocks == 900
        assert metrics.shared_read_blocks == 100

    def test_buffer_usage_in_megabytes(self) -> None:
        _, metrics = ingest_plan(make_plan(hit=1000, read=280))
        # 1280 blocks * 8KB = 10MB
        assert metrics.buffer_usage == "10.0MB"
        assert format_buffer_usage(0) == "0.0MB"

    def test_empty_plan_is_zeroed(self) -> None:
        _, metrics = ingest_plan([])
        assert metrics.execution_time == 0.0
        assert metrics.rows_returned == 0
        assert metrics.cache_hit_ratio == 0
        assert metrics.buffer_usage == "0.0MB"

    def test_rows_returned_is_max_not_sum(self) -> None:
        root = node("Hash Join", rows=10, children=[seq_scan("a", rows=400), seq_scan("b", rows=30)])
        _, metrics = ingest_plan(make_plan(root=root))
        assert metrics.rows_returned == 400

    def test_larger_descendant_raises_rows(self) -> None:
        root = node("Hash Join", rows=10, children=[seq_scan("a", rows=400)])
        _, before = ingest_plan(make_plan(root=root))

        root["Plans"][0]["Plans"] = [seq_scan("c", rows=9000)]
        _, after = ingest_plan(make_plan(root=root))

        assert before.rows_returned == 400
        assert after.rows_returned == 9000

    def test_smaller_descendant_changes_nothing(self) -> None:
        root = node("Hash Join", rows=10, children=[seq_scan("a", rows=400)])
        _, before = ingest_plan(make_plan(root=root))

        root["Plans"][0]["Plans"] = [seq_scan("c", rows=3)]
        _, after = ingest_plan(make_plan(root=root))

        assert before.rows_returned == after.rows_returned == 400

    def test_nan_blocks_are_ignored(self) -> None:
        raw = json.dumps(make_plan(hit=float("nan"), read=50))
        assert "NaN" in raw

        _, metrics = ingest_plan(raw)

        assert metrics.shared_hit_blocks == 0
        assert metrics.shared_read_blocks == 50
        assert metrics.cache_hit_ratio == 0

    @pytest.mark.parametrize("rows", ["Infinity", float("inf"), "-Infinity", "NaN"])
    def test_non_finite_rows_are_ignored(self, rows: object) -> None:
        root = node("Hash Join", rows=10, children=[seq_scan("a", rows=rows)])  # type: ignore[arg-type]
        _, metrics = ingest_plan(make_plan(root=root, execution_time=float("inf")))

        assert metrics.rows_returned == 10
        assert metrics.execution_time == 0.0

    def test_with_execution_time_replaces_timing(self) -> None:
        _, metrics = ingest_plan(make_plan(execution_time=5.0, planning_time=1.0))
        timed = with_execution_time(metrics, 42.0)

        assert timed.execution_time == 42.0
        assert timed.planning_time == 1.0
        assert metrics.execution_time == 5.0
