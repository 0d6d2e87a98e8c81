"""
Plan ingestion: raw EXPLAIN JSON to PerformanceMetrics.

Reads the top-level scalars with a default of 0, derives the cache hit
ratio and buffer footprint, and walks the whole tree for the largest
``Actual Rows`` value.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from querydoctor.analyzer.models import PerformanceMetrics
from querydoctor.parser.models import ExplainOutput, PlanNode
from querydoctor.parser.parser import parse_explain

logger = logging.getLogger(__name__)

BLOCK_SIZE_KB = 8


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, not to even."""
    return math.floor(value + 0.5)


def cache_hit_ratio(hit_blocks: float, read_blocks: float) -> int:
    """Percentage of blocks served from shared buffers, 0 when nothing was read."""
    total = hit_blocks + read_blocks
    if total <= 0:
        return 0
    ratio = round_half_up(hit_blocks / total * 100)
    return max(0, min(100, ratio))


def format_buffer_usage(total_blocks: float) -> str:
    """Blocks to MiB with one decimal, e.g. ``"12.5MB"``."""
    return f"{total_blocks * BLOCK_SIZE_KB / 1024:.1f}MB"


def max_actual_rows(root: PlanNode) -> int:
    """Largest ``Actual Rows`` anywhere in the tree (not the sum)."""
    best = 0.0
    for node in root.iter_nodes():
        if node.actual_rows is not None and node.actual_rows > best:
            best = node.actual_rows
    return int(best)


def metrics_from_explain(explain: ExplainOutput) -> PerformanceMetrics:
    """Derive metrics from an already-parsed plan."""
    execution_time = explain.scalar("execution_time")
    planning_time = explain.scalar("planning_time")
    hit = explain.scalar("shared_hit_blocks")
    read = explain.scalar("shared_read_blocks")

    return PerformanceMetrics(
        execution_time=execution_time,
        planning_time=planning_time,
        actual_time=execution_time - planning_time,
        rows_returned=max_actual_rows(explain.plan),
        buffer_usage=format_buffer_usage(hit + read),
        cache_hit_ratio=cache_hit_ratio(hit, read),
        estimated_cost=explain.scalar("total_cost"),
        actual_cost=execution_time,
        shared_hit_blocks=int(hit),
        shared_read_blocks=int(read),
        shared_dirtied_blocks=int(explain.scalar("shared_dirtied_blocks")),
        shared_written_blocks=int(explain.scalar("shared_written_blocks")),
    )


def ingest_plan(raw: Any) -> tuple[ExplainOutput, PerformanceMetrics]:
    """
    Parse a raw plan and derive its metrics in one step.

    Raises:
        ParseError: If ``raw`` is not an object or array.
    """
    explain = parse_explain(raw)
    metrics = metrics_from_explain(explain)
    logger.debug(
        "Ingested plan: %d nodes, %.2fms, cache hit %d%%",
        len(explain.all_nodes),
        metrics.execution_time,
        metrics.cache_hit_ratio,
    )
    return explain, metrics


def with_execution_time(metrics: PerformanceMetrics, elapsed_ms: float) -> PerformanceMetrics:
    """Replace the self-reported execution time with a measured one."""
    return metrics.model_copy(
        update={
            "execution_time": elapsed_ms,
            "actual_time": elapsed_ms - metrics.planning_time,
            "actual_cost": elapsed_ms,
        }
    )
