"""
Query rewrite advice from text patterns.

Each check is a substring test over the normalized query and yields at
most one suggestion with a fixed impact/effort pair.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, NamedTuple

from querydoctor.advisor.sql_patterns import QueryPatterns, extract_patterns
from querydoctor.analyzer.models import Priority, Suggestion, SuggestionType

if TYPE_CHECKING:
    from querydoctor.analyzer.models import PerformanceMetrics

LARGE_RESULT_ROWS = 1000


class RewriteCheck(NamedTuple):
    name: str
    applies: Callable[[QueryPatterns, "PerformanceMetrics | None"], bool]
    priority: Priority
    title: str
    description: str
    sql: str
    impact: Priority
    effort: Priority


def _many_rows(metrics: "PerformanceMetrics | None") -> bool:
    return metrics is not None and metrics.rows_returned > LARGE_RESULT_ROWS


REWRITE_CHECKS: tuple[RewriteCheck, ...] = (
    RewriteCheck(
        "select_star",
        lambda p, m: p.has("select_star"),
        Priority.MEDIUM,
        "Replace SELECT * with specific columns",
        "Using SELECT * can impact performance and network transfer. Specify only needed columns.",
        "-- Replace SELECT * with specific column names",
        Priority.MEDIUM,
        Priority.LOW,
    ),
    RewriteCheck(
        "missing_where",
        lambda p, m: not p.has("where") and p.table_count > 0,
        Priority.HIGH,
        "Add WHERE clause to filter data",
        "Query without WHERE clause may scan entire table. Add filtering conditions.",
        "-- Add WHERE conditions to filter data",
        Priority.HIGH,
        Priority.MEDIUM,
    ),
    RewriteCheck(
        "join_order",
        lambda p, m: p.has("join") and p.table_count > 2,
        Priority.MEDIUM,
        "Optimize JOIN order",
        "Consider the order of JOINs to minimize intermediate result sets.",
        "-- Review and optimize JOIN order",
        Priority.MEDIUM,
        Priority.MEDIUM,
    ),
    RewriteCheck(
        "order_by_without_limit",
        lambda p, m: p.has("order_by") and not p.has("limit"),
        Priority.MEDIUM,
        "Add LIMIT with ORDER BY",
        "ORDER BY without LIMIT may return large result sets. Consider adding LIMIT.",
        "-- Add LIMIT clause after ORDER BY",
        Priority.MEDIUM,
        Priority.LOW,
    ),
    RewriteCheck(
        "large_result",
        lambda p, m: _many_rows(m) and not p.has("limit"),
        Priority.MEDIUM,
        "Add LIMIT clause",
        "Query returns {rows} rows. Consider adding LIMIT to improve performance.",
        "-- Add LIMIT 1000 or appropriate limit",
        Priority.MEDIUM,
        Priority.LOW,
    ),
    RewriteCheck(
        "leading_wildcard",
        lambda p, m: p.has("leading_wildcard"),
        Priority.HIGH,
        "Avoid leading wildcards in LIKE",
        "LIKE '%pattern' cannot use indexes effectively. Consider full-text search or different approach.",
        "-- Use LIKE 'pattern%' or full-text search",
        Priority.HIGH,
        Priority.MEDIUM,
    ),
    RewriteCheck(
        "function_on_column",
        lambda p, m: p.has("function_on_filter"),
        Priority.HIGH,
        "Avoid functions on indexed columns",
        "Functions on indexed columns prevent index usage. Consider indexing the function result.",
        "-- Create functional index or restructure query",
        Priority.HIGH,
        Priority.MEDIUM,
    ),
    RewriteCheck(
        "or_to_union",
        lambda p, m: p.has("or_in_where"),
        Priority.MEDIUM,
        "Consider UNION for OR conditions",
        "OR conditions can prevent index usage. Consider using UNION for better performance.",
        "-- Replace OR with UNION of separate queries",
        Priority.MEDIUM,
        Priority.HIGH,
    ),
)


def suggest_rewrites(
    sql: str,
    metrics: "PerformanceMetrics | None" = None,
) -> list[Suggestion]:
    """Run every rewrite check in order; metrics enable the row-count check."""
    patterns = extract_patterns(sql)
    rows = metrics.rows_returned if metrics is not None else 0
    return [
        Suggestion(
            type=SuggestionType.QUERY_REWRITE,
            priority=check.priority,
            title=check.title,
            description=check.description.format(rows=rows),
            sql=check.sql,
            impact=check.impact,
            effort=check.effort,
        )
        for check in REWRITE_CHECKS
        if check.applies(patterns, metrics)
    ]


def specific_rewrites(sql: str) -> list[str]:
    """Short, copy-pasteable rewrite hints for the common anti-patterns."""
    patterns = extract_patterns(sql)
    hints = []
    if patterns.has("select_star"):
        hints.append("-- Replace SELECT * with specific columns: SELECT id, name, email FROM table")
    if not patterns.has("where") and "from" in patterns.text:
        hints.append("-- Add WHERE clause: WHERE condition = value")
    if patterns.has("order_by") and not patterns.has("limit"):
        hints.append("-- Add LIMIT: LIMIT 1000")
    if patterns.has("in_subquery"):
        hints.append("-- Consider using EXISTS instead of IN for better performance")
    if patterns.has("group_by"):
        hints.append("-- Ensure GROUP BY columns match SELECT columns")
    return hints
