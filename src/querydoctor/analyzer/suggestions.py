"""Plan-driven suggestions that need no query text."""

from __future__ import annotations

from querydoctor.analyzer.models import (
    IssueType,
    PerformanceMetrics,
    Priority,
    QueryIssue,
    Suggestion,
    SuggestionType,
)


def basic_suggestions(
    issues: list[QueryIssue],
    metrics: PerformanceMetrics,
) -> list[Suggestion]:
    suggestions = []

    if metrics.rows_returned > 1000:
        suggestions.append(
            Suggestion(
                type=SuggestionType.QUERY_REWRITE,
                priority=Priority.MEDIUM,
                title="Add LIMIT clause",
                description="Query returns many rows, consider adding LIMIT to improve performance",
                sql="-- Add LIMIT 1000 or appropriate limit",
                impact=Priority.MEDIUM,
                effort=Priority.LOW,
            )
        )

    if any(issue.type == IssueType.SEQUENTIAL_SCAN for issue in issues):
        suggestions.append(
            Suggestion(
                type=SuggestionType.QUERY_REWRITE,
                priority=Priority.HIGH,
                title="Add WHERE clause",
                description="Query performs full table scan, add WHERE clause to filter data",
                sql="-- Add appropriate WHERE conditions",
                impact=Priority.HIGH,
                effort=Priority.MEDIUM,
            )
        )

    if metrics.rows_returned > 100:
        suggestions.append(
            Suggestion(
                type=SuggestionType.QUERY_REWRITE,
                priority=Priority.LOW,
                title="Select specific columns",
                description="Use specific column names instead of SELECT * for better performance",
                sql="-- Replace SELECT * with specific columns",
                impact=Priority.LOW,
                effort=Priority.LOW,
            )
        )

    return suggestions
