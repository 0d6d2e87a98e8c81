"""
Plan ingestion and issue detection.

Module structure:
- models.py: Result types (PerformanceMetrics, QueryIssue, Suggestion, ...)
- metrics.py: Raw EXPLAIN JSON to PerformanceMetrics
- detector.py: Ordered rule evaluation
- rules/: One module per detection rule
- suggestions.py: Suggestions derived from issues and metrics alone
"""

from querydoctor.analyzer.detector import IssueDetector
from querydoctor.analyzer.metrics import ingest_plan, metrics_from_explain
from querydoctor.analyzer.models import (
    AnalysisResult,
    BenchmarkResult,
    IssueType,
    PerformanceMetrics,
    Priority,
    QueryComparison,
    QueryIssue,
    Severity,
    Suggestion,
    SuggestionType,
)
from querydoctor.analyzer.suggestions import basic_suggestions

__all__ = [
    "AnalysisResult",
    "BenchmarkResult",
    "IssueDetector",
    "IssueType",
    "PerformanceMetrics",
    "Priority",
    "QueryComparison",
    "QueryIssue",
    "Severity",
    "Suggestion",
    "SuggestionType",
    "basic_suggestions",
    "ingest_plan",
    "metrics_from_explain",
]
