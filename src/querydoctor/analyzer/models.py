"""
Data models for the diagnostic pipeline.

These are the outputs of ingestion, detection and advice. They're designed
to be:
- Immutable (frozen=True): results don't change after creation
- Serializable: ``model_dump(mode="json")`` for the --json flag
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """
    Severity levels for detected issues.

    CRITICAL: severe impact, address first
    HIGH: significant performance issue
    MEDIUM: worth fixing
    LOW: minor optimization opportunity
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    # str defines all four comparisons, so each is overridden here.
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class Priority(str, Enum):
    """Priority of a suggestion; also used for impact and effort."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class IssueType(str, Enum):
    SLOW_QUERY = "slow_query"
    SEQUENTIAL_SCAN = "sequential_scan"
    HIGH_BUFFER_USAGE = "high_buffer_usage"
    MISSING_INDEX = "missing_index"
    INEFFICIENT_JOIN = "inefficient_join"
    OTHER = "other"


class SuggestionType(str, Enum):
    INDEX = "index"
    QUERY_REWRITE = "query_rewrite"
    SCHEMA_CHANGE = "schema_change"
    CONFIGURATION = "configuration"
    OTHER = "other"


class PerformanceMetrics(BaseModel):
    """
    Normalized performance profile derived from one execution plan.

    Times are milliseconds. ``cache_hit_ratio`` is an integer percentage.
    """

    model_config = ConfigDict(frozen=True)

    execution_time: float = 0.0
    planning_time: float = 0.0
    actual_time: float = Field(
        default=0.0,
        description="Execution time minus planning time",
    )
    rows_returned: int = 0
    buffer_usage: str = "0.0MB"
    cache_hit_ratio: int = Field(default=0, ge=0, le=100)
    estimated_cost: float = 0.0
    actual_cost: float = 0.0

    shared_hit_blocks: int = 0
    shared_read_blocks: int = 0
    shared_dirtied_blocks: int = 0
    shared_written_blocks: int = 0


class QueryIssue(BaseModel):
    """One problem detected in a plan or its metrics."""

    model_config = ConfigDict(frozen=True)

    type: IssueType
    severity: Severity
    message: str
    table: str | None = None
    column: str | None = None
    suggestion: str | None = None


class Suggestion(BaseModel):
    """
    One optimization suggestion.

    ``table`` and ``columns`` identify what an index suggestion covers, so
    de-duplication against existing indexes never re-parses the SQL text.
    """

    model_config = ConfigDict(frozen=True)

    type: SuggestionType
    priority: Priority
    title: str
    description: str
    sql: str | None = None
    impact: Priority = Priority.MEDIUM
    effort: Priority = Priority.MEDIUM
    table: str | None = None
    columns: tuple[str, ...] = ()

    @property
    def is_composite(self) -> bool:
        return len(self.columns) > 1


def rank_suggestions(suggestions: list[Suggestion]) -> list[Suggestion]:
    """Order suggestions by priority, high first, keeping discovery order for ties."""
    return sorted(suggestions, key=lambda s: -s.priority.rank)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisResult(BaseModel):
    """Complete diagnosis of one query."""

    model_config = ConfigDict(frozen=True)

    query: str
    performance: PerformanceMetrics
    issues: list[QueryIssue] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    ai_recommendations: list[str] = Field(default_factory=list)
    execution_plan: Any | None = Field(
        default=None,
        description="Raw EXPLAIN JSON, only kept when requested",
    )
    timestamp: datetime = Field(default_factory=_utcnow)
    duration_ms: float = 0.0

    @property
    def has_critical(self) -> bool:
        return any(i.severity == Severity.CRITICAL for i in self.issues)

    def issues_by_type(self, issue_type: IssueType) -> list[QueryIssue]:
        return [i for i in self.issues if i.type == issue_type]


class BenchmarkResult(BaseModel):
    """Statistics over repeated measured executions of one query."""

    model_config = ConfigDict(frozen=True)

    query: str
    iterations: int
    average_time: float
    min_time: float
    max_time: float
    standard_deviation: float
    results: list[PerformanceMetrics] = Field(default_factory=list)


class QueryComparison(BaseModel):
    """Benchmark of two equivalent queries; positive improvement means the candidate is faster."""

    model_config = ConfigDict(frozen=True)

    baseline: BenchmarkResult
    candidate: BenchmarkResult
    improvement: float
    recommendation: str
