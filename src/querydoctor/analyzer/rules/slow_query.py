"""
Rule: Slow Query

Flags queries whose total execution time exceeds a threshold, escalating
to critical past a second one. Both comparisons are strict: exactly
1000ms is not slow.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from querydoctor.analyzer.models import IssueType, QueryIssue, Severity
from querydoctor.analyzer.rules.base import Rule, RuleConfig

if TYPE_CHECKING:
    from querydoctor.analyzer.models import PerformanceMetrics
    from querydoctor.parser.models import ExplainOutput


def _format_ms(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


class SlowQueryConfig(RuleConfig):
    slow_query_ms: float = Field(default=1000.0, gt=0)
    critical_query_ms: float = Field(default=5000.0, gt=0)


class SlowQuery(Rule):
    """Detect queries above the execution time threshold."""

    rule_id = "SLOW_QUERY"
    version = "1.0.0"
    issue_type = IssueType.SLOW_QUERY
    severity = Severity.HIGH
    description = "Execution time above the recommended threshold"
    config_schema = SlowQueryConfig

    def analyze(
        self,
        explain: "ExplainOutput",
        metrics: "PerformanceMetrics",
    ) -> list[QueryIssue]:
        config: SlowQueryConfig = self.config  # type: ignore[assignment]
        elapsed = metrics.execution_time

        if elapsed <= config.slow_query_ms:
            return []

        severity = Severity.CRITICAL if elapsed > config.critical_query_ms else self.severity
        return [
            QueryIssue(
                type=self.issue_type,
                severity=severity,
                message=f"Query execution time ({_format_ms(elapsed)}ms) is above recommended threshold",
                suggestion="Consider adding indexes or rewriting the query",
            )
        ]
