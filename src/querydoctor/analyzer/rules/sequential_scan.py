"""
Rule: Sequential Scan

One issue per "Seq Scan" node, in pre-order. A scan without a relation
name (function scans rewritten by the planner, some foreign tables) is
reported against "unknown".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from querydoctor.analyzer.models import IssueType, QueryIssue, Severity
from querydoctor.analyzer.rules.base import Rule

if TYPE_CHECKING:
    from querydoctor.analyzer.models import PerformanceMetrics
    from querydoctor.parser.models import ExplainOutput

UNKNOWN_TABLE = "unknown"


class SequentialScan(Rule):
    rule_id = "SEQUENTIAL_SCAN"
    version = "1.0.0"
    issue_type = IssueType.SEQUENTIAL_SCAN
    severity = Severity.HIGH
    description = "Full table read instead of an index lookup"

    def analyze(
        self,
        explain: "ExplainOutput",
        metrics: "PerformanceMetrics",
    ) -> list[QueryIssue]:
        issues = []
        for node in self.iter_nodes(explain):
            if not node.is_seq_scan:
                continue
            table = node.relation_name or UNKNOWN_TABLE
            issues.append(
                QueryIssue(
                    type=self.issue_type,
                    severity=self.severity,
                    message=f"Sequential scan detected on table: {table}",
                    table=table,
                    suggestion=f"Consider adding an index on {table}",
                )
            )
        return issues
