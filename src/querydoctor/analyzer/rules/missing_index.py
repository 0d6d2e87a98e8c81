"""
Rule: Missing Index

For each sequential scan that filters rows, take the first identifier
directly in front of a comparison operator in the filter text and
propose a single-column index on it.

The extraction is a single regex search over the filter, so
``(status = 'x')`` yields ``status``. Casts fool it: PostgreSQL's
``((status)::text = 'x'::text)`` yields ``text``. Filters with no identifier
right before an operator yield nothing and are skipped.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from querydoctor.analyzer.models import IssueType, QueryIssue, Severity
from querydoctor.analyzer.rules.base import Rule

if TYPE_CHECKING:
    from querydoctor.analyzer.models import PerformanceMetrics
    from querydoctor.parser.models import ExplainOutput

FILTER_COLUMN = re.compile(r"(\w+)\s*[=<>]")


def index_name(table: str, columns: list[str] | tuple[str, ...]) -> str:
    return "idx_" + "_".join([table, *columns])


def create_index_sql(table: str, columns: list[str] | tuple[str, ...]) -> str:
    """``CREATE INDEX idx_<table>_<cols> ON <table>(<cols>);``"""
    return f"CREATE INDEX {index_name(table, columns)} ON {table}({', '.join(columns)});"


def filter_column(filter_text: str) -> str | None:
    match = FILTER_COLUMN.search(filter_text)
    return match.group(1) if match else None


class MissingIndex(Rule):
    rule_id = "MISSING_INDEX"
    version = "1.0.0"
    issue_type = IssueType.MISSING_INDEX
    severity = Severity.MEDIUM
    description = "Filtered sequential scan that an index could serve"

    def analyze(
        self,
        explain: "ExplainOutput",
        metrics: "PerformanceMetrics",
    ) -> list[QueryIssue]:
        issues = []
        for node in self.iter_nodes(explain):
            if not (node.is_seq_scan and node.filter and node.relation_name):
                continue
            column = filter_column(node.filter)
            if column is None:
                continue
            table = node.relation_name
            issues.append(
                QueryIssue(
                    type=self.issue_type,
                    severity=self.severity,
                    message=f"Missing index detected for: {table}.{column}",
                    table=table,
                    column=column,
                    suggestion=create_index_sql(table, [column]),
                )
            )
        return issues
