"""
Base class for issue detection rules.

All rules inherit from Rule and implement analyze(). A rule sees the
parsed plan and the metrics derived from it, and returns issues in the
order it discovered them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterator

from pydantic import BaseModel, ConfigDict

from querydoctor.analyzer.models import IssueType, Severity

if TYPE_CHECKING:
    from querydoctor.analyzer.models import PerformanceMetrics, QueryIssue
    from querydoctor.parser.models import ExplainOutput, PlanNode


class RuleConfig(BaseModel):
    """
    Base configuration for all rules.

    Rules define their own schema by subclassing this. Unknown keys are
    rejected so a typo in a threshold name fails loudly.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True


class Rule(ABC):
    """
    Abstract base class for detection rules.

    Rules must be deterministic (same input, same output, same order) and
    linear in the number of plan nodes.

    Attributes:
        rule_id: Unique identifier, UPPER_SNAKE_CASE (e.g., "SLOW_QUERY")
        version: Semver string, bump when detection logic changes
        issue_type: The IssueType every issue from this rule carries
        severity: Default severity for issues from this rule
        description: One-line description for documentation
        config_schema: Pydantic model for rule configuration
    """

    rule_id: str
    version: str = "1.0.0"
    issue_type: IssueType
    severity: Severity
    description: str = ""
    config_schema: type[RuleConfig] = RuleConfig

    def __init__(self, config: RuleConfig | dict[str, Any] | None = None) -> None:
        if config is None:
            self.config = self.config_schema()
        elif isinstance(config, dict):
            self.config = self.config_schema(**config)
        else:
            self.config = config

    @abstractmethod
    def analyze(
        self,
        explain: "ExplainOutput",
        metrics: "PerformanceMetrics",
    ) -> list["QueryIssue"]:
        """
        Inspect a plan and its metrics.

        Returns:
            Issues in discovery order, or an empty list.
        """

    def iter_nodes(self, explain: "ExplainOutput") -> Iterator["PlanNode"]:
        """Pre-order traversal: parent before children, siblings left to right."""
        yield from explain.plan.iter_nodes()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rule_id={self.rule_id!r}, version={self.version!r})"
