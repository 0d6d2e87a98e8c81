"""
Issue detection over a parsed plan and its metrics.

The rule table is closed and ordered: slow query, sequential scans,
buffer usage, missing indexes. Issues come out in that order, and within
a rule in plan pre-order, so identical input always yields an identical
list.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from querydoctor.analyzer.rules import RULE_CLASSES, Rule

if TYPE_CHECKING:
    from querydoctor.analyzer.models import PerformanceMetrics, QueryIssue
    from querydoctor.config import Config
    from querydoctor.parser.models import ExplainOutput

logger = logging.getLogger(__name__)

RULE_IDS: tuple[str, ...] = tuple(cls.rule_id for cls in RULE_CLASSES)


def _rule_settings(rule_cls: type[Rule], config: "Config") -> dict[str, Any]:
    """Pick the thresholds a rule's schema declares out of the global config."""
    settings: dict[str, Any] = {}
    for name in rule_cls.config_schema.model_fields:
        if name == "enabled":
            continue
        value = config.get_rule_threshold(rule_cls.rule_id, name)
        if value is not None:
            settings[name] = value
    return settings


class IssueDetector:
    """
    Runs the detection rules against one plan.

    Holds no per-call state, so one instance can be shared across
    concurrent analyses.

    Example:
        detector = IssueDetector()
        issues = detector.detect(explain, metrics)
    """

    def __init__(
        self,
        config: "Config | None" = None,
        rules: list[Rule] | None = None,
    ) -> None:
        if rules is not None:
            self.rules = list(rules)
            return

        if config is None:
            from querydoctor.config import get_config

            config = get_config()

        self.rules = [
            rule_cls(_rule_settings(rule_cls, config))
            for rule_cls in RULE_CLASSES
            if config.is_rule_enabled(rule_cls.rule_id)
        ]
        disabled = set(RULE_IDS) - {r.rule_id for r in self.rules}
        if disabled:
            logger.debug("Rules disabled by configuration: %s", sorted(disabled))

    def detect(
        self,
        explain: "ExplainOutput",
        metrics: "PerformanceMetrics",
    ) -> list["QueryIssue"]:
        """Evaluate every enabled rule in order and concatenate their issues."""
        issues: list[QueryIssue] = []
        for rule in self.rules:
            if not rule.config.enabled:
                continue
            start = time.perf_counter()
            found = rule.analyze(explain, metrics)
            logger.debug(
                "Rule %s produced %d issue(s) in %.2fms",
                rule.rule_id,
                len(found),
                (time.perf_counter() - start) * 1000,
            )
            issues.extend(found)
        return issues
