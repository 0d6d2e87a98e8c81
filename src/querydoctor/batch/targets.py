"""
Target analyzers: what the orchestrator runs for each database.

Any async callable taking an AnalysisTarget and returning a TargetHealth
(or a mapping TargetHealth.from_result understands) can be plugged in.
PipelineTargetAnalyzer is the built-in one: it runs the query diagnostic
pipeline over the queries listed in ``target.metadata["queries"]``.

Quick mode only ingests plans and detects issues. Full mode also runs
index, rewrite and complexity advice.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Protocol, Sequence

from querydoctor.advisor.complexity_advisor import analyze_complexity
from querydoctor.analyzer.metrics import round_half_up
from querydoctor.analyzer.models import QueryIssue, Severity
from querydoctor.batch.models import AnalysisTarget, TargetHealth
from querydoctor.engine import QueryDiagnosticService
from querydoctor.exceptions import ValidationError

if TYPE_CHECKING:
    from querydoctor.config import Config
    from querydoctor.db.probe import PlanSource

logger = logging.getLogger(__name__)

MAX_HEALTH = 10.0
TOP_RECOMMENDATIONS = 5

_SEVERITY_PENALTY = {
    Severity.CRITICAL: 3.0,
    Severity.HIGH: 2.0,
    Severity.MEDIUM: 1.0,
    Severity.LOW: 0.5,
}


class TargetAnalyzer(Protocol):
    async def __call__(self, target: AnalysisTarget) -> TargetHealth | Mapping[str, Any]:
        ...


ProbeFactory = Callable[[str], Awaitable["PlanSource"]]


def health_score(issues: Sequence[QueryIssue]) -> float:
    """10 minus a per-severity penalty for each issue, floored at 0."""
    penalty = sum(_SEVERITY_PENALTY[issue.severity] for issue in issues)
    return max(MAX_HEALTH - penalty, 0.0)


def risk_level(issues: Sequence[QueryIssue]) -> str:
    """The worst severity present, or "low" when there are no issues."""
    if not issues:
        return Severity.LOW.value
    return max(issues, key=lambda issue: issue.severity.rank).severity.value


def target_queries(target: AnalysisTarget) -> list[str]:
    queries = target.metadata.get("queries", [])
    if isinstance(queries, str):
        queries = [queries]
    queries = [q for q in queries if isinstance(q, str) and q.strip()]
    if not queries:
        raise ValidationError(
            f"Target '{target.id}' lists no queries in metadata['queries']",
            field="metadata.queries",
        )
    return queries


async def _close(source: Any) -> None:
    close = getattr(source, "close", None)
    if close is None:
        return
    outcome = close()
    if inspect.isawaitable(outcome):
        await outcome


class PipelineTargetAnalyzer:
    """
    Scores a database by diagnosing its listed queries.

    Args:
        probe_factory: Opens a plan source for a connection identifier. The
            source is closed after the target is analyzed if it has close().
        quick: Ingest and detect only.
        config: Passed to the diagnostic service.
    """

    def __init__(
        self,
        probe_factory: ProbeFactory,
        quick: bool = False,
        config: "Config | None" = None,
    ) -> None:
        self.probe_factory = probe_factory
        self.quick = quick
        self.config = config

    async def __call__(self, target: AnalysisTarget) -> TargetHealth:
        queries = target_queries(target)
        source = await self.probe_factory(target.connection_identifier)
        try:
            if self.quick:
                return await self._quick(source, queries)
            return await self._full(source, queries)
        finally:
            await _close(source)

    async def _quick(self, source: "PlanSource", queries: list[str]) -> TargetHealth:
        service = QueryDiagnosticService(config=self.config, plan_source=source)
        scores: list[float] = []
        all_issues: list[QueryIssue] = []
        for sql in queries:
            _, issues = await service.quick_check(sql)
            scores.append(health_score(issues))
            all_issues.extend(issues)

        recommendations = list(
            dict.fromkeys(issue.suggestion for issue in all_issues if issue.suggestion)
        )
        return self._health(scores, all_issues, recommendations)

    async def _full(self, source: "PlanSource", queries: list[str]) -> TargetHealth:
        catalog = source if hasattr(source, "existing_indexes") else None
        service = QueryDiagnosticService(config=self.config, plan_source=source, catalog=catalog)
        scores: list[float] = []
        all_issues: list[QueryIssue] = []
        recommendations: list[str] = []
        for sql in queries:
            result = await service.analyze(sql)
            complexity = analyze_complexity(sql)
            # Complexity above 5 costs up to half a point per extra step.
            penalty = max(complexity.complexity_score - 5, 0) * 0.5
            scores.append(max(health_score(result.issues) - penalty, 0.0))
            all_issues.extend(result.issues)
            recommendations.extend(s.title for s in result.suggestions)

        return self._health(scores, all_issues, list(dict.fromkeys(recommendations)))

    @staticmethod
    def _health(
        scores: list[float],
        issues: list[QueryIssue],
        recommendations: list[str],
    ) -> TargetHealth:
        overall = round_half_up(sum(scores) / len(scores)) if scores else 0
        return TargetHealth(
            score=overall,
            total_issues=len(issues),
            critical_issues=sum(1 for i in issues if i.severity == Severity.CRITICAL),
            performance_risk=risk_level(issues),
            top_recommendations=recommendations[:TOP_RECOMMENDATIONS],
        )
