"""
QueryDiagnosticService - orchestration layer for querydoctor.

The single entry point for diagnosing queries. The CLI and the batch
target analyzers use this service rather than wiring the pipeline stages
themselves.

Pipeline for one query:
    raw plan -> metrics -> issues -> suggestions (basic, index, rewrite) -> ranked

Stages run sequentially; only the catalog lookups inside index advice are
issued concurrently.

Usage:
    from querydoctor.engine import QueryDiagnosticService

    # Offline: an EXPLAIN JSON you already have
    service = QueryDiagnosticService()
    result = service.diagnose_plan(raw_plan, sql=query)

    # Live: run EXPLAIN ANALYZE through a probe
    service = QueryDiagnosticService(plan_source=probe, catalog=probe)
    result = await service.analyze(query)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from querydoctor.advisor.complexity_advisor import ComplexityReport, analyze_complexity
from querydoctor.advisor.cost_advisor import CostEstimate, estimate_cost
from querydoctor.advisor.index_advisor import IndexAdvisor
from querydoctor.advisor.rewrite_advisor import specific_rewrites, suggest_rewrites
from querydoctor.analyzer.detector import IssueDetector
from querydoctor.analyzer.metrics import ingest_plan
from querydoctor.analyzer.models import (
    AnalysisResult,
    PerformanceMetrics,
    QueryIssue,
    Suggestion,
    SuggestionType,
    rank_suggestions,
)
from querydoctor.analyzer.suggestions import basic_suggestions
from querydoctor.benchmark import BenchmarkRunner
from querydoctor.exceptions import ExternalError, QueryDoctorError, ValidationError

if TYPE_CHECKING:
    from querydoctor.config import Config
    from querydoctor.db.probe import CatalogSource, PlanSource

logger = logging.getLogger(__name__)


def dedupe_suggestions(suggestions: Iterable[Suggestion]) -> list[Suggestion]:
    """Drop repeats with the same type, title and SQL, keeping the first."""
    seen: set[tuple[str, str, str | None]] = set()
    unique = []
    for suggestion in suggestions:
        key = (suggestion.type.value, suggestion.title, suggestion.sql)
        if key in seen:
            continue
        seen.add(key)
        unique.append(suggestion)
    return unique


@dataclass(frozen=True)
class ComprehensiveReport:
    """A diagnosis plus cost, complexity and concrete rewrite hints."""

    result: AnalysisResult
    cost: CostEstimate
    complexity: ComplexityReport
    rewrites: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result.model_dump(mode="json"),
            "cost": self.cost.model_dump(mode="json"),
            "complexity": self.complexity.model_dump(mode="json"),
            "rewrites": list(self.rewrites),
        }


@dataclass(frozen=True)
class QueryFailure:
    query: str
    error: str


@dataclass(frozen=True)
class QueryBatchReport:
    """
    Diagnoses for a list of queries against one database.

    Failed queries are listed separately and do not count toward the
    summary figures.
    """

    results: tuple[AnalysisResult, ...] = ()
    failures: tuple[QueryFailure, ...] = ()
    slow_query_ms: float = 1000.0

    @property
    def total_queries(self) -> int:
        return len(self.results)

    @property
    def slow_queries(self) -> int:
        return sum(1 for r in self.results if r.performance.execution_time > self.slow_query_ms)

    @property
    def issues_found(self) -> int:
        return sum(len(r.issues) for r in self.results)

    @property
    def suggestions_generated(self) -> int:
        return sum(len(r.suggestions) for r in self.results)

    @property
    def average_execution_time(self) -> float:
        if not self.results:
            return 0.0
        return sum(r.performance.execution_time for r in self.results) / len(self.results)

    def suggestions_of_type(self, suggestion_type: SuggestionType) -> list[Suggestion]:
        return [s for r in self.results for s in r.suggestions if s.type == suggestion_type]

    def to_summary_dict(self) -> dict[str, Any]:
        """Export summary as dictionary for JSON output."""
        return {
            "total_queries": self.total_queries,
            "failed_queries": len(self.failures),
            "slow_queries": self.slow_queries,
            "issues_found": self.issues_found,
            "suggestions_generated": self.suggestions_generated,
            "average_execution_time": self.average_execution_time,
            "recommendations": {
                "indexes": len(self.suggestions_of_type(SuggestionType.INDEX)),
                "query_rewrites": len(self.suggestions_of_type(SuggestionType.QUERY_REWRITE)),
                "schema_changes": len(self.suggestions_of_type(SuggestionType.SCHEMA_CHANGE)),
            },
        }


class QueryDiagnosticService:
    """
    Coordinates ingestion, detection and advice for single queries.

    Holds no per-query state; one instance can serve concurrent analyses.
    """

    def __init__(
        self,
        config: "Config | None" = None,
        plan_source: "PlanSource | None" = None,
        catalog: "CatalogSource | None" = None,
        keep_plan: bool = False,
    ) -> None:
        if config is None:
            from querydoctor.config import get_config

            config = get_config()

        self.config = config
        self.plan_source = plan_source
        self.catalog = catalog
        self.keep_plan = keep_plan
        self.detector = IssueDetector(config=config)
        self.index_advisor = IndexAdvisor(catalog=catalog)

    def _require_source(self) -> "PlanSource":
        if self.plan_source is None:
            raise QueryDoctorError("No plan source configured; use diagnose_plan() for offline plans")
        return self.plan_source

    @staticmethod
    def _validate_sql(sql: str) -> str:
        if not sql or not sql.strip():
            raise ValidationError("SQL query must not be empty", field="sql")
        return sql.strip()

    def _detect(self, raw_plan: Any) -> tuple[PerformanceMetrics, list[QueryIssue]]:
        explain, metrics = ingest_plan(raw_plan)
        return metrics, self.detector.detect(explain, metrics)

    def _build_result(
        self,
        sql: str,
        raw_plan: Any,
        metrics: PerformanceMetrics,
        issues: list[QueryIssue],
        suggestions: list[Suggestion],
        started: float,
    ) -> AnalysisResult:
        return AnalysisResult(
            query=sql,
            performance=metrics,
            issues=issues,
            suggestions=rank_suggestions(dedupe_suggestions(suggestions)),
            execution_plan=raw_plan if self.keep_plan else None,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    def diagnose_plan(self, raw_plan: Any, sql: str = "") -> AnalysisResult:
        """
        Diagnose an EXPLAIN output without touching a database.

        Index candidates are not filtered against existing indexes here.

        Raises:
            ParseError: If ``raw_plan`` is not an object or array.
        """
        started = time.perf_counter()
        metrics, issues = self._detect(raw_plan)

        suggestions = basic_suggestions(issues, metrics)
        if sql.strip():
            suggestions += self.index_advisor.candidates(sql)
            suggestions += suggest_rewrites(sql, metrics)

        return self._build_result(sql, raw_plan, metrics, issues, suggestions, started)

    async def analyze(self, sql: str) -> AnalysisResult:
        """
        Run EXPLAIN ANALYZE for ``sql`` and diagnose the result.

        Raises:
            ValidationError: If ``sql`` is empty (before any I/O).
            ExternalError: If the plan source, or any later stage, fails.
        """
        sql = self._validate_sql(sql)
        source = self._require_source()
        started = time.perf_counter()

        try:
            raw_plan = await source.run_explain(sql)
            metrics, issues = self._detect(raw_plan)
            suggestions = basic_suggestions(issues, metrics)
            suggestions += await self.index_advisor.suggest(sql)
            suggestions += suggest_rewrites(sql, metrics)
        except ExternalError:
            raise
        except Exception as e:
            raise ExternalError(
                f"Query analysis failed: {e}",
                operation="analyze",
                original_error=e,
            ) from e

        result = self._build_result(sql, raw_plan, metrics, issues, suggestions, started)
        logger.info(
            "Analyzed query in %.1fms: %d issue(s), %d suggestion(s)",
            result.duration_ms,
            len(result.issues),
            len(result.suggestions),
        )
        return result

    async def quick_check(self, sql: str) -> tuple[PerformanceMetrics, list[QueryIssue]]:
        """Ingest and detect only; no advice."""
        sql = self._validate_sql(sql)
        source = self._require_source()
        try:
            raw_plan = await source.run_explain(sql)
        except ExternalError:
            raise
        except Exception as e:
            raise ExternalError(f"Query analysis failed: {e}", operation="quick_check", original_error=e) from e
        return self._detect(raw_plan)

    async def analyze_comprehensive(self, sql: str) -> ComprehensiveReport:
        """Full diagnosis plus cost and complexity scoring."""
        result = await self.analyze(sql)
        return self.enrich(result)

    @staticmethod
    def enrich(result: AnalysisResult) -> ComprehensiveReport:
        """Add cost, complexity and rewrite hints to an existing diagnosis."""
        return ComprehensiveReport(
            result=result,
            cost=estimate_cost(result.query, result.performance),
            complexity=analyze_complexity(result.query),
            rewrites=tuple(specific_rewrites(result.query)),
        )

    async def analyze_queries(self, queries: Iterable[str]) -> QueryBatchReport:
        """
        Diagnose several queries one after another.

        A failing query is recorded and the rest still run.
        """
        results: list[AnalysisResult] = []
        failures: list[QueryFailure] = []
        for sql in queries:
            try:
                results.append(await self.analyze(sql))
            except QueryDoctorError as e:
                logger.error("Failed to analyze query: %s", e.message)
                failures.append(QueryFailure(query=sql, error=e.message))

        return QueryBatchReport(
            results=tuple(results),
            failures=tuple(failures),
            slow_query_ms=self.config.slow_query_ms,
        )

    def benchmark_runner(self) -> BenchmarkRunner:
        """A BenchmarkRunner over this service's plan source, configured from settings."""
        return BenchmarkRunner.from_config(self._require_source(), self.config)
