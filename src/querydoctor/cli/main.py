"""
QueryDoctor CLI - SQL query diagnostics for PostgreSQL.

Usage:
    querydoctor analyze explain.json --sql query.sql
    querydoctor advise query.sql
    querydoctor benchmark --dsn postgresql://localhost/app query.sql
    querydoctor batch targets.yaml --quick
    querydoctor --help
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from querydoctor import __version__
from querydoctor.analyzer.models import AnalysisResult, Severity
from querydoctor.analyzer.rules import RULE_CLASSES
from querydoctor.batch.events import LoggingEventSink
from querydoctor.batch.models import AnalysisTarget, BatchAnalysisResult, BatchStatus
from querydoctor.batch.orchestrator import BatchOrchestrator
from querydoctor.batch.targets import PipelineTargetAnalyzer
from querydoctor.config import Config, get_config, load_config_from_file
from querydoctor.db.probe import get_probe
from querydoctor.engine import QueryDiagnosticService
from querydoctor.exceptions import QueryDoctorError

app = typer.Typer(
    name="querydoctor",
    help="SQL query diagnostics, advice and batch health analysis",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

SEVERITY_STYLES = {
    Severity.CRITICAL: "red bold",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

STATUS_STYLES = {
    BatchStatus.SUCCESS: "green",
    BatchStatus.FAILED: "red",
    BatchStatus.TIMEOUT: "yellow",
    BatchStatus.SKIPPED: "dim",
}

# Set by the --config callback option; commands fall back to get_config().
_config_override: Config | None = None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"QueryDoctor version {__version__}")
        raise typer.Exit()


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log pipeline progress to stderr."),
    ] = False,
    config_file: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="JSON or YAML configuration file",
            envvar="QUERYDOCTOR_CONFIG_FILE",
        ),
    ] = None,
) -> None:
    """QueryDoctor - SQL query diagnostics for PostgreSQL."""
    global _config_override
    if verbose:
        setup_logging()
    try:
        _config_override = load_config_from_file(config_file) if config_file else None
    except QueryDoctorError as e:
        error_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1)


def current_config() -> Config:
    return _config_override if _config_override is not None else get_config()


def fail(error: QueryDoctorError) -> None:
    error_console.print(f"[red]Error:[/red] {error.message}")
    raise typer.Exit(code=1)


# ── Rendering ────────────────────────────────────────────────────────────


def print_result(result: AnalysisResult) -> None:
    perf = result.performance
    console.print(
        Panel(
            f"Execution time: [bold]{perf.execution_time:.2f}ms[/bold] "
            f"(planning {perf.planning_time:.2f}ms)\n"
            f"Rows returned:  {perf.rows_returned}\n"
            f"Cache hit:      {perf.cache_hit_ratio}%  Buffers: {perf.buffer_usage}\n"
            f"Estimated cost: {perf.estimated_cost:.2f}",
            title="Performance",
            border_style="cyan",
        )
    )

    if not result.issues:
        console.print("[green]No performance issues found![/green]\n")
    else:
        console.print(f"[bold]Found {len(result.issues)} issue(s):[/bold]\n")
        for issue in result.issues:
            style = SEVERITY_STYLES[issue.severity]
            console.print(f"[{style}][{issue.severity.value.upper()}][/{style}] {issue.message}")
            if issue.suggestion:
                console.print(f"   [dim]{issue.suggestion}[/dim]")
        console.print()

    if result.suggestions:
        table = Table(title="Suggestions")
        table.add_column("Priority")
        table.add_column("Type", style="cyan")
        table.add_column("Suggestion")
        table.add_column("SQL", style="green")
        for suggestion in result.suggestions:
            table.add_row(
                suggestion.priority.value,
                suggestion.type.value,
                suggestion.title,
                suggestion.sql or "",
            )
        console.print(table)


def print_batch(batch: BatchAnalysisResult) -> None:
    table = Table(title=f"Batch analysis ({batch.total_databases} databases)")
    table.add_column("Target", style="cyan")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Issues", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Detail")

    for item in batch.results:
        health = item.health
        style = STATUS_STYLES[item.status]
        score = "" if health is None or health.score is None else f"{health.score:g}"
        issues = "" if health is None else str(health.total_issues)
        detail = "cached" if item.cache_hit else (item.error or "")
        table.add_row(
            item.target.display_name,
            f"[{style}]{item.status.value}[/{style}]",
            score,
            issues,
            str(item.retry_count),
            detail,
        )
    console.print(table)

    summary = batch.summary
    bands = summary.databases_by_health
    console.print(
        f"\n[bold]Overall health:[/bold] {summary.overall_health_score}/10  "
        f"[dim](excellent {bands.excellent}, good {bands.good}, fair {bands.fair}, "
        f"poor {bands.poor}, critical {bands.critical})[/dim]"
    )
    console.print(
        f"Issues: {summary.total_issues} ({summary.critical_issues} critical), "
        f"performance risks: {summary.performance_issues}, security risks: {summary.security_risks}"
    )
    if summary.top_recommendations:
        console.print("\n[bold]Top recommendations:[/bold]")
        for rec in summary.top_recommendations:
            console.print(f"  - {rec}")
    console.print(f"\n[dim]Completed in {batch.execution_time_ms:.0f}ms[/dim]")


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def analyze(
    explain_file: Annotated[
        Path,
        typer.Argument(
            help="Path to EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON) output",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    sql_file: Annotated[
        Optional[Path],
        typer.Option(
            "--sql",
            "-s",
            help="The query text, enabling index and rewrite advice",
            exists=True,
            readable=True,
        ),
    ] = None,
    comprehensive: Annotated[
        bool,
        typer.Option("--comprehensive", help="Add cost and complexity scoring"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output results as JSON"),
    ] = False,
) -> None:
    """
    Diagnose a saved EXPLAIN output without connecting to a database.

    Examples:

        $ psql -XqAt -c "EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON) SELECT ..." > plan.json
        $ querydoctor analyze plan.json --sql query.sql
    """
    try:
        raw_plan = json.loads(explain_file.read_text())
    except json.JSONDecodeError as e:
        error_console.print(f"[red]Error:[/red] Invalid JSON in {explain_file}: {e}")
        raise typer.Exit(code=1)

    sql = sql_file.read_text() if sql_file else ""
    service = QueryDiagnosticService(config=current_config())

    try:
        result = service.diagnose_plan(raw_plan, sql=sql.strip())
    except QueryDoctorError as e:
        fail(e)
        return

    report = service.enrich(result) if comprehensive and result.query else None

    if json_output:
        data: dict[str, Any] = report.to_dict() if report else result.model_dump(mode="json")
        console.print_json(json.dumps(data, default=str))
        return

    print_result(result)
    if report is not None:
        console.print(
            f"\nCost: [bold]{report.cost.estimated_cost}[/bold] ({report.cost.cost_category.value})  "
            f"Complexity: {report.complexity.complexity_score}/10  "
            f"Readability: {report.complexity.readability_score}/10"
        )
        for rec in report.cost.recommendations:
            console.print(f"  - {rec}")


@app.command()
def advise(
    sql_file: Annotated[
        Path,
        typer.Argument(help="File containing one SQL query", exists=True, readable=True),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output results as JSON"),
    ] = False,
) -> None:
    """
    Static advice for a query: indexes, rewrites, cost and complexity.

    Works from the query text alone; nothing is executed.
    """
    from querydoctor.advisor import (
        IndexAdvisor,
        analyze_complexity,
        estimate_cost,
        specific_rewrites,
        suggest_rewrites,
    )
    from querydoctor.analyzer.models import PerformanceMetrics, rank_suggestions

    sql = sql_file.read_text().strip()
    if not sql:
        error_console.print(f"[red]Error:[/red] {sql_file} is empty")
        raise typer.Exit(code=1)

    metrics = PerformanceMetrics()
    suggestions = rank_suggestions(IndexAdvisor().candidates(sql) + suggest_rewrites(sql))
    cost = estimate_cost(sql, metrics)
    complexity = analyze_complexity(sql)
    hints = specific_rewrites(sql)

    if json_output:
        console.print_json(
            json.dumps(
                {
                    "suggestions": [s.model_dump(mode="json") for s in suggestions],
                    "cost": cost.model_dump(mode="json"),
                    "complexity": complexity.model_dump(mode="json"),
                    "rewrites": hints,
                }
            )
        )
        return

    if suggestions:
        table = Table(title="Suggestions")
        table.add_column("Priority")
        table.add_column("Suggestion")
        table.add_column("SQL", style="green")
        for suggestion in suggestions:
            table.add_row(suggestion.priority.value, suggestion.title, suggestion.sql or "")
        console.print(table)
    else:
        console.print("[green]No suggestions for this query.[/green]")

    console.print(
        f"\nCost: [bold]{cost.estimated_cost}[/bold] ({cost.cost_category.value})  "
        f"Complexity: {complexity.complexity_score}/10  "
        f"Maintainability: {complexity.maintainability_score}/10"
    )
    for hint in hints:
        console.print(f"  - {hint}")


@app.command()
def benchmark(
    sql_file: Annotated[
        Path,
        typer.Argument(help="File containing the query to benchmark", exists=True, readable=True),
    ],
    dsn: Annotated[
        str,
        typer.Option("--dsn", help="PostgreSQL connection string", envvar="QUERYDOCTOR_DSN"),
    ],
    compare: Annotated[
        Optional[Path],
        typer.Option("--compare", help="Second query to compare against", exists=True, readable=True),
    ] = None,
    iterations: Annotated[
        Optional[int],
        typer.Option("--iterations", "-n", help="Measured runs (default from config)"),
    ] = None,
) -> None:
    """
    Benchmark a query with EXPLAIN ANALYZE, optionally against a second one.

    The query really runs: do not benchmark statements with side effects.
    """
    config = current_config()
    runs = iterations if iterations is not None else config.benchmark_iterations

    async def run() -> None:
        probe = await get_probe(dsn, timeout_seconds=config.statement_timeout_seconds)
        try:
            runner = QueryDiagnosticService(config=config, plan_source=probe).benchmark_runner()
            if compare is None:
                result = await runner.benchmark(sql_file.read_text().strip(), runs)
                console.print(
                    f"avg [bold]{result.average_time:.2f}ms[/bold]  "
                    f"min {result.min_time:.2f}  max {result.max_time:.2f}  "
                    f"sd {result.standard_deviation:.2f}  ({result.iterations} runs)"
                )
            else:
                comparison = await runner.compare_queries(
                    sql_file.read_text().strip(),
                    compare.read_text().strip(),
                    runs,
                )
                console.print(
                    f"Query 1 avg {comparison.baseline.average_time:.2f}ms, "
                    f"Query 2 avg {comparison.candidate.average_time:.2f}ms"
                )
                console.print(f"[bold]{comparison.recommendation}[/bold]")
        finally:
            await probe.close()

    try:
        asyncio.run(run())
    except QueryDoctorError as e:
        fail(e)


def load_targets(path: Path) -> list[AnalysisTarget]:
    """Targets from a JSON or YAML list, or a mapping with a ``targets`` key."""
    with open(path, encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if isinstance(data, dict):
        data = data.get("targets", [])
    if not isinstance(data, list):
        raise typer.BadParameter(f"{path} must contain a list of targets")
    return [AnalysisTarget.model_validate(item) for item in data]


@app.command()
def batch(
    targets_file: Annotated[
        Path,
        typer.Argument(help="JSON or YAML file listing targets", exists=True, readable=True),
    ],
    quick: Annotated[
        bool,
        typer.Option("--quick", "-q", help="Detect issues only, skip advice"),
    ] = False,
    concurrency: Annotated[
        Optional[int],
        typer.Option("--concurrency", help="Databases analyzed at once (default from config)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output results as JSON"),
    ] = False,
) -> None:
    """
    Analyze many databases concurrently and summarize their health.

    Each target lists its queries under metadata.queries:

        - id: orders-db
          connectionString: postgresql://localhost/orders
          metadata:
            queries: ["SELECT * FROM orders WHERE status = 'open'"]
    """
    config = current_config()
    try:
        targets = load_targets(targets_file)
    except (OSError, json.JSONDecodeError, yaml.YAMLError, ValueError) as e:
        error_console.print(f"[red]Error:[/red] Cannot load targets from {targets_file}: {e}")
        raise typer.Exit(code=1)

    def probe_factory(dsn: str) -> Any:
        return get_probe(dsn, timeout_seconds=config.statement_timeout_seconds)

    overrides: dict[str, Any] = {"quick_mode": quick or config.quick_mode}
    if concurrency is not None:
        overrides["max_concurrency"] = concurrency

    try:
        orchestrator = BatchOrchestrator.from_config(
            config,
            full_analyzer=PipelineTargetAnalyzer(probe_factory, quick=False, config=config),
            quick_analyzer=PipelineTargetAnalyzer(probe_factory, quick=True, config=config),
            event_sink=LoggingEventSink(),
            **overrides,
        )
        result = asyncio.run(orchestrator.analyze_databases(targets))
    except QueryDoctorError as e:
        fail(e)
        return

    if json_output:
        data = result.to_summary_dict()
        data["results"] = [
            {
                "id": item.target.id,
                "status": item.status.value,
                "error": item.error,
                "retry_count": item.retry_count,
                "cache_hit": item.cache_hit,
                "health": item.health.model_dump(mode="json") if item.health else None,
            }
            for item in result.results
        ]
        console.print_json(json.dumps(data, default=str))
    else:
        print_batch(result)

    if result.successful == 0 and result.total_databases > 0:
        raise typer.Exit(code=1)


@app.command()
def rules() -> None:
    """List the detection rules and their effective thresholds."""
    config = current_config()
    table = Table()
    table.add_column("Rule ID", style="cyan")
    table.add_column("Severity")
    table.add_column("Enabled")
    table.add_column("Thresholds")
    table.add_column("Description")

    for rule_cls in RULE_CLASSES:
        thresholds = []
        for name in rule_cls.config_schema.model_fields:
            if name == "enabled":
                continue
            value = config.get_rule_threshold(rule_cls.rule_id, name)
            if value is None:
                value = rule_cls.config_schema.model_fields[name].default
            thresholds.append(f"{name}={value:g}" if isinstance(value, (int, float)) else f"{name}={value}")
        style = SEVERITY_STYLES[rule_cls.severity]
        table.add_row(
            rule_cls.rule_id,
            f"[{style}]{rule_cls.severity.value}[/{style}]",
            "yes" if config.is_rule_enabled(rule_cls.rule_id) else "no",
            ", ".join(thresholds),
            rule_cls.description,
        )
    console.print(table)


if __name__ == "__main__":
    app()
