"""QueryDoctor - SQL query diagnostics, advice and batch health analysis for PostgreSQL."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from querydoctor.exceptions import (
    BenchmarkAbort,
    ConfigurationError,
    DatabaseConnectionError,
    ExternalError,
    ParseError,
    QueryDoctorError,
    TargetFailure,
    ValidationError,
)

from querydoctor.analyzer import (
    AnalysisResult,
    IssueDetector,
    IssueType,
    PerformanceMetrics,
    Priority,
    QueryIssue,
    Severity,
    Suggestion,
    SuggestionType,
)
from querydoctor.batch import (
    AnalysisTarget,
    BatchAnalysisResult,
    BatchOrchestrator,
    BatchStatus,
    PipelineTargetAnalyzer,
    ResultCache,
)
from querydoctor.benchmark import BenchmarkRunner
from querydoctor.config import Config, get_config, reset_config
from querydoctor.engine import QueryDiagnosticService
from querydoctor.parser import parse_explain

__all__ = [
    "__version__",
    # Exceptions
    "BenchmarkAbort",
    "ConfigurationError",
    "DatabaseConnectionError",
    "ExternalError",
    "ParseError",
    "QueryDoctorError",
    "TargetFailure",
    "ValidationError",
    # Pipeline
    "AnalysisResult",
    "BenchmarkRunner",
    "IssueDetector",
    "IssueType",
    "PerformanceMetrics",
    "Priority",
    "QueryDiagnosticService",
    "QueryIssue",
    "Severity",
    "Suggestion",
    "SuggestionType",
    "parse_explain",
    # Batch
    "AnalysisTarget",
    "BatchAnalysisResult",
    "BatchOrchestrator",
    "BatchStatus",
    "PipelineTargetAnalyzer",
    "ResultCache",
    # Config
    "Config",
    "get_config",
    "reset_config",
]
