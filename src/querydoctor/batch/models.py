"""
Data models for batch analysis across many databases.

Targets are immutable inputs; BatchResult is produced once per target;
BatchSummary is computed once, after every target has settled.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

HIGH_RISK_LEVELS = frozenset({"high", "critical"})


class TargetPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BatchStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class AnalysisTarget(BaseModel):
    """
    One database to analyze.

    ``connection_identifier`` is whatever the target analyzer needs to
    reach the database (usually a DSN); it is also part of the cache key.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str = ""
    connection_identifier: str = Field(alias="connectionString")
    priority: TargetPriority = TargetPriority.MEDIUM
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.id


class TargetHealth(BaseModel):
    """
    Health figures reported by a target analyzer.

    Accepts the camelCase keys health checkers emit (``overallScore``,
    ``totalIssues`` ...) as well as snake_case. Extra keys are kept.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    score: float | None = Field(default=None, alias="overallScore")
    total_issues: int = Field(default=0, alias="totalIssues")
    critical_issues: int = Field(default=0, alias="criticalIssues")
    security_risk: str | None = Field(default=None, alias="securityRisk")
    performance_risk: str | None = Field(default=None, alias="performanceRisk")
    top_recommendations: list[str] = Field(default_factory=list, alias="topRecommendations")

    @classmethod
    def from_result(cls, value: Any) -> "TargetHealth":
        """
        Normalize whatever a target analyzer returned.

        Mappings may carry the figures at the top level or under a nested
        ``summary`` key; a missing or falsy top-level value falls back to
        the nested one.
        """
        if isinstance(value, cls):
            return value
        if hasattr(value, "model_dump"):
            value = value.model_dump(by_alias=True)
        if not isinstance(value, Mapping):
            return cls()

        summary = value.get("summary")
        summary = summary if isinstance(summary, Mapping) else {}

        data: dict[str, Any] = {}
        for field_name, info in cls.model_fields.items():
            keys = [info.alias, field_name]
            if field_name == "score":
                keys.append("score")
            top = next((value[k] for k in keys if k and value.get(k) is not None), None)
            nested = next((summary[k] for k in keys if k and summary.get(k) is not None), None)
            chosen = top if top or nested is None else nested
            if chosen is not None:
                data[field_name] = chosen
        return cls.model_validate(data)

    @property
    def security_at_risk(self) -> bool:
        return (self.security_risk or "").lower() in HIGH_RISK_LEVELS

    @property
    def performance_at_risk(self) -> bool:
        return (self.performance_risk or "").lower() in HIGH_RISK_LEVELS


class BatchResult(BaseModel):
    """
    Terminal outcome for one target.

    ``result`` holds the normalized health the target analyzer reported.
    """

    model_config = ConfigDict(frozen=True)

    target: AnalysisTarget
    status: BatchStatus
    result: TargetHealth | None = None
    error: str | None = None
    execution_time_ms: float = 0.0
    retry_count: int = 0
    cache_hit: bool = False

    @field_validator("result", mode="before")
    @classmethod
    def _normalize_result(cls, value: Any) -> Any:
        return None if value is None else TargetHealth.from_result(value)

    @property
    def health(self) -> TargetHealth | None:
        if self.status != BatchStatus.SUCCESS:
            return None
        return self.result


class HealthDistribution(BaseModel):
    """Count of targets per health band: 9-10, 7-8, 5-6, 3-4, 0-2."""

    model_config = ConfigDict(frozen=True)

    excellent: int = 0
    good: int = 0
    fair: int = 0
    poor: int = 0
    critical: int = 0


class BatchSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_health_score: int = 0
    total_issues: int = 0
    critical_issues: int = 0
    security_risks: int = 0
    performance_issues: int = 0
    top_recommendations: list[str] = Field(default_factory=list)
    databases_by_health: HealthDistribution = Field(default_factory=HealthDistribution)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchAnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_databases: int
    successful: int
    failed: int
    skipped: int
    timed_out: int = 0
    results: list[BatchResult] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    execution_time_ms: float = 0.0
    timestamp: datetime = Field(default_factory=_utcnow)

    def result_for(self, target_id: str) -> BatchResult | None:
        return next((r for r in self.results if r.target.id == target_id), None)

    def to_summary_dict(self) -> dict[str, Any]:
        """Export counts and summary as a dictionary for JSON output."""
        return {
            "total_databases": self.total_databases,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "timed_out": self.timed_out,
            "execution_time_ms": self.execution_time_ms,
            "summary": self.summary.model_dump(mode="json"),
        }
