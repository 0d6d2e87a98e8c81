"""
Rough cost model: measured time plus fixed penalties for expensive clauses.

The result is a unitless score for comparing queries, not a planner cost.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from querydoctor.advisor.sql_patterns import extract_patterns
from querydoctor.analyzer.metrics import round_half_up
from querydoctor.analyzer.models import PerformanceMetrics

TIME_WEIGHT = 0.1
SELECT_STAR_PENALTY = 50
JOIN_PENALTY = 25
UNBOUNDED_SORT_PENALTY = 30
GROUP_BY_PENALTY = 40
DISTINCT_PENALTY = 35


class CostCategory(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def for_cost(cls, cost: float) -> "CostCategory":
        if cost < 100:
            return cls.LOW
        if cost < 300:
            return cls.MEDIUM
        if cost < 600:
            return cls.HIGH
        return cls.CRITICAL


class ResourceUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    cpu: str
    memory: str
    io: str
    network: str


class CostEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    estimated_cost: int
    cost_category: CostCategory
    resource_usage: ResourceUsage
    recommendations: list[str] = Field(default_factory=list)


def estimate_cost(sql: str, metrics: PerformanceMetrics) -> CostEstimate:
    """
    Score a query's cost from its text and measured metrics.

    The category is taken from the unrounded cost; only the reported
    value is rounded.
    """
    patterns = extract_patterns(sql)
    cost = metrics.execution_time * TIME_WEIGHT
    recommendations: list[str] = []

    if patterns.has("select_star"):
        cost += SELECT_STAR_PENALTY
        recommendations.append("Use specific columns to reduce network transfer")

    joins = patterns.join_count
    if joins:
        cost += joins * JOIN_PENALTY
        if joins > 3:
            recommendations.append("Consider if all JOINs are necessary")

    if patterns.has("order_by") and not patterns.has("limit"):
        cost += UNBOUNDED_SORT_PENALTY
        recommendations.append("Add LIMIT to reduce sorting cost")

    if patterns.has("group_by"):
        cost += GROUP_BY_PENALTY
        recommendations.append("Consider if GROUP BY is necessary")

    if patterns.has("distinct"):
        cost += DISTINCT_PENALTY
        recommendations.append("DISTINCT can be expensive - check if necessary")

    cpu = min(metrics.execution_time / 100, 100)
    memory = min(metrics.rows_returned * 0.1, 100)

    return CostEstimate(
        estimated_cost=round_half_up(cost),
        cost_category=CostCategory.for_cost(cost),
        resource_usage=ResourceUsage(
            cpu=f"{cpu:.1f}%",
            memory=f"{memory:.1f}%",
            io="High" if metrics.cache_hit_ratio < 80 else "Low",
            network="High" if metrics.rows_returned > 1000 else "Low",
        ),
        recommendations=recommendations,
    )
