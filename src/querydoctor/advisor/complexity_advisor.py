"""
Query complexity scoring.

A 0-10 complexity score from structural signals, with readability and
maintainability derived from it, plus free-text risk factors that do not
affect the score.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from querydoctor.advisor.sql_patterns import extract_patterns

MAX_SCORE = 10
LONG_QUERY_CHARS = 500
MANY_JOINS = 3


class ComplexityReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    complexity_score: int = Field(ge=0, le=MAX_SCORE)
    readability_score: int = Field(ge=1, le=MAX_SCORE)
    maintainability_score: int = Field(ge=1, le=MAX_SCORE)
    complexity_factors: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


def analyze_complexity(sql: str) -> ComplexityReport:
    patterns = extract_patterns(sql)
    text = patterns.text
    score = 0
    factors: list[str] = []
    risks: list[str] = []
    suggestions: list[str] = []

    if len(text) > LONG_QUERY_CHARS:
        score += 3
        factors.append(f"Long query (>{LONG_QUERY_CHARS} chars)")
        suggestions.append("Consider breaking into smaller queries or using CTEs")

    joins = patterns.join_count
    if joins > MANY_JOINS:
        score += 2
        factors.append(f"Multiple JOINs ({joins})")
        suggestions.append("Consider if all JOINs are necessary or if you can use subqueries")

    # Unbalanced "(" is the subquery proxy; balanced nesting does not count.
    if patterns.unbalanced_parentheses > 0:
        score += 2
        factors.append("Contains subqueries")
        suggestions.append("Consider using CTEs for better readability")

    if patterns.has("window"):
        score += 1
        factors.append("Uses window functions")

    if patterns.has("group_by") or patterns.has("having"):
        score += 1
        factors.append("Uses aggregations")

    if patterns.has("set_operation"):
        score += 2
        factors.append("Uses set operations")

    if patterns.has("select_star"):
        risks.append("SELECT * - may return unnecessary columns")
        suggestions.append("Specify only needed columns")

    if patterns.has("distinct"):
        risks.append("DISTINCT - may indicate data quality issues")
        suggestions.append("Check if DISTINCT is necessary or if there are duplicate data issues")

    if patterns.has("leading_wildcard"):
        risks.append("Leading wildcard in LIKE - cannot use indexes")
        suggestions.append("Consider full-text search or different approach")

    if patterns.has("order_by") and not patterns.has("limit"):
        risks.append("ORDER BY without LIMIT - may return large result sets")
        suggestions.append("Add LIMIT clause")

    score = min(score, MAX_SCORE)
    return ComplexityReport(
        complexity_score=score,
        readability_score=max(MAX_SCORE - score, 1),
        maintainability_score=max(MAX_SCORE - score // 2, 1),
        complexity_factors=factors,
        risk_factors=risks,
        suggestions=suggestions,
    )
