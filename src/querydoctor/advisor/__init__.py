"""
Advisory rule sets: index, rewrite, cost and complexity.

All four work on query text (plus metrics where relevant) through the
heuristic extraction in sql_patterns; none of them parse SQL.
"""

from querydoctor.advisor.complexity_advisor import ComplexityReport, analyze_complexity
from querydoctor.advisor.cost_advisor import CostCategory, CostEstimate, ResourceUsage, estimate_cost
from querydoctor.advisor.index_advisor import (
    IndexAdvisor,
    candidate_indexes,
    composite_indexes,
    filter_existing,
)
from querydoctor.advisor.rewrite_advisor import specific_rewrites, suggest_rewrites
from querydoctor.advisor.sql_patterns import ColumnReference, ColumnUsage, QueryPatterns, extract_patterns

__all__ = [
    "ColumnReference",
    "ColumnUsage",
    "ComplexityReport",
    "CostCategory",
    "CostEstimate",
    "IndexAdvisor",
    "QueryPatterns",
    "ResourceUsage",
    "analyze_complexity",
    "candidate_indexes",
    "composite_indexes",
    "estimate_cost",
    "extract_patterns",
    "filter_existing",
    "specific_rewrites",
    "suggest_rewrites",
]
