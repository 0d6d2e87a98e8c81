"""Detection rules, in the order the detector evaluates them."""

from querydoctor.analyzer.rules.base import Rule, RuleConfig
from querydoctor.analyzer.rules.buffer_usage import BufferUsageConfig, HighBufferUsage
from querydoctor.analyzer.rules.missing_index import MissingIndex, create_index_sql
from querydoctor.analyzer.rules.sequential_scan import SequentialScan
from querydoctor.analyzer.rules.slow_query import SlowQuery, SlowQueryConfig

RULE_CLASSES: tuple[type[Rule], ...] = (
    SlowQuery,
    SequentialScan,
    HighBufferUsage,
    MissingIndex,
)

__all__ = [
    "RULE_CLASSES",
    "BufferUsageConfig",
    "HighBufferUsage",
    "MissingIndex",
    "Rule",
    "RuleConfig",
    "SequentialScan",
    "SlowQuery",
    "SlowQueryConfig",
    "create_index_sql",
]
