"""EXPLAIN JSON parsing into lenient, typed plan models."""

from querydoctor.parser.models import ExplainOutput, NodeType, PlanNode
from querydoctor.parser.parser import parse_explain, parse_explain_file

__all__ = [
    "ExplainOutput",
    "NodeType",
    "PlanNode",
    "parse_explain",
    "parse_explain_file",
]
