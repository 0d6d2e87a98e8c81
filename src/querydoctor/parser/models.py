"""
Pydantic models for PostgreSQL EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON) output.

The structure is:
- ExplainOutput: the wrapper object PostgreSQL returns inside a one-element
  array, holding the root plan plus timing fields
- PlanNode: recursive structure for each node in the plan tree

PostgreSQL uses "Title Case" keys, mapped to snake_case via aliases.

Unlike a strict schema, every field here is optional and defaulted: a
missing or mistyped value becomes None (or an empty child list) instead of
failing validation, so partially populated plans still produce metrics.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, model_validator


class NodeType(str, Enum):
    """Plan node types the detection rules look at."""

    SEQ_SCAN = "Seq Scan"
    INDEX_SCAN = "Index Scan"
    INDEX_ONLY_SCAN = "Index Only Scan"
    BITMAP_HEAP_SCAN = "Bitmap Heap Scan"
    NESTED_LOOP = "Nested Loop"
    HASH_JOIN = "Hash Join"
    MERGE_JOIN = "Merge Join"
    SORT = "Sort"


_NUMERIC_KEYS = (
    "Actual Rows",
    "Planning Time",
    "Execution Time",
    "Shared Hit Blocks",
    "Shared Read Blocks",
    "Shared Dirtied Blocks",
    "Shared Written Blocks",
    "Total Cost",
    "Startup Cost",
    "Plan Rows",
    "Actual Total Time",
    "Actual Loops",
)

_TEXT_KEYS = ("Node Type", "Relation Name", "Alias", "Filter", "Index Name")


def _as_number(value: Any) -> float | None:
    """Coerce a JSON scalar to a finite float; anything unusable becomes None."""
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    # json.loads accepts NaN and Infinity literals
    return number if math.isfinite(number) else None


def _sanitize(data: Any, numeric_keys: tuple[str, ...]) -> Any:
    """Drop or coerce mistyped fields before pydantic sees them."""
    if not isinstance(data, dict):
        return data

    clean = dict(data)
    for key in numeric_keys:
        if key in clean:
            number = _as_number(clean[key])
            if number is None:
                del clean[key]
            else:
                clean[key] = number
    for key in _TEXT_KEYS:
        if key in clean and not isinstance(clean[key], str):
            del clean[key]
    if "Plans" in clean:
        children = clean["Plans"]
        clean["Plans"] = (
            [child for child in children if isinstance(child, dict)]
            if isinstance(children, list)
            else []
        )
    return clean


class PlanNode(BaseModel):
    """
    A single node in the execution plan tree.

    Children live in ``plans``; leaves execute first and results flow up
    to the root. Unknown keys are preserved in ``model_extra``.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    node_type: str = Field(
        default="Unknown",
        alias="Node Type",
        description="The type of plan node (e.g., 'Seq Scan', 'Hash Join')",
    )
    relation_name: str | None = Field(default=None, alias="Relation Name")
    alias: str | None = Field(default=None, alias="Alias")
    index_name: str | None = Field(default=None, alias="Index Name")
    filter: str | None = Field(default=None, alias="Filter")

    actual_rows: float | None = Field(default=None, alias="Actual Rows")
    actual_total_time: float | None = Field(default=None, alias="Actual Total Time")
    actual_loops: float | None = Field(default=None, alias="Actual Loops")
    plan_rows: float | None = Field(default=None, alias="Plan Rows")
    startup_cost: float | None = Field(default=None, alias="Startup Cost")
    total_cost: float | None = Field(default=None, alias="Total Cost")

    # Only present at node level on some servers; usually on the wrapper.
    planning_time: float | None = Field(default=None, alias="Planning Time")
    execution_time: float | None = Field(default=None, alias="Execution Time")

    shared_hit_blocks: float | None = Field(default=None, alias="Shared Hit Blocks")
    shared_read_blocks: float | None = Field(default=None, alias="Shared Read Blocks")
    shared_dirtied_blocks: float | None = Field(default=None, alias="Shared Dirtied Blocks")
    shared_written_blocks: float | None = Field(default=None, alias="Shared Written Blocks")

    plans: list[PlanNode] = Field(
        default_factory=list,
        alias="Plans",
        description="Child plan nodes",
    )

    @model_validator(mode="before")
    @classmethod
    def _lenient(cls, data: Any) -> Any:
        return _sanitize(data, _NUMERIC_KEYS)

    @property
    def is_seq_scan(self) -> bool:
        return self.node_type == NodeType.SEQ_SCAN.value

    def iter_nodes(self) -> Iterator[PlanNode]:
        """
        Yield every node in the tree, depth-first.

        Parents come before their children and siblings left to right.
        Iterative so deep plans cannot exhaust the recursion limit.
        """
        stack: list[PlanNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.plans))


class ExplainOutput(BaseModel):
    """
    Top-level EXPLAIN JSON object: ``{"Plan": {...}, "Planning Time": ...}``.

    Wrapper-level scalars are preferred; ``scalar()`` falls back to the
    root plan node and finally to 0.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    plan: PlanNode = Field(default_factory=PlanNode, alias="Plan")

    planning_time: float | None = Field(default=None, alias="Planning Time")
    execution_time: float | None = Field(default=None, alias="Execution Time")
    total_cost: float | None = Field(default=None, alias="Total Cost")
    shared_hit_blocks: float | None = Field(default=None, alias="Shared Hit Blocks")
    shared_read_blocks: float | None = Field(default=None, alias="Shared Read Blocks")
    shared_dirtied_blocks: float | None = Field(default=None, alias="Shared Dirtied Blocks")
    shared_written_blocks: float | None = Field(default=None, alias="Shared Written Blocks")
    query_text: str | None = Field(default=None, alias="Query Text")

    @model_validator(mode="before")
    @classmethod
    def _lenient(cls, data: Any) -> Any:
        if isinstance(data, dict) and not isinstance(data.get("Plan"), dict):
            data = {k: v for k, v in data.items() if k != "Plan"}
        return _sanitize(data, _NUMERIC_KEYS)

    def scalar(self, field_name: str) -> float:
        """Read a numeric field from the wrapper, then the root node, default 0."""
        value = getattr(self, field_name)
        if value is None:
            value = getattr(self.plan, field_name, None)
        return value if value is not None else 0.0

    @property
    def all_nodes(self) -> list[PlanNode]:
        """All nodes in the plan tree, pre-order."""
        return list(self.plan.iter_nodes())

    def find_nodes_by_type(self, node_type: str) -> list[PlanNode]:
        """Find all nodes of a specific type, pre-order."""
        return [n for n in self.plan.iter_nodes() if n.node_type == node_type]
