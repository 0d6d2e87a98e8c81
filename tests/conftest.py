"""
Shared fixtures for the querydoctor test suite.

Plans are built in code rather than loaded from files so each test shows
exactly which EXPLAIN fields it depends on. Database collaborators are
replaced by small in-memory fakes.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from querydoctor.config import Config, reset_config


def seq_scan(
    relation: str | None = "orders",
    rows: float = 100,
    filter: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """A Seq Scan node."""
    node: dict[str, Any] = {"Node Type": "Seq Scan", "Actual Rows": rows, **extra}
    if relation is not None:
        node["Relation Name"] = relation
    if filter is not None:
        node["Filter"] = filter
    return node


def node(node_type: str, rows: float = 1, children: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"Node Type": node_type, "Actual Rows": rows, **extra}
    if children:
        result["Plans"] = children
    return result


def make_plan(
    root: dict[str, Any] | None = None,
    execution_time: float = 12.5,
    planning_time: float = 0.5,
    hit: float = 100,
    read: float = 0,
    total_cost: float = 42.0,
) -> list[dict[str, Any]]:
    """
    An EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON) result as the driver returns it.

    Defaults describe a fast, fully cached index scan with no issues.
    """
    return [
        {
            "Plan": root or node("Index Scan", rows=1, **{"Relation Name": "orders"}),
            "Planning Time": planning_time,
            "Execution Time": execution_time,
            "Total Cost": total_cost,
            "Shared Hit Blocks": hit,
            "Shared Read Blocks": read,
        }
    ]


class FakePlanSource:
    """
    In-memory PlanSource.

    Returns ``plan`` for every query, or ``plans[sql]`` when given. Pops
    one entry from ``errors`` per call and raises it when not None.
    """

    def __init__(
        self,
        plan: Any = None,
        plans: dict[str, Any] | None = None,
        errors: list[BaseException | None] | None = None,
    ) -> None:
        self.plan = plan if plan is not None else make_plan()
        self.plans = plans or {}
        self.errors = list(errors or [])
        self.calls: list[str] = []
        self.closed = False

    async def run_explain(self, sql: str) -> Any:
        self.calls.append(sql)
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        return copy.deepcopy(self.plans.get(sql, self.plan))

    async def close(self) -> None:
        self.closed = True


class FakeCatalog:
    """In-memory CatalogSource keyed by table name."""

    def __init__(
        self,
        indexes: dict[str, list[str]] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.indexes = indexes or {}
        self.failing = failing or set()
        self.catalog_calls: list[list[str]] = []

    async def existing_indexes(self, tables: list[str]) -> list[tuple[str, str]]:
        self.catalog_calls.append(list(tables))
        found: list[tuple[str, str]] = []
        for table in tables:
            if table in self.failing:
                raise RuntimeError(f"catalog unavailable for {table}")
            found.extend((table, column) for column in self.indexes.get(table, []))
        return found


class FakeProbe(FakePlanSource, FakeCatalog):
    """Plan source and catalog in one, like AsyncpgProbe."""

    def __init__(self, plan: Any = None, indexes: dict[str, list[str]] | None = None) -> None:
        FakePlanSource.__init__(self, plan=plan)
        FakeCatalog.__init__(self, indexes=indexes)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch):
    """Keep QUERYDOCTOR_* variables from the host out of every test."""
    import os

    for key in list(os.environ):
        if key.startswith("QUERYDOCTOR_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def seq_scan_plan() -> list[dict[str, Any]]:
    """One nested Seq Scan on orders under an Aggregate."""
    return make_plan(
        root=node("Aggregate", rows=1, children=[seq_scan("orders", rows=5000)]),
    )
