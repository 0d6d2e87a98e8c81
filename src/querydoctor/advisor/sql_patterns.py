"""
Heuristic SQL pattern extraction.

This is deliberately not a parser. Comments are stripped with sqlparse and
the text is lower-cased; everything after that is regular expressions and
substring checks over the flat text.

Known failure modes:
- Unqualified columns (``WHERE status = 1``) are invisible to the index
  patterns, which only match ``table.column``.
- Aliases are taken literally: ``o.status`` yields table ``o``.
- The "WHERE" pattern matches any ``t.c <op> value`` anywhere in the
  statement, including join conditions and SELECT-list expressions.
- Keywords inside string literals (``'... where ...'``) count as keywords.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

import sqlparse


class ColumnUsage(str, Enum):
    """Where a qualified column reference was found."""

    FILTER = "filter"
    JOIN = "join"
    ORDER_BY = "order_by"
    GROUP_BY = "group_by"


@dataclass(frozen=True)
class ColumnReference:
    """
    A ``table.column`` reference found in the query text.

    Attributes:
        table: Table name or alias exactly as written (lower-cased)
        column: Column name (lower-cased)
        usage: Which pattern found it
        operator: Comparison operator for filters, "=" for joins
        direction: "asc" or "desc" for ORDER BY references
        referenced_table: Other side of a join condition
        referenced_column: Other side of a join condition
    """

    table: str
    column: str
    usage: ColumnUsage
    operator: str | None = None
    direction: str | None = None
    referenced_table: str | None = None
    referenced_column: str | None = None


TABLE_PATTERN = re.compile(r"from\s+(\w+)|join\s+(\w+)")
WHERE_PATTERN = re.compile(r"(\w+)\.(\w+)\s*([=<>!]+)\s*[^,\s]+")
JOIN_PATTERN = re.compile(r"(\w+)\.(\w+)\s*=\s*(\w+)\.(\w+)")
ORDER_BY_PATTERN = re.compile(r"order\s+by\s+(\w+)\.(\w+)(?:\s+(asc|desc))?")
GROUP_BY_PATTERN = re.compile(r"group\s+by\s+(\w+)\.(\w+)")


def normalize_sql(sql: str) -> str:
    """Strip comments and lower-case; whitespace inside the text is kept."""
    stripped = sqlparse.format(sql, strip_comments=True)
    return stripped.strip().lower()


@dataclass(frozen=True)
class QueryPatterns:
    """
    Everything the advisors need from one query's text.

    Build with :func:`extract_patterns`; all fields derive from the
    normalized text, so two queries differing only in comments or case
    yield equal patterns.
    """

    text: str
    tables: tuple[str, ...] = ()
    where_columns: tuple[ColumnReference, ...] = ()
    join_columns: tuple[ColumnReference, ...] = ()
    order_by_columns: tuple[ColumnReference, ...] = ()
    group_by_columns: tuple[ColumnReference, ...] = ()
    flags: dict[str, bool] = field(default_factory=dict, compare=False)

    def has(self, flag: str) -> bool:
        return self.flags.get(flag, False)

    @property
    def join_count(self) -> int:
        """Occurrences of the substring "join", as the cost model counts them."""
        return self.text.count("join")

    @property
    def unbalanced_parentheses(self) -> int:
        return self.text.count("(") - self.text.count(")")

    @property
    def table_count(self) -> int:
        return len(self.tables)

    def where_columns_by_table(self) -> dict[str, list[str]]:
        """Distinct filter columns per table, both in discovery order."""
        grouped: dict[str, list[str]] = {}
        for ref in self.where_columns:
            columns = grouped.setdefault(ref.table, [])
            if ref.column not in columns:
                columns.append(ref.column)
        return grouped


def _flags(text: str) -> dict[str, bool]:
    has_where = "where" in text
    return {
        "select_star": "select *" in text,
        "where": has_where,
        "order_by": "order by" in text,
        "limit": "limit" in text,
        "join": "join" in text,
        "group_by": "group by" in text,
        "having": "having" in text,
        "distinct": "distinct" in text,
        "window": "over(" in text,
        "set_operation": any(op in text for op in ("union", "intersect", "except")),
        "leading_wildcard": "like '%" in text or 'like "%' in text,
        "function_on_filter": any(
            f"where {fn}(" in text for fn in ("lower", "upper", "date")
        ),
        "or_in_where": " or " in text and has_where,
        "in_subquery": " in (" in text,
    }


def extract_patterns(sql: str) -> QueryPatterns:
    """Run every pattern over the normalized query text."""
    text = normalize_sql(sql)

    tables = tuple(m.group(1) or m.group(2) for m in TABLE_PATTERN.finditer(text))

    where_columns = tuple(
        ColumnReference(m.group(1), m.group(2), ColumnUsage.FILTER, operator=m.group(3))
        for m in WHERE_PATTERN.finditer(text)
    )
    join_columns = tuple(
        ColumnReference(
            m.group(1),
            m.group(2),
            ColumnUsage.JOIN,
            operator="=",
            referenced_table=m.group(3),
            referenced_column=m.group(4),
        )
        for m in JOIN_PATTERN.finditer(text)
    )
    order_by_columns = tuple(
        ColumnReference(m.group(1), m.group(2), ColumnUsage.ORDER_BY, direction=m.group(3) or "asc")
        for m in ORDER_BY_PATTERN.finditer(text)
    )
    group_by_columns = tuple(
        ColumnReference(m.group(1), m.group(2), ColumnUsage.GROUP_BY)
        for m in GROUP_BY_PATTERN.finditer(text)
    )

    return QueryPatterns(
        text=text,
        tables=tables,
        where_columns=where_columns,
        join_columns=join_columns,
        order_by_columns=order_by_columns,
        group_by_columns=group_by_columns,
        flags=_flags(text),
    )
