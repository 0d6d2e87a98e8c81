"""
Index advice from query text.

Every qualified column found in a filter, join condition, ORDER BY or
GROUP BY becomes a single-column index candidate. Tables filtered on two
or more distinct columns also get one composite candidate, columns in the
order they were discovered.

Candidates whose exact (table, column) pair already has an index are
dropped. Composite candidates are never dropped: separate single-column
indexes do not make a composite one redundant.

Usage:
    advisor = IndexAdvisor(catalog=probe)
    suggestions = await advisor.suggest(sql)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable

from querydoctor.advisor.sql_patterns import ColumnReference, ColumnUsage, QueryPatterns, extract_patterns
from querydoctor.analyzer.models import Priority, Suggestion, SuggestionType
from querydoctor.analyzer.rules.missing_index import create_index_sql

if TYPE_CHECKING:
    from querydoctor.db.probe import CatalogSource

logger = logging.getLogger(__name__)

# usage -> (clause label, verb in description, priority/impact)
_USAGE_TEXT: dict[ColumnUsage, tuple[str, str, Priority]] = {
    ColumnUsage.FILTER: ("WHERE clause", "filtering", Priority.HIGH),
    ColumnUsage.JOIN: ("JOIN", "join condition", Priority.HIGH),
    ColumnUsage.ORDER_BY: ("ORDER BY", "sorting", Priority.MEDIUM),
    ColumnUsage.GROUP_BY: ("GROUP BY", "grouping", Priority.MEDIUM),
}


def single_column_suggestion(ref: ColumnReference) -> Suggestion:
    label, verb, priority = _USAGE_TEXT[ref.usage]
    qualified = f"{ref.table}.{ref.column}"
    description = (
        f"Create index for join condition on {qualified}"
        if ref.usage is ColumnUsage.JOIN
        else f"Create index for {verb} on {qualified}"
    )
    return Suggestion(
        type=SuggestionType.INDEX,
        priority=priority,
        title=f"Index for {label} on {qualified}",
        description=description,
        sql=create_index_sql(ref.table, [ref.column]),
        impact=priority,
        effort=Priority.LOW,
        table=ref.table,
        columns=(ref.column,),
    )


def composite_suggestion(table: str, columns: list[str]) -> Suggestion:
    column_list = ", ".join(columns)
    return Suggestion(
        type=SuggestionType.INDEX,
        priority=Priority.HIGH,
        title=f"Composite index for {table} on {column_list}",
        description=f"Create composite index for multiple WHERE conditions on {table}",
        sql=create_index_sql(table, columns),
        impact=Priority.HIGH,
        effort=Priority.LOW,
        table=table,
        columns=tuple(columns),
    )


def candidate_indexes(patterns: QueryPatterns) -> list[Suggestion]:
    """Single-column candidates: filters, joins, ORDER BY, GROUP BY, in that order."""
    refs = (
        *patterns.where_columns,
        *patterns.join_columns,
        *patterns.order_by_columns,
        *patterns.group_by_columns,
    )
    return [single_column_suggestion(ref) for ref in refs]


def composite_indexes(patterns: QueryPatterns) -> list[Suggestion]:
    """One composite candidate per table filtered on two or more distinct columns."""
    return [
        composite_suggestion(table, columns)
        for table, columns in patterns.where_columns_by_table().items()
        if len(columns) >= 2
    ]


def filter_existing(
    suggestions: Iterable[Suggestion],
    existing: Iterable[tuple[str, str]],
) -> list[Suggestion]:
    """Drop single-column suggestions whose exact (table, column) is already indexed."""
    covered = {(table.lower(), column.lower()) for table, column in existing}
    kept = []
    for suggestion in suggestions:
        if (
            suggestion.table is not None
            and len(suggestion.columns) == 1
            and (suggestion.table, suggestion.columns[0]) in covered
        ):
            logger.debug("Skipping %s: already indexed", suggestion.title)
            continue
        kept.append(suggestion)
    return kept


class IndexAdvisor:
    """
    Produces index suggestions for a query, de-duplicated against the catalog.

    Without a catalog every candidate is returned.
    """

    def __init__(self, catalog: "CatalogSource | None" = None) -> None:
        self.catalog = catalog

    def candidates(self, sql: str) -> list[Suggestion]:
        """All candidates before catalog filtering, composites last."""
        patterns = extract_patterns(sql)
        return candidate_indexes(patterns) + composite_indexes(patterns)

    async def suggest(self, sql: str) -> list[Suggestion]:
        patterns = extract_patterns(sql)
        suggestions = candidate_indexes(patterns) + composite_indexes(patterns)
        if not suggestions or self.catalog is None:
            return suggestions

        existing = await self._existing_indexes(self.catalog, patterns.tables)
        return filter_existing(suggestions, existing)

    @staticmethod
    async def _existing_indexes(
        catalog: "CatalogSource",
        tables: tuple[str, ...],
    ) -> list[tuple[str, str]]:
        """
        Look up indexed columns, one catalog call per table, issued concurrently.

        A failed lookup is logged and treated as "no known indexes" so the
        advice degrades to unfiltered rather than failing the analysis.
        """
        unique_tables = list(dict.fromkeys(tables))
        if not unique_tables:
            return []

        results = await asyncio.gather(
            *(catalog.existing_indexes([table]) for table in unique_tables),
            return_exceptions=True,
        )

        existing: list[tuple[str, str]] = []
        for table, result in zip(unique_tables, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning("Failed to get existing indexes for %s: %s", table, result)
                continue
            existing.extend(result)
        return existing
