"""
Loader for PostgreSQL EXPLAIN (FORMAT JSON) output.

This module handles:
- Loading EXPLAIN JSON from files, strings or already-decoded driver values
- Unwrapping the single-element array PostgreSQL returns
- Accepting a bare plan node as well as the {"Plan": ...} wrapper
- Converting to the lenient pydantic models

Error handling: only structurally hopeless input (a scalar, or JSON that
decodes to one) raises ParseError. Everything else degrades to defaults.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from querydoctor.exceptions import ParseError
from querydoctor.parser.models import ExplainOutput

logger = logging.getLogger(__name__)

PlanSourceInput = str | Path | dict[str, Any] | list[Any]


def parse_explain(source: PlanSourceInput) -> ExplainOutput:
    """
    Parse EXPLAIN JSON output into a typed ExplainOutput.

    Args:
        source: A decoded dict or list, a JSON string, or a path to a JSON file.

    Returns:
        ExplainOutput with every missing field defaulted.

    Raises:
        ParseError: If the input is not an object or array.

    Example:
        >>> output = parse_explain('[{"Plan": {"Node Type": "Seq Scan"}}]')
        >>> output.plan.node_type
        'Seq Scan'
    """
    data = _load_source(source)
    wrapper = _unwrap_array(data)

    if "Plan" not in wrapper and "Node Type" in wrapper:
        wrapper = {"Plan": wrapper}

    return ExplainOutput.model_validate(wrapper)


def parse_explain_file(path: str | Path) -> ExplainOutput:
    """Parse EXPLAIN output from a JSON file."""
    return parse_explain(_load_json_file(Path(path)))


def _load_source(source: Any) -> dict[str, Any] | list[Any]:
    """Load source into a Python dict/list."""
    if isinstance(source, (dict, list)):
        return source

    if isinstance(source, Path):
        return _load_json_file(source)

    if isinstance(source, (bytes, bytearray)):
        source = source.decode("utf-8", errors="replace")

    if isinstance(source, str):
        stripped = source.strip()
        if stripped.startswith(("{", "[")):
            return _parse_json_string(stripped, source_name="string")
        path = Path(stripped)
        if stripped and path.suffix == ".json" and path.exists():
            return _load_json_file(path)
        raise ParseError(
            "Expected EXPLAIN JSON object or array, got a plain string",
            source="structure",
        )

    raise ParseError(
        f"Expected EXPLAIN JSON object or array, got {type(source).__name__}",
        source="structure",
    )


def _load_json_file(path: Path) -> dict[str, Any] | list[Any]:
    """Load and parse a JSON file."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Cannot read file: {path} ({e})", source=str(path)) from e

    return _parse_json_string(content, source_name=str(path))


def _parse_json_string(content: str, source_name: str) -> dict[str, Any] | list[Any]:
    """Parse a JSON string into a dict or list."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Invalid JSON at line {e.lineno}, column {e.colno}: {e.msg}",
            source=source_name,
        ) from e

    if not isinstance(data, (dict, list)):
        raise ParseError(
            f"Expected JSON object or array, got {type(data).__name__}",
            source=source_name,
        )

    return data


def _unwrap_array(data: dict[str, Any] | list[Any]) -> dict[str, Any]:
    """
    Unwrap the single-element array that EXPLAIN (FORMAT JSON) returns.

    ``[{"Plan": {...}}]`` becomes ``{"Plan": {...}}``. An empty array is an
    empty plan; extra elements are ignored.
    """
    if isinstance(data, dict):
        return data

    if not data:
        logger.debug("Empty EXPLAIN array, metrics will be zeroed")
        return {}

    if len(data) > 1:
        logger.debug("EXPLAIN array has %d elements, using the first", len(data))

    inner = data[0]
    if isinstance(inner, list):
        return _unwrap_array(inner)
    if not isinstance(inner, dict):
        raise ParseError(
            f"Expected object inside array, got {type(inner).__name__}",
            source="structure",
        )
    return inner
