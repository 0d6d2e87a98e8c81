"""
Package-level exception hierarchy for querydoctor.

All exceptions inherit from QueryDoctorError so callers can catch every
library error with a single handler, and every error serializes to a dict
for JSON output.

Hierarchy:
    QueryDoctorError
    ├── ParseError               – Plan input is not a traversable tree
    ├── ValidationError          – Empty or invalid input to the pipeline
    ├── ConfigurationError       – Invalid configuration value or file
    ├── ExternalError            – A collaborator (driver, catalog) failed
    │   └── DatabaseConnectionError
    ├── BenchmarkAbort           – A measured benchmark iteration failed
    └── TargetFailure            – A batch target exhausted its retries
"""

from __future__ import annotations

from typing import Any


class QueryDoctorError(Exception):
    """
    Base exception for all querydoctor errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Input Errors ─────────────────────────────────────────────────────────


class ParseError(QueryDoctorError):
    """
    Execution plan input could not be interpreted at all.

    Only raised for input that is not an object or array (or a JSON string
    decoding to neither). Partial or mistyped plans degrade to defaults.

    Attributes:
        source: Where the failure happened ("json_decode", "structure", a path).
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["source"] = self.source
        return result


class ValidationError(QueryDoctorError):
    """Empty or otherwise invalid SQL text or arguments."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["field"] = self.field
        return result


class ConfigurationError(QueryDoctorError):
    """
    Error in configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Collaborator Errors ──────────────────────────────────────────────────


class ExternalError(QueryDoctorError):
    """
    A collaborator (database driver, catalog lookup) failed.

    The underlying exception is kept as ``original_error`` and chained
    with ``raise ... from``.
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["operation"] = self.operation
        if self.original_error is not None:
            result["original_error_type"] = type(self.original_error).__name__
            result["original_error_message"] = str(self.original_error)
        return result


class DatabaseConnectionError(ExternalError):
    """Could not connect to, or lost the connection to, the database."""


# ── Execution Errors ─────────────────────────────────────────────────────


class BenchmarkAbort(QueryDoctorError):
    """
    A measured benchmark iteration failed; no partial statistics exist.

    Attributes:
        iteration: 1-based index of the failing measured run.
        original_error: The exception raised by that run.
    """

    def __init__(self, iteration: int, original_error: BaseException) -> None:
        self.iteration = iteration
        self.original_error = original_error
        message = (
            f"Benchmark aborted at iteration {iteration}: "
            f"{type(original_error).__name__}: {original_error}"
        )
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["iteration"] = self.iteration
        return result


class TargetFailure(QueryDoctorError):
    """
    One batch target exhausted its retries.

    Never propagates out of the orchestrator: it is recorded on the
    target's BatchResult and the batch continues.
    """

    def __init__(self, target_id: str, attempts: int, last_error: str) -> None:
        self.target_id = target_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Target '{target_id}' failed after {attempts} attempt(s): {last_error}"
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["target_id"] = self.target_id
        result["attempts"] = self.attempts
        return result
