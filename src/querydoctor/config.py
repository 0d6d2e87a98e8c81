"""
Configuration system for querydoctor.

Environment variables are the primary source; an optional JSON or YAML
file (named by QUERYDOCTOR_CONFIG_FILE) replaces them wholesale.

Usage:
    from querydoctor.config import get_config

    config = get_config()
    if config.is_rule_enabled("SLOW_QUERY"):
        ...
    threshold = config.get_rule_threshold("SLOW_QUERY", "slow_query_ms")
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from querydoctor.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUERYDOCTOR_"


class RuleConfig(BaseModel):
    """Configuration for a single detection rule."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether the rule is enabled")
    thresholds: dict[str, int | float] = Field(
        default_factory=dict,
        description="Rule-specific threshold overrides",
    )


class Config(BaseModel):
    """
    querydoctor configuration.

    Detection thresholds, benchmark defaults and batch orchestration
    settings. Immutable once loaded.
    """

    model_config = ConfigDict(frozen=True)

    # Detection thresholds
    slow_query_ms: float = Field(
        default=1000.0,
        description="Execution time above which a query is reported as slow",
    )
    critical_query_ms: float = Field(
        default=5000.0,
        description="Execution time above which a slow query is critical",
    )
    low_cache_hit_ratio: int = Field(
        default=80,
        description="Cache hit ratio (percent) below which buffer usage is flagged",
    )
    critical_cache_hit_ratio: int = Field(
        default=50,
        description="Cache hit ratio (percent) below which buffer usage is critical",
    )

    rules: dict[str, RuleConfig] = Field(
        default_factory=dict,
        description="Per-rule configurations keyed by rule id",
    )

    # Benchmarking
    benchmark_iterations: int = Field(default=5, ge=1)
    benchmark_warmup_runs: int = Field(default=3, ge=0)
    benchmark_warmup_delay_ms: float = Field(default=50.0, ge=0)
    benchmark_iteration_delay_ms: float = Field(default=100.0, ge=0)

    # Batch orchestration
    max_concurrency: int = Field(default=5, ge=1)
    batch_timeout_seconds: float | None = Field(
        default=300.0,
        description="Per-attempt timeout for one batch target, None disables",
    )
    retry_attempts: int = Field(default=2, ge=0)
    retry_delay_seconds: float = Field(default=1.0, ge=0)
    quick_mode: bool = Field(default=False)

    # Result cache
    cache_enabled: bool = Field(default=True)
    cache_ttl_seconds: float = Field(default=1800.0, gt=0)
    cache_max_entries: int = Field(default=100, ge=1)

    # Database access
    statement_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to each statement sent to the database",
    )

    def get_rule_threshold(
        self,
        rule_id: str,
        threshold_name: str,
        default: int | float | None = None,
    ) -> int | float | None:
        """
        Get a threshold value for a rule.

        Lookup order: the rule's own thresholds, then a global field of the
        same name, then ``default``.
        """
        rule_config = self.rules.get(rule_id)
        if rule_config and threshold_name in rule_config.thresholds:
            return rule_config.thresholds[threshold_name]

        if threshold_name in type(self).model_fields:
            return getattr(self, threshold_name)

        return default

    def is_rule_enabled(self, rule_id: str) -> bool:
        """Check if a rule is enabled (rules are enabled by default)."""
        if rule_id in self.rules:
            return self.rules[rule_id].enabled
        return True

    def config_hash(self) -> str:
        """Hash of the detection-relevant settings, for cache keys."""
        config_dict = self.model_dump(
            include={
                "slow_query_ms",
                "critical_query_ms",
                "low_cache_hit_ratio",
                "critical_cache_hit_ratio",
                "rules",
            }
        )
        config_json = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(config_json.encode()).hexdigest()[:16]


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer config value %r", value)
        return default


def _parse_env_float(value: str | None, default: float | None) -> float | None:
    """Parse float from environment variable; "none" or "off" yield None."""
    if value is None:
        return default
    if value.lower() in ("none", "off", ""):
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric config value %r", value)
        return default


def _env(name: str) -> str | None:
    return os.environ.get(f"{ENV_PREFIX}{name}")


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Naming convention:
    - QUERYDOCTOR_<SETTING> for global settings
    - QUERYDOCTOR_RULE_<RULE_ID>_ENABLED to toggle a rule
    - QUERYDOCTOR_RULE_<RULE_ID>_<THRESHOLD> for rule thresholds

    Examples:
    - QUERYDOCTOR_SLOW_QUERY_MS=250
    - QUERYDOCTOR_MAX_CONCURRENCY=10
    - QUERYDOCTOR_RULE_MISSING_INDEX_ENABLED=false
    """
    defaults = Config()
    config_kwargs: dict[str, Any] = {
        "slow_query_ms": _parse_env_float(_env("SLOW_QUERY_MS"), defaults.slow_query_ms),
        "critical_query_ms": _parse_env_float(
            _env("CRITICAL_QUERY_MS"), defaults.critical_query_ms
        ),
        "low_cache_hit_ratio": _parse_env_int(
            _env("LOW_CACHE_HIT_RATIO"), defaults.low_cache_hit_ratio
        ),
        "critical_cache_hit_ratio": _parse_env_int(
            _env("CRITICAL_CACHE_HIT_RATIO"), defaults.critical_cache_hit_ratio
        ),
        "benchmark_iterations": _parse_env_int(
            _env("BENCHMARK_ITERATIONS"), defaults.benchmark_iterations
        ),
        "max_concurrency": _parse_env_int(_env("MAX_CONCURRENCY"), defaults.max_concurrency),
        "batch_timeout_seconds": _parse_env_float(
            _env("BATCH_TIMEOUT_SECONDS"), defaults.batch_timeout_seconds
        ),
        "retry_attempts": _parse_env_int(_env("RETRY_ATTEMPTS"), defaults.retry_attempts),
        "retry_delay_seconds": _parse_env_float(
            _env("RETRY_DELAY_SECONDS"), defaults.retry_delay_seconds
        ),
        "quick_mode": _parse_env_bool(_env("QUICK_MODE"), defaults.quick_mode),
        "cache_enabled": _parse_env_bool(_env("CACHE_ENABLED"), defaults.cache_enabled),
        "cache_ttl_seconds": _parse_env_float(
            _env("CACHE_TTL_SECONDS"), defaults.cache_ttl_seconds
        ),
        "cache_max_entries": _parse_env_int(
            _env("CACHE_MAX_ENTRIES"), defaults.cache_max_entries
        ),
        "statement_timeout_seconds": _parse_env_float(
            _env("STATEMENT_TIMEOUT_SECONDS"), defaults.statement_timeout_seconds
        ),
    }

    rules: dict[str, RuleConfig] = {}
    rule_prefix = f"{ENV_PREFIX}RULE_"

    for key, value in os.environ.items():
        if not key.startswith(rule_prefix):
            continue
        parts = key[len(rule_prefix):].split("_")
        if len(parts) < 2:
            continue

        # Rule ids contain underscores; "ENABLED" is always the last segment.
        if parts[-1] == "ENABLED":
            rule_id = "_".join(parts[:-1])
            current = rules.get(rule_id, RuleConfig())
            rules[rule_id] = current.model_copy(
                update={"enabled": _parse_env_bool(value, True)}
            )
            continue

        rule_id, setting = _split_rule_setting(parts)
        current = rules.get(rule_id, RuleConfig())
        thresholds = dict(current.thresholds)
        try:
            thresholds[setting] = float(value) if "." in value else int(value)
        except ValueError:
            logger.warning("Could not parse threshold %s=%s", key, value)
            continue
        rules[rule_id] = current.model_copy(update={"thresholds": thresholds})

    config_kwargs["rules"] = rules

    try:
        return Config(**config_kwargs)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid environment configuration: {e}") from e


def _split_rule_setting(parts: list[str]) -> tuple[str, str]:
    """
    Split RULE_<ID>_<SETTING> segments where both sides may contain "_".

    Known rule ids are matched longest-first; otherwise the last segment
    is the setting.
    """
    from querydoctor.analyzer.detector import RULE_IDS

    joined = "_".join(parts)
    for rule_id in sorted(RULE_IDS, key=len, reverse=True):
        if joined.startswith(rule_id + "_"):
            return rule_id, joined[len(rule_id) + 1:].lower()
    return "_".join(parts[:-1]), parts[-1].lower()


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    A missing file falls back to environment variables; an unreadable or
    invalid file raises ConfigurationError.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot read config file {path}: {e}",
            config_key=str(path),
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping",
            config_key=str(path),
        )

    try:
        return Config(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}", config_key=str(path)) from e


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from QUERYDOCTOR_CONFIG_FILE if set, otherwise from environment
    variables. Cached for the lifetime of the process.
    """
    config_file = _env("CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
