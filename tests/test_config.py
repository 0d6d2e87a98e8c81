"""Tests for configuration loading from environment and files."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from querydoctor.config import (
    Config,
    get_config,
    load_config_from_env,
    load_config_from_file,
    reset_config,
)
from querydoctor.exceptions import ConfigurationError


class TestDefaults:
    def test_defaults(self, config: Config) -> None:
        assert config.slow_query_ms == 1000
        assert config.critical_query_ms == 5000
        assert config.low_cache_hit_ratio == 80
        assert config.critical_cache_hit_ratio == 50
        assert config.max_concurrency == 5
        assert config.batch_timeout_seconds == 300
        assert config.retry_attempts == 2
        assert config.retry_delay_seconds == 1.0
        assert config.cache_ttl_seconds == 1800
        assert config.quick_mode is False

    def test_threshold_lookup_order(self) -> None:
        config = Config(slow_query_ms=250, rules={"SLOW_QUERY": {"thresholds": {"critical_query_ms": 900}}})

        assert config.get_rule_threshold("SLOW_QUERY", "critical_query_ms") == 900
        assert config.get_rule_threshold("SLOW_QUERY", "slow_query_ms") == 250
        assert config.get_rule_threshold("SLOW_QUERY", "nonexistent", 7) == 7

    def test_rules_enabled_by_default(self, config: Config) -> None:
        assert config.is_rule_enabled("MISSING_INDEX")

    def test_hash_tracks_detection_settings(self) -> None:
        assert Config().config_hash() == Config(max_concurrency=9).config_hash()
        assert Config().config_hash() != Config(slow_query_ms=10).config_hash()

    def test_frozen(self, config: Config) -> None:
        with pytest.raises(ValueError):
            config.slow_query_ms = 1  # type: ignore[misc]


class TestEnvironment:
    def test_global_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUERYDOCTOR_SLOW_QUERY_MS", "250")
        monkeypatch.setenv("QUERYDOCTOR_MAX_CONCURRENCY", "12")
        monkeypatch.setenv("QUERYDOCTOR_QUICK_MODE", "yes")
        monkeypatch.setenv("QUERYDOCTOR_BATCH_TIMEOUT_SECONDS", "off")

        config = load_config_from_env()

        assert config.slow_query_ms == 250
        assert config.max_concurrency == 12
        assert config.quick_mode is True
        assert config.batch_timeout_seconds is None

    def test_bad_number_keeps_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUERYDOCTOR_RETRY_ATTEMPTS", "many")
        assert load_config_from_env().retry_attempts == 2

    def test_rule_toggle_and_threshold(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUERYDOCTOR_RULE_MISSING_INDEX_ENABLED", "false")
        monkeypatch.setenv("QUERYDOCTOR_RULE_SLOW_QUERY_SLOW_QUERY_MS", "75")

        config = load_config_from_env()

        assert not config.is_rule_enabled("MISSING_INDEX")
        assert config.get_rule_threshold("SLOW_QUERY", "slow_query_ms") == 75

    def test_invalid_value_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUERYDOCTOR_MAX_CONCURRENCY", "0")
        with pytest.raises(ConfigurationError):
            load_config_from_env()

    def test_get_config_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUERYDOCTOR_RETRY_ATTEMPTS", "4")
        first = get_config()
        monkeypatch.setenv("QUERYDOCTOR_RETRY_ATTEMPTS", "6")

        assert get_config() is first
        reset_config()
        assert get_config().retry_attempts == 6


class TestConfigFile:
    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "querydoctor.yaml"
        path.write_text(
            "slow_query_ms: 300\n"
            "max_concurrency: 3\n"
            "rules:\n"
            "  SEQUENTIAL_SCAN:\n"
            "    enabled: false\n"
        )
        config = load_config_from_file(path)

        assert config.slow_query_ms == 300
        assert config.max_concurrency == 3
        assert not config.is_rule_enabled("SEQUENTIAL_SCAN")

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "querydoctor.json"
        path.write_text(json.dumps({"retry_attempts": 0, "cache_enabled": False}))
        config = load_config_from_file(path)

        assert config.retry_attempts == 0
        assert config.cache_enabled is False

    def test_env_names_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "querydoctor.json"
        path.write_text(json.dumps({"critical_query_ms": 2000}))
        monkeypatch.setenv("QUERYDOCTOR_CONFIG_FILE", str(path))

        assert get_config().critical_query_ms == 2000

    def test_missing_file_falls_back_to_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUERYDOCTOR_SLOW_QUERY_MS", "123")
        assert load_config_from_file(tmp_path / "absent.yaml").slow_query_ms == 123

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_config_from_file(path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"max_concurrency": "lots"}))
        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_file(path)
        assert exc_info.value.config_key == str(path)

    def test_unreadable_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yml"
        path.write_text("rules: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config_from_file(path)
