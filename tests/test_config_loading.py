"""Tests for configuration loading system."""

import json
from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

from genqueue.config import settings as settings_module
from genqueue.config.settings import (
    Settings,
    deep_merge,
    get_settings,
    load_all_configs,
    load_schema,
    validate_config_section,
)


class StubLogger:
    """Capture structured logging calls."""

    def __init__(self) -> None:
        self.debug_calls: list[tuple[str, dict[str, Any]]] = []
        self.info_calls: list[tuple[str, dict[str, Any]]] = []
        self.warning_calls: list[tuple[str, dict[str, Any]]] = []
        self.error_calls: list[tuple[str, dict[str, Any]]] = []

    def debug(self, event: str, **kwargs: Any) -> None:
        self.debug_calls.append((event, kwargs))

    def info(self, event: str, **kwargs: Any) -> None:
        self.info_calls.append((event, kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self.warning_calls.append((event, kwargs))

    def error(self, event: str, **kwargs: Any) -> None:
        self.error_calls.append((event, kwargs))


def _write_schema(config_dir: Path, name: str, schema: dict[str, Any]) -> None:
    schema_dir = config_dir / "schemas"
    schema_dir.mkdir(parents=True, exist_ok=True)
    (schema_dir / f"{name}.schema.json").write_text(json.dumps(schema), encoding="utf-8")


def _write_yaml(config_dir: Path, name: str, content: dict[str, Any]) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    with open(config_dir / f"{name}.yaml", "w", encoding="utf-8") as f:
        yaml.dump(content, f)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GENQUEUE_STORE_BACKEND",
        "GENQUEUE_REDIS_URL",
        "GENQUEUE_DEAD_LETTER_MAX_ENTRIES",
        "GENQUEUE_DEAD_LETTER_TRIM_TO",
        "GENQUEUE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_deep_merge_simple() -> None:
    """Test deep merge with simple dictionaries."""
    base = {"a": 1, "b": 2}
    override = {"b": 3, "c": 4}
    result = deep_merge(base, override)

    assert result == {"a": 1, "b": 3, "c": 4}


def test_deep_merge_nested() -> None:
    """Test deep merge with nested dictionaries."""
    base = {"store": {"backend": "redis", "redis_url": "redis://a:6379/0"}}
    override = {"store": {"socket_timeout_seconds": 2.0}}
    result = deep_merge(base, override)

    assert result == {
        "store": {
            "backend": "redis",
            "redis_url": "redis://a:6379/0",
            "socket_timeout_seconds": 2.0,
        }
    }


def test_deep_merge_lists_replaced() -> None:
    """Test that lists are replaced, not merged."""
    result = deep_merge({"items": [1, 2, 3]}, {"items": [4, 5]})

    assert result == {"items": [4, 5]}


def test_load_schema_existing(tmp_path: Path) -> None:
    """Test loading existing schema file from an explicit directory."""
    schema_content = {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "type": "object",
        "properties": {"test": {"type": "string"}},
    }
    _write_schema(tmp_path, "test", schema_content)

    assert load_schema("test", tmp_path) == schema_content


def test_load_schema_missing(tmp_path: Path) -> None:
    """Test loading non-existent schema returns empty dict."""
    assert load_schema("nonexistent_schema_xyz", tmp_path) == {}


def test_validate_config_section_invalid(tmp_path: Path) -> None:
    """Test validation fails for invalid config."""
    _write_schema(
        tmp_path,
        "test",
        {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        },
    )

    validate_config_section({"name": "ok"}, "test", config_dir=tmp_path)
    with pytest.raises(ValueError, match="Config validation failed"):
        validate_config_section({"wrong_field": "x"}, "test", config_dir=tmp_path)


def test_repository_schema_rejects_unknown_backend(tmp_path: Path) -> None:
    """The shipped main schema only accepts known store backends."""
    config_dir = tmp_path / "config"
    _write_yaml(config_dir, "main", {"store": {"backend": "postgres"}})
    schema = json.loads(
        (Path(__file__).parent.parent / "config" / "schemas" / "main.schema.json")
        .read_text(encoding="utf-8")
    )
    _write_schema(config_dir, "main", schema)

    with pytest.raises(ValueError, match="main"):
        load_all_configs(config_dir)


def test_load_all_configs_missing_directory(tmp_path: Path) -> None:
    """Test loading configs when the directory does not exist."""
    assert load_all_configs(tmp_path / "config") == {}


def test_load_all_configs_merge_order(tmp_path: Path) -> None:
    """main.yaml is loaded first and other files override it."""
    config_dir = tmp_path / "config"
    _write_yaml(config_dir, "main", {"store": {"backend": "redis"}, "logging": {"level": "INFO"}})
    _write_yaml(config_dir, "local", {"store": {"backend": "memory"}})

    config = load_all_configs(config_dir)

    assert config == {"store": {"backend": "memory"}, "logging": {"level": "INFO"}}


def test_load_all_configs_logs_structured_warning(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Config loader should emit structured warnings when files fail to load."""
    logger_stub = StubLogger()
    monkeypatch.setattr("genqueue.config.settings.logger", logger_stub)

    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "main.yaml").write_text("invalid: [yaml", encoding="utf-8")

    assert load_all_configs(config_dir) == {}

    event, payload = logger_stub.warning_calls[0]
    assert event == "config_file_load_failed"
    assert payload["path"].endswith("main.yaml")
    assert "error" in payload


def test_settings_apply_yaml_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """YAML values replace field defaults."""
    _write_yaml(
        tmp_path / "config",
        "main",
        {
            "store": {"backend": "memory"},
            "dead_letter": {"max_entries": 50, "trim_to": 10},
            "circuit_breaker": {"failure_threshold": 3},
            "leases": {"reclaim_interval_seconds": 12.5},
            "logging": {"level": "DEBUG", "json": True},
        },
    )
    monkeypatch.chdir(tmp_path)

    settings = Settings()

    assert settings.store_backend == "memory"
    assert settings.dead_letter_max_entries == 50
    assert settings.dead_letter_trim_to == 10
    assert settings.circuit_failure_threshold == 3
    assert settings.lease_reclaim_interval_seconds == 12.5
    assert settings.log_level == "DEBUG"
    assert settings.json_logs is True
    assert settings.result_ttl_seconds == 86_400


def test_settings_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """GENQUEUE_* environment variables win over YAML."""
    _write_yaml(tmp_path / "config", "main", {"store": {"backend": "memory"}})
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GENQUEUE_STORE_BACKEND", "redis")
    monkeypatch.setenv("GENQUEUE_REDIS_URL", "redis://cache:6380/2")

    settings = Settings()

    assert settings.store_backend == "redis"
    assert settings.redis_url == "redis://cache:6380/2"


def test_settings_reject_inverted_dead_letter_window(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """trim_to may not exceed max_entries from any source."""
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValidationError):
        Settings(dead_letter_max_entries=10, dead_letter_trim_to=20)

    _write_yaml(tmp_path / "config", "main", {"dead_letter": {"max_entries": 5, "trim_to": 6}})
    with pytest.raises(ValueError, match="dead_letter_trim_to"):
        Settings()


def test_settings_reject_non_positive_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Thresholds and windows must be positive."""
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ValidationError):
        Settings(circuit_failure_threshold=0)
    with pytest.raises(ValidationError):
        Settings(lease_reclaim_interval_seconds=0)


def test_get_settings_is_cached(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """get_settings builds the settings once per process."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(settings_module, "_settings", None)

    first = get_settings()

    assert get_settings() is first
