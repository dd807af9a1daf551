"""Application settings with Pydantic Settings validation.

Secrets (Redis password) and overrides are loaded from the environment or a
.env file using the ``GENQUEUE_`` prefix. Non-sensitive configuration is
loaded from config/main.yaml and validated against its JSON schema.
"""

import json
from pathlib import Path
from typing import Any, Final, Literal, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from genqueue.config.logging_config import get_logger

DEFAULT_CONFIG_DIR: Final[Path] = Path("config")
REDIS_URL_DEFAULT: Final[str] = "redis://localhost:6379/0"
REDIS_SOCKET_TIMEOUT_SECONDS_DEFAULT: Final[float] = 5.0

CIRCUIT_FAILURE_THRESHOLD_DEFAULT: Final[int] = 5
CIRCUIT_TIMEOUT_SECONDS_DEFAULT: Final[float] = 60.0
CIRCUIT_SUCCESS_THRESHOLD_DEFAULT: Final[int] = 2

DEAD_LETTER_MAX_ENTRIES_DEFAULT: Final[int] = 1000
DEAD_LETTER_TRIM_TO_DEFAULT: Final[int] = 500
RESULT_TTL_SECONDS_DEFAULT: Final[int] = 86_400
LEASE_GRACE_SECONDS_DEFAULT: Final[int] = 60
LEASE_RECLAIM_INTERVAL_SECONDS_DEFAULT: Final[float] = 30.0

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load JSON Schema from config/schemas/.

    Args:
        schema_name: Schema name without extension (e.g., "main")
        config_dir: Directory holding the YAML files and schemas/

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = config_dir / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any],
    schema_name: str,
    file_path: str = "",
    config_dir: Path = DEFAULT_CONFIG_DIR,
) -> None:
    """Validate config section against JSON Schema.

    Args:
        config: Configuration dictionary to validate
        schema_name: Name of schema to validate against
        file_path: Optional file path for error messages
        config_dir: Directory holding schemas/

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, config_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs(config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    Loading order (later overrides earlier):
    1. config/main.yaml
    2. All other config/*.yaml files (sorted alphabetically)

    Each file is validated against ``schemas/<stem>.schema.json`` if present.

    Returns:
        Merged configuration dictionary
    """
    if not config_dir.is_dir():
        return {}

    main_path = config_dir / "main.yaml"
    yaml_files = sorted(f for f in config_dir.glob("*.yaml") if f.name != "main.yaml")
    if main_path.exists():
        yaml_files.insert(0, main_path)

    merged_config: dict[str, Any] = {}
    for yaml_file in yaml_files:
        schema_name = yaml_file.stem
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(yaml_file),
                error=str(e),
            )
            continue

        try:
            validate_config_section(file_config, schema_name, str(yaml_file), config_dir)
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.debug("config_load_complete", file_count=len(yaml_files))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Environment variables (``GENQUEUE_*``) and constructor arguments win over
    values from config/main.yaml, which in turn win over field defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="GENQUEUE_",
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    redis_password: SecretStr | None = Field(
        default=None, description="Redis password (from .env, optional)"
    )

    # === ORDERED STORE ===

    store_backend: Literal["redis", "memory"] = Field(
        default="redis", description="Ordered store backend"
    )
    redis_url: str = Field(default=REDIS_URL_DEFAULT, description="Redis URL")
    redis_socket_timeout_seconds: float = Field(
        default=REDIS_SOCKET_TIMEOUT_SECONDS_DEFAULT,
        description="Socket connect/read timeout for Redis",
    )

    # === CIRCUIT BREAKER ===

    circuit_failure_threshold: int = Field(
        default=CIRCUIT_FAILURE_THRESHOLD_DEFAULT,
        description="Failures before a dependency circuit opens",
    )
    circuit_timeout_seconds: float = Field(
        default=CIRCUIT_TIMEOUT_SECONDS_DEFAULT,
        description="Cool-down before an open circuit may be probed",
    )
    circuit_success_threshold: int = Field(
        default=CIRCUIT_SUCCESS_THRESHOLD_DEFAULT,
        description="Consecutive half-open successes required to close",
    )

    # === DEAD LETTERS / RESULTS / LEASES ===

    dead_letter_max_entries: int = Field(
        default=DEAD_LETTER_MAX_ENTRIES_DEFAULT,
        description="Dead letter list length that triggers a trim",
    )
    dead_letter_trim_to: int = Field(
        default=DEAD_LETTER_TRIM_TO_DEFAULT,
        description="Number of newest dead letters kept after a trim",
    )
    result_ttl_seconds: int = Field(
        default=RESULT_TTL_SECONDS_DEFAULT,
        description="Retention window for stored task results",
    )
    lease_grace_seconds: int = Field(
        default=LEASE_GRACE_SECONDS_DEFAULT,
        description="Extra record lifetime past a lease deadline",
    )
    lease_reclaim_interval_seconds: float = Field(
        default=LEASE_RECLAIM_INTERVAL_SECONDS_DEFAULT,
        description="Minimum seconds between expired-lease sweeps per worker",
    )

    # === WORKERS ===

    worker_poll_interval_seconds: float = Field(
        default=2.0, description="Idle wait between dequeue attempts"
    )

    # === LOGGING ===

    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON logs")

    @field_validator(
        "circuit_failure_threshold",
        "circuit_success_threshold",
        "dead_letter_max_entries",
        "dead_letter_trim_to",
        "result_ttl_seconds",
        "lease_reclaim_interval_seconds",
    )
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @model_validator(mode="after")
    def _validate_dead_letter_window(self) -> "Settings":
        self._check_dead_letter_window()
        return self

    def _check_dead_letter_window(self) -> None:
        if self.dead_letter_trim_to > self.dead_letter_max_entries:
            raise ValueError(
                "dead_letter_trim_to must not exceed dead_letter_max_entries"
            )

    def __init__(self, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs()

        super().__init__(**data)
        self._apply_yaml_defaults(config)
        # YAML values bypass field validation
        self._check_dead_letter_window()

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        store_config = config.get("store") or {}
        _assign("store_backend", store_config.get("backend"))
        _assign("redis_url", store_config.get("redis_url"))
        _assign(
            "redis_socket_timeout_seconds",
            store_config.get("socket_timeout_seconds"),
        )

        circuit_config = config.get("circuit_breaker") or {}
        _assign("circuit_failure_threshold", circuit_config.get("failure_threshold"))
        _assign("circuit_timeout_seconds", circuit_config.get("timeout_seconds"))
        _assign("circuit_success_threshold", circuit_config.get("success_threshold"))

        dead_letter_config = config.get("dead_letter") or {}
        _assign("dead_letter_max_entries", dead_letter_config.get("max_entries"))
        _assign("dead_letter_trim_to", dead_letter_config.get("trim_to"))

        results_config = config.get("results") or {}
        _assign("result_ttl_seconds", results_config.get("ttl_seconds"))

        leases_config = config.get("leases") or {}
        _assign("lease_grace_seconds", leases_config.get("grace_seconds"))
        _assign(
            "lease_reclaim_interval_seconds",
            leases_config.get("reclaim_interval_seconds"),
        )

        workers_config = config.get("workers") or {}
        _assign(
            "worker_poll_interval_seconds",
            workers_config.get("poll_interval_seconds"),
        )

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("json_logs", logging_config.get("json"))


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
