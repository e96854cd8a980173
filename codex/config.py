"""
Codex Configuration System

Configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (CODEX_*)
    2. Runtime overrides
    3. Config files (./codex.yaml, ./config/codex.yaml, ~/.codex/config.yaml)
    4. Default values

Canonicalization parameters (tab width, protocol) are not configurable.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from codex.core import load_yaml
from codex.hardening import CodexError
from codex.observability import LogLayer, get_logger

T = TypeVar("T")

logger = get_logger("config", LogLayer.CONFIG)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
LOG_FORMATS = ("json", "text")


class ConfigError(CodexError):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        value = self._coerce(value) if isinstance(value, str) else value
        if not self._accepts(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _accepts(self, value: Any) -> bool:
        target_type = type(self.default)
        if target_type == int and (isinstance(value, bool) or not isinstance(value, int)):
            return False
        if target_type == str and not isinstance(value, str):
            return False
        return self.validator is None or bool(self.validator(value))

    def _coerce(self, value: str) -> Any:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")
        elif target_type == int:
            try:
                return int(value)
            except ValueError:
                raise ConfigValidationError(f"Expected integer, got {value!r}") from None
        return value

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


def _extract_values(obj: Any) -> Any:
    if isinstance(obj, ConfigValue):
        return obj.get()
    elif hasattr(obj, "__dataclass_fields__"):
        return {k: _extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
    return obj


@dataclass
class LedgerConfig:
    """Configuration for ledger persistence and queries."""
    state_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="codex-ledger.json",
        env_var="CODEX_LEDGER_PATH",
        description="Path of the ledger snapshot used by the CLI",
        validator=lambda x: bool(x.strip()),
    ))
    latest_default_count: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10,
        env_var="CODEX_LATEST_DEFAULT",
        description="Default count for `ledger latest`",
        validator=lambda x: x > 0,
    ))
    max_batch_count: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1000,
        env_var="CODEX_MAX_BATCH",
        description="Upper bound applied to batch and latest counts in the CLI",
        validator=lambda x: x > 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="warning",
        env_var="CODEX_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: x in LOG_LEVELS,
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="text",
        env_var="CODEX_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in LOG_FORMATS,
    ))


@dataclass
class CodexConfig:
    """
    Root configuration for codex.

    Aggregates all component configurations.
    """
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return _extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=True)


DEFAULT_CONFIG_PATHS = (
    Path("codex.yaml"),
    Path("config") / "codex.yaml",
    Path.home() / ".codex" / "config.yaml",
)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = CodexConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton so the next access starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> CodexConfig:
        """Get the current configuration."""
        return self._config

    @property
    def loaded_paths(self) -> List[Path]:
        return list(self._config_paths)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            data = load_yaml(path)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed configuration file {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {path} must contain a mapping")

        self._apply_dict(data)
        self._config_paths.append(path)
        logger.debug("Loaded configuration file", path=str(path))

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        for path in DEFAULT_CONFIG_PATHS:
            if path.exists():
                try:
                    self.load_from_file(path)
                except ConfigError as e:
                    logger.warning(
                        "Skipping broken configuration file",
                        error_code=type(e).__name__,
                        path=str(path),
                        reason=str(e),
                    )

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    logger.warning("Unknown configuration key", key=f"{prefix}{key}")
                    continue
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{prefix}{key}.")

        apply_to_config(self._config, data, "")

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, "__dataclass_fields__") or part not in obj.__dataclass_fields__:
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("ledger.max_batch_count", 500)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("ledger.state_path")
        """
        return _extract_values(self._resolve(path))

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if not obj._accepts(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema

    def to_dict(self) -> Dict[str, Any]:
        return self._config.to_dict()


def get_config() -> CodexConfig:
    """Get the current codex configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
