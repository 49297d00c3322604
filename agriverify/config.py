"""
agriverify Configuration System

Settings management with YAML files, environment variables and validation.
The values here are defaults used to build each registry's contract
configuration; once a registry exists its configuration changes only through
the contract's setter operations.

Configuration Sources (in order of precedence):
    1. Environment variables (AGRIVERIFY_*)
    2. Runtime overrides and loaded YAML files
    3. Default values

Default files (loaded by ``load_defaults`` when present):
    ./agriverify.yaml, ./config/agriverify.yaml, ~/.agriverify/config.yaml

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

T = TypeVar("T")

BURN_ADDRESS = "SP000000000000000000002Q6VF78"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ValidationError(ConfigError):
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
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value. Environment values are validated like set()."""
        if self.env_var and self.env_var in os.environ:
            value = self._coerce(os.environ[self.env_var])
            if self.validator and not self.validator(value):
                raise ValidationError(f"Invalid value for {self.env_var}: {value!r}")
            return value
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with coercion and validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def clear(self) -> None:
        """Drop any override, reverting to the default."""
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)
        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            return value  # type: ignore
        except ValueError as e:
            raise ValidationError(f"Cannot convert {value!r} to {target_type.__name__}") from e

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class RegistrySettings:
    """Defaults for a verification registry's contract configuration."""
    verification_fee: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=500,
        env_var="AGRIVERIFY_VERIFICATION_FEE",
        description="Fee transferred to the authority per verification request",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    min_verification_score: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=50,
        env_var="AGRIVERIFY_MIN_SCORE",
        description="Lowest score an approval or update may carry",
        validator=lambda x: isinstance(x, int) and 0 < x < 100,
    ))
    max_verification_score: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=100,
        env_var="AGRIVERIFY_MAX_SCORE",
        description="Highest score an approval or update may carry",
        validator=lambda x: isinstance(x, int) and 1 < x <= 100,
    ))
    max_verifications: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10000,
        env_var="AGRIVERIFY_MAX_VERIFICATIONS",
        description="Maximum number of verifications a registry accepts",
        validator=lambda x: isinstance(x, int) and x > 0,
    ))
    review_period: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=144,
        env_var="AGRIVERIFY_REVIEW_PERIOD",
        description="Review period in blocks (informational)",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    challenge_period: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=288,
        env_var="AGRIVERIFY_CHALLENGE_PERIOD",
        description="Challenge period in blocks (informational)",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    burn_address: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=BURN_ADDRESS,
        env_var="AGRIVERIFY_BURN_ADDRESS",
        description="Reserved null principal that can never be the authority",
        validator=lambda x: isinstance(x, str) and len(x) > 0,
    ))


@dataclass
class ChainSettings:
    """Defaults for the in-memory chain environment."""
    default_caller: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="ST1VERIFIER",
        env_var="AGRIVERIFY_DEFAULT_CALLER",
        description="Principal that sends transactions unless another is selected",
        validator=lambda x: isinstance(x, str) and len(x) > 0,
    ))
    genesis_block_height: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="AGRIVERIFY_GENESIS_HEIGHT",
        description="Block height of a fresh chain environment",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="AGRIVERIFY_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="AGRIVERIFY_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class AgriVerifyConfig:
    """
    Root configuration.

    Aggregates all section configurations and provides serialization.
    """
    registry: RegistrySettings = field(default_factory=RegistrySettings)
    chain: ChainSettings = field(default_factory=ChainSettings)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


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

        self._config = AgriVerifyConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[AgriVerifyConfig], None]] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Discard the singleton; the next access starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> AgriVerifyConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must be a mapping: {path}")

        self.apply_dict(data)
        if path not in self._config_paths:
            self._config_paths.append(path)

    def load_defaults(self) -> List[Path]:
        """Load default configuration files that exist. Returns the loaded paths."""
        default_paths = [
            Path("agriverify.yaml"),
            Path("config/agriverify.yaml"),
            Path.home() / ".agriverify" / "config.yaml",
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply nested dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Invalid config path: {path}")

        apply_to_config(self._config, data, "")

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: manager.set("registry.verification_fee", 750)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: manager.get("registry.min_verification_score")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        if hasattr(obj, "__dataclass_fields__"):
            return {k: getattr(obj, k).get() for k in obj.__dataclass_fields__}
        return obj

    def watch(self, callback: Callable[[AgriVerifyConfig], None]) -> None:
        """Register a callback for configuration reloads."""
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in self._config_paths:
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

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
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)

        if not errors:
            reg = self._config.registry
            lo = reg.min_verification_score.get()
            hi = reg.max_verification_score.get()
            if lo >= hi:
                errors.append(
                    f"registry: min_verification_score ({lo}) must be below "
                    f"max_verification_score ({hi})"
                )
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = obj.default
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> AgriVerifyConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
