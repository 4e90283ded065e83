"""
Configuration management for SB Explorer.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator, ValidationError, ConfigDict

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Supported log output formats."""
    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'sbexplorer.services.servicebus': 'DEBUG'}"
    )

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 7071
    shutdown_timeout: float = Field(
        default=30.0,
        ge=0.0,
        description="Graceful shutdown timeout in seconds"
    )


class GatewaySettings(BaseModel):
    """
    Bounds and timings applied by the broker gateway.

    Peek counts outside [min_peek_count, max_peek_count] are clamped, never
    rejected; a missing or non-positive count falls back to default_peek_count.
    """
    default_peek_count: int = Field(default=10, ge=1)
    min_peek_count: int = Field(default=1, ge=1)
    max_peek_count: int = Field(default=1000, ge=1)
    purge_batch_size: int = Field(default=100, ge=1, le=5000)
    purge_max_wait_time: float = Field(default=5.0, gt=0.0)
    purge_time_budget: float = Field(default=60.0, gt=0.0)
    runtime_properties_concurrency: int = Field(default=10, ge=1)
    connection_header: str = "x-connection"

    @model_validator(mode="after")
    def validate_peek_bounds(self) -> "GatewaySettings":
        """Default peek count must sit inside the clamp range."""
        if self.min_peek_count > self.max_peek_count:
            raise ValueError("min_peek_count cannot exceed max_peek_count")
        if not (self.min_peek_count <= self.default_peek_count <= self.max_peek_count):
            raise ValueError("default_peek_count must be between min_peek_count and max_peek_count")
        return self


class ExplorerConfig(BaseModel):
    """Main SB Explorer configuration schema."""

    version: str = Field(default="0.1.0", description="Configuration version")

    server: ServerConfig = Field(default_factory=ServerConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version format."""
        parts = v.split(".")
        if len(parts) != 3:
            raise ValueError("Version must be in format x.y.z")
        for part in parts:
            if not part.isdigit():
                raise ValueError("Version components must be numeric")
        return v

    model_config = ConfigDict(use_enum_values=True)


# SBEXPLORER_<NAME> -> (section, field, converter)
ENV_VARIABLES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "HOST": ("server", "host", str),
    "PORT": ("server", "port", int),
    "LOG_LEVEL": ("logging", "level", str.upper),
    "LOG_FORMAT": ("logging", "format", str.lower),
    "LOG_FILE": ("logging", "file", str),
    "DEFAULT_PEEK_COUNT": ("gateway", "default_peek_count", int),
    "MAX_PEEK_COUNT": ("gateway", "max_peek_count", int),
    "PURGE_BATCH_SIZE": ("gateway", "purge_batch_size", int),
    "PURGE_MAX_WAIT_TIME": ("gateway", "purge_max_wait_time", float),
    "PURGE_TIME_BUDGET": ("gateway", "purge_time_budget", float),
    "CONNECTION_HEADER": ("gateway", "connection_header", str.lower),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """
    Loads and validates SB Explorer configuration.

    Sources, highest precedence first:
    1. CLI arguments
    2. Environment variables (SBEXPLORER_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    ENV_PREFIX = "SBEXPLORER_"

    def __init__(self):
        self._config: Optional[ExplorerConfig] = None
        self._config_file: Optional[Path] = None
        self._cli_overrides: Optional[Dict[str, Any]] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> ExplorerConfig:
        """
        Build the configuration from every source and validate it.

        Args:
            config_file: Path to a YAML or JSON configuration file
            cli_overrides: Nested dict of values given on the command line

        Returns:
            Validated ExplorerConfig instance

        Raises:
            ValidationError: If the merged configuration is invalid
            FileNotFoundError: If config_file does not exist
            ValueError: If config_file has an unsupported suffix
        """
        layers = []
        if config_file:
            layers.append(("file", self._load_from_file(config_file)))
            self._config_file = Path(config_file)
        layers.append(("environment", self._load_from_env()))
        if cli_overrides:
            layers.append(("cli", cli_overrides))
            self._cli_overrides = cli_overrides

        merged: Dict[str, Any] = {}
        for source, values in layers:
            if values:
                logger.debug(f"Applying {source} configuration: {sorted(values)}")
            merged = _deep_merge(merged, values)

        try:
            self._config = ExplorerConfig(**merged)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

        logger.info(
            "Configuration loaded: "
            f"{json.dumps(self._config.model_dump(mode='json'), sort_keys=True)}"
        )
        return self._config

    @staticmethod
    def _load_from_file(file_path: str) -> Dict[str, Any]:
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        text = path.read_text()
        if path.suffix in ('.yaml', '.yml'):
            return yaml.safe_load(text) or {}
        if path.suffix == '.json':
            return json.loads(text)
        raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        for name, (section, field, convert) in ENV_VARIABLES.items():
            raw = os.getenv(f"{self.ENV_PREFIX}{name}")
            if raw:
                config.setdefault(section, {})[field] = convert(raw)
        return config

    def get_config(self) -> ExplorerConfig:
        """
        Return the configuration produced by the last load().

        Raises:
            RuntimeError: If load() has not been called
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> ExplorerConfig:
        """Load again from the same file and CLI overrides, re-reading the environment."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file, cli_overrides=self._cli_overrides)
