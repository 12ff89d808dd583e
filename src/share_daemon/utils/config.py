"""
Configuration loader for the share daemon.

This module provides daemon configuration management with:
- Multiple configuration sources (JSON, YAML, TOML files, dicts, env vars)
- Priority based merging
- Schema validation through pydantic
"""

import os
import sys
import json
import yaml
import toml
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from .logging import get_logger
from .errors import ConfigurationError


logger = get_logger("share-daemon.config")

ENV_PREFIX = "SHARE_DAEMON_"
ENV_NESTING = "__"
DEFAULT_HOME = Path.home() / ".share-daemon"


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    directory: Path = Field(default_factory=lambda: DEFAULT_HOME / "logs")
    enable_json: bool = True
    enable_console: bool = True
    enable_sentry: bool = False
    sentry_dsn: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class RPCConfig(BaseModel):
    """RPC transport configuration."""
    host: str = "127.0.0.1"
    port: int = 45015
    request_timeout: float = 30.0

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Ports must fit in 16 bits."""
        if not 0 <= v <= 65535:
            raise ValueError(f"Invalid port: {v}")
        return v


class SupervisorConfig(BaseModel):
    """Share supervisor configuration."""
    worker_command: List[str] = Field(
        default_factory=lambda: [sys.executable, "-m", "share_farmer"]
    )
    share_log_dir: Path = Field(default_factory=lambda: DEFAULT_HOME / "logs" / "shares")
    snapshot_path: Path = Field(default_factory=lambda: DEFAULT_HOME / "autosave.json")
    kill_grace_period: float = 1.0
    restart_timeout: float = 10.0

    @field_validator('worker_command', mode='before')
    @classmethod
    def parse_worker_command(cls, v):
        """Accept a whitespace separated command string."""
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator('worker_command')
    @classmethod
    def validate_worker_command(cls, v):
        """The worker command needs at least an executable."""
        if not v:
            raise ValueError("worker_command cannot be empty")
        return v


class DaemonConfig(BaseModel):
    """Main share daemon configuration."""
    app_name: str = "share-daemon"
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)

    model_config = ConfigDict(validate_assignment=True)


class DaemonConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, env: Optional[Dict[str, str]] = None):
        """Initialize configuration loader."""
        self._sources: List[ConfigSource] = []
        self._config: Optional[DaemonConfig] = None
        self._env = os.environ if env is None else env

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source).expanduser()
            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type or self._detect_source_type(path)
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

        self._sources.sort(key=lambda s: s.priority)

    def _detect_source_type(self, path: Path) -> str:
        """Detect configuration file type."""
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix}")

    def load(self) -> DaemonConfig:
        """
        Load configuration from all sources.

        Sources are merged lowest priority first, environment variables last.

        Returns:
            Merged configuration
        """
        merged_data: Dict[str, Any] = {}

        for source in self._sources:
            data = self._load_source(source)
            merged_data = self._deep_merge(merged_data, data)

        merged_data = self._deep_merge(merged_data, self._load_env_vars())

        try:
            self._config = DaemonConfig(**merged_data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field}: {error['msg']}")
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            ) from e

        logger.info("configuration_loaded", sources=len(self._sources))
        return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        """Load data from a configuration source."""
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.warning("config_file_not_found", path=str(source.path))
            return {}

        try:
            content = source.path.read_text()
            if source.source_type == "json":
                data = json.loads(content)
            elif source.source_type == "yaml":
                data = yaml.safe_load(content) or {}
            elif source.source_type == "toml":
                data = toml.loads(content)
            else:
                raise ConfigurationError(f"Unknown source type: {source.source_type}")
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to load configuration from {source.path}: {e}", cause=e
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration in {source.path} must be a mapping")
        return data

    def _load_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables.

        ``SHARE_DAEMON_RPC__PORT=4000`` becomes ``{"rpc": {"port": 4000}}``.
        """
        result: Dict[str, Any] = {}

        for key, value in self._env.items():
            if not key.startswith(ENV_PREFIX):
                continue
            parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTING)
            current = result
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = self._convert_value(value)

        return result

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> DaemonConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None
) -> DaemonConfig:
    """
    Load configuration from standard locations.

    Args:
        config_paths: Additional configuration paths
        extra_config: Extra configuration to merge

    Returns:
        Loaded configuration
    """
    loader = DaemonConfigLoader()

    default_paths = [
        Path("/etc/share-daemon/config.yaml"),
        DEFAULT_HOME / "config.yaml",
        DEFAULT_HOME / "config.json",
    ]

    for path in default_paths:
        if path.exists():
            loader.add_source(path, priority=10)

    for i, path in enumerate(config_paths or []):
        loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return loader.load()


__all__ = [
    'DaemonConfig',
    'LoggingConfig',
    'RPCConfig',
    'SupervisorConfig',
    'DaemonConfigLoader',
    'load_config',
]
