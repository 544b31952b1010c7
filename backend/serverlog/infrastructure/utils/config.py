"""Configuration for the logging adapter.

Two layers:
- ``AdapterSettings``: file/env driven settings (YAML defaults, .env and
  environment variables win), used by the CLI and the demo app.
- ``LoggerOptions``: the options accepted by ``register`` at bind time. These
  can hold live objects (a sink stream, a pre-built logger, serializer
  callables), so they are a plain pydantic model, not settings.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from serverlog.infrastructure.logging.request_logger import RequestLogger
from serverlog.models.levels import Level, parse_optional_level


class ConfigError(ValueError):
    """Invalid adapter configuration. Raised before anything is registered."""


class LoggerSettings(BaseModel):
    """Request logger settings as they appear in YAML / env."""

    level: str = Field(default="info", description="Minimum level emitted")
    pretty_print: bool = Field(default=False)
    name: Optional[str] = Field(default=None, description="Bound as the 'name' field of every record")
    tags: Dict[str, str] = Field(default_factory=dict, description="Tag -> level overrides")
    all_tags: Optional[str] = Field(default="info", description="Fallback level; null or 'none' suppresses")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        return Level.parse(v).method

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Dict[str, str]) -> Dict[str, str]:
        return {tag: Level.parse(level).method for tag, level in v.items()}

    @field_validator("all_tags")
    @classmethod
    def validate_all_tags(cls, v: Optional[str]) -> Optional[str]:
        level = parse_optional_level(v)
        return level.method if level is not None else None


class APIConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)


class AdapterSettings(BaseSettings):
    """Main settings model.

    YAML is parsed as the base config, then a few environment variables are
    re-applied on top so they always win.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Level of serverlog's own diagnostics")
    logger: LoggerSettings = Field(default_factory=LoggerSettings)
    api: APIConfig = Field(default_factory=APIConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(v).upper() not in valid:
            raise ValueError(f"Log level must be one of: {sorted(valid)}")
        return str(v).upper()

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "AdapterSettings":
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {yaml_path}")

        # Env overrides are applied to the raw data so they go through validation too
        if os.getenv("LOG_LEVEL"):
            data["log_level"] = os.environ["LOG_LEVEL"]

        logger_data = dict(data.get("logger") or {})
        if os.getenv("LOGGER__LEVEL"):
            logger_data["level"] = os.environ["LOGGER__LEVEL"]
        pretty_env = os.getenv("LOGGER__PRETTY_PRINT")
        if pretty_env is not None:
            logger_data["pretty_print"] = str(pretty_env).lower() in ("1", "true", "yes")
        data["logger"] = logger_data

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Configuration validation error: {e}") from e


def load_config(config_path: Optional[Path] = None) -> AdapterSettings:
    """Load settings from YAML + .env (env wins). Without a file, defaults + env are used."""

    load_dotenv(dotenv_path=Path(".env"))

    if config_path is None:
        possible_paths = [Path("config/default.yaml"), Path("config/config.yaml"), Path("config.yaml")]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            try:
                return AdapterSettings()
            except ValidationError as e:
                raise ConfigError(f"Configuration validation error: {e}") from e

    return AdapterSettings.from_yaml(config_path)


_config: Optional[AdapterSettings] = None


def get_config() -> AdapterSettings:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Optional[Path] = None) -> AdapterSettings:
    global _config
    _config = load_config(config_path)
    return _config


class LoggerOptions(BaseModel):
    """Options accepted when binding the logger to a server.

    Tag and level values are kept raw here; they are validated as one unit
    when the tag resolver is built, so a single bad entry rejects the bind.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    stream: Any = None
    instance: Optional[RequestLogger] = None
    serializers: Dict[str, Callable[[Any], Any]] = Field(default_factory=dict)
    tags: Dict[str, Any] = Field(default_factory=dict)
    all_tags: Any = "info"
    level: Any = "info"
    pretty_print: bool = False
    name: Optional[str] = None

    @classmethod
    def coerce(cls, options: Any) -> "LoggerOptions":
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        try:
            return cls.model_validate(options)
        except ValidationError as e:
            raise ConfigError(f"Invalid logger options: {e}") from e

    @classmethod
    def from_settings(cls, settings: LoggerSettings, **overrides: Any) -> "LoggerOptions":
        data: Dict[str, Any] = {
            "level": settings.level,
            "pretty_print": settings.pretty_print,
            "name": settings.name,
            "tags": dict(settings.tags),
            "all_tags": settings.all_tags,
        }
        data.update(overrides)
        return cls.coerce(data)
