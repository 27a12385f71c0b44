"""Configuration management for the multipart loader."""

import os
from typing import Any, Literal

import httpx
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .logging_utils import configure_logging

CONFIG_PATH_ENV = "MULTIPART_LOADER_CONFIG"
LOG_LEVEL_ENV = "MULTIPART_LOADER_LOG_LEVEL"
DEFAULT_METHOD_ENV = "MULTIPART_LOADER_DEFAULT_METHOD"


class LoaderSettings(BaseModel):
    """Settings for request issuing and entry keying."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    default_method: str = Field(default="GET", min_length=1)
    key_header: str = Field(default="Content-Location", min_length=1)
    content_type_header: str = Field(default="Content-Type", min_length=1)
    debug_param: str = Field(default="debug", min_length=1)
    chunk_size: int | None = Field(default=None, gt=0)


class HttpClientSettings(BaseModel):
    """Settings for the httpx client built by the loader."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    follow_redirects: bool = True
    max_connections: int = Field(default=10, ge=1)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    renderer: Literal["console", "json"] = "console"


class Configuration:
    """Manages configuration and environment variables for the loader."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: YAML file to read. Defaults to $MULTIPART_LOADER_CONFIG,
                then to the config.yaml shipped with the package.
        """
        self.load_env()
        self.config_path = config_path or os.getenv(CONFIG_PATH_ENV) or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ValueError(
                f"Config file must be YAML dict, got {type(config)}"
            )
        return config

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "Configuration":
        """Build a configuration without touching the filesystem."""
        instance = cls.__new__(cls)
        instance.config_path = None
        instance._config = dict(config)
        return instance

    def _section(self, name: str) -> dict[str, Any]:
        section = self._config.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Config section '{name}' must be a mapping")
        return dict(section)

    def get_config_dict(self) -> dict[str, Any]:
        """Get a copy of the full configuration dictionary."""
        return dict(self._config)

    def get_loader_config(self) -> LoaderSettings:
        """Get loader settings.

        Returns:
            Validated loader settings. $MULTIPART_LOADER_DEFAULT_METHOD
            overrides the configured default method.

        Raises:
            ValueError: If a value is invalid.
        """
        section = self._section("loader")
        if method := os.getenv(DEFAULT_METHOD_ENV):
            section["default_method"] = method
        settings = LoaderSettings.model_validate(section)
        return settings.model_copy(
            update={"default_method": settings.default_method.upper()}
        )

    def get_http_client_config(self) -> HttpClientSettings:
        """Get HTTP client settings.

        Raises:
            ValueError: If a value is invalid.
        """
        return HttpClientSettings.model_validate(self._section("http_client"))

    def get_logging_config(self) -> LoggingSettings:
        """Get logging settings; $MULTIPART_LOADER_LOG_LEVEL overrides the level."""
        section = self._section("logging")
        if level := os.getenv(LOG_LEVEL_ENV):
            section["level"] = level.upper()
        return LoggingSettings.model_validate(section)

    def build_client(self) -> httpx.AsyncClient:
        """Create an httpx.AsyncClient from the http_client settings."""
        http_config = self.get_http_client_config()
        return httpx.AsyncClient(
            timeout=httpx.Timeout(
                http_config.timeout, connect=http_config.connect_timeout
            ),
            follow_redirects=http_config.follow_redirects,
            limits=httpx.Limits(max_connections=http_config.max_connections),
        )

    def apply_logging_config(self) -> None:
        """Configure structlog from the logging section."""
        logging_config = self.get_logging_config()
        configure_logging(logging_config.level, logging_config.renderer)
