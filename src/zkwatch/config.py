"""Configuration management for zkwatch.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Environment variables (ZKWATCH_* prefix)
2. TOML configuration file (passed to the ZkWatchConfig constructor)
3. Default values defined in this module

Example TOML configuration:
    [client]
    connection_string = "zk1:2181,zk2:2181,zk3:2181"
    base_path = "/services"
    operating_timeout_seconds = 30

Example environment variable override:
    ZKWATCH_CLIENT__CONNECTION_STRING="zk-prod:2181"
    ZKWATCH_LOGGING__LEVEL=DEBUG
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class BackoffConfig(BaseModel):
    """Exponential backoff configuration for retried operations.

    Only used when an operation fails with a connectivity error while the
    connection is already reported as established.

    Attributes:
        initial_delay_seconds: Initial backoff delay
        max_delay_seconds: Maximum backoff delay
        multiplier: Backoff multiplier per attempt
        jitter: Add random jitter to delays
    """

    initial_delay_seconds: float = Field(default=0.05, gt=0.0, le=60.0)
    max_delay_seconds: float = Field(default=1.0, gt=0.0, le=600.0)
    multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    jitter: bool = Field(default=True)


class ZookeeperClientOptions(BaseSettings):
    """Options for a ZookeeperClient.

    Attributes:
        connection_string: Comma separated host:port list of the ensemble
        connection_timeout_seconds: How long a session rebuild may wait for
            the reconnection lock
        session_timeout_seconds: Session timeout negotiated with the server
        operating_timeout_seconds: Total retry budget of one operation
        read_only: Allow connecting to read-only servers
        session_id: Session id to resume (0 for a new session)
        session_password: Password of the resumed session
        base_path: Prefix applied to every path passed to the client
        backoff: Backoff used between retries while connected
    """

    model_config = SettingsConfigDict(
        env_prefix="ZKWATCH_CLIENT__",
        env_nested_delimiter="__",
        extra="forbid",
    )

    connection_string: str = Field(default="127.0.0.1:2181", min_length=1)
    connection_timeout_seconds: float = Field(default=10.0, gt=0.0, le=3600.0)
    session_timeout_seconds: float = Field(default=20.0, gt=0.0, le=3600.0)
    operating_timeout_seconds: float = Field(default=60.0, gt=0.0, le=86400.0)
    read_only: bool = Field(default=False)
    session_id: int = Field(default=0, ge=0)
    session_password: bytes | None = Field(default=None)
    base_path: str | None = Field(default=None)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: str) -> str:
        """Reject connection strings without any host."""
        hosts = [host.strip() for host in v.split("/", 1)[0].split(",")]
        if not all(hosts):
            raise ValueError(f"Invalid connection string: {v!r}")
        return v.strip()

    @property
    def client_id(self) -> tuple[int, bytes] | None:
        """Session credentials to resume, or None for a fresh session."""
        if not self.session_id:
            return None
        return (self.session_id, self.session_password or b"")


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="ZKWATCH_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class ZkWatchConfig(BaseSettings):
    """Root configuration for zkwatch.

    Environment variable format for nested config:
        ZKWATCH_<SECTION>__<KEY>=value

    Example:
        ZKWATCH_CLIENT__BASE_PATH="/services"
        ZKWATCH_LOGGING__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="ZKWATCH_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    client: ZookeeperClientOptions = Field(default_factory=ZookeeperClientOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the TOML values passed in by load_config
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def load_config(config_path: Path | None = None) -> ZkWatchConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./zkwatch.toml (current directory)
    3. ~/.config/zkwatch/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        ZkWatchConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path = config_path
    else:
        search_paths = [
            Path.cwd() / "zkwatch.toml",
            Path.home() / ".config" / "zkwatch" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    try:
        return ZkWatchConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(
                f"Invalid configuration in {selected_path}: {e}"
            ) from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e
