"""Typed configuration loader for SFTP output tasks."""
from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .env import load_env
from .errors import ConfigurationError

load_env()

DEFAULT_SEQUENCE_FORMAT = "%03d.%02d."


class ProxyType(str, Enum):
    HTTP = "http"
    SOCKS = "socks"
    STREAM = "stream"


class ProxyConfig(BaseModel):
    type: ProxyType
    host: str | None = None
    port: int = 22
    user: str | None = None
    password: str | None = Field(default=None, repr=False)
    command: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _lowercase_type(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("command", mode="before")
    @classmethod
    def _blank_command_is_none(cls, value):
        # `command:` with no value in YAML means "not set"
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_required_fields(self) -> "ProxyConfig":
        if self.type is ProxyType.STREAM and not self.command:
            raise ValueError("stream proxy requires 'command'")
        if self.type in (ProxyType.HTTP, ProxyType.SOCKS) and not self.host:
            raise ValueError(f"{self.type.value} proxy requires 'host'")
        return self


class SftpOutputConfig(BaseModel):
    host: str = Field(..., min_length=1)
    port: int = 22
    user: str = Field(..., min_length=1)
    password: str | None = Field(default=None, repr=False)
    secret_key_file: str | None = None
    secret_key_passphrase: str = Field(default="", repr=False)
    user_directory_is_root: bool = True
    timeout: int = Field(600, description="Connection timeout in seconds")
    max_connection_retry: int = 5
    path_prefix: str
    file_ext: str
    sequence_format: str = DEFAULT_SEQUENCE_FORMAT
    proxy: ProxyConfig | None = None
    verbose_transport_logging: bool = False

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"port out of range: {value}")
        return value

    @field_validator("sequence_format")
    @classmethod
    def _check_sequence_format(cls, value: str) -> str:
        try:
            first = value % (0, 0)
            second = value % (0, 1)
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"sequence_format must take two integer placeholders: {value!r}"
            ) from exc
        if first == second:
            raise ValueError(f"sequence_format ignores the file index: {value!r}")
        return value


class ConfigLoader:
    """Loads YAML driven configuration and validates it with Pydantic."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.config_path = Path(
            path or os.getenv("SFTP_SINK_CONFIG_PATH", "config/sftp_output.yaml")
        )
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        self.model = self._parse_yaml()

    def _parse_yaml(self) -> SftpOutputConfig:
        raw: dict
        with self.config_path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
        return parse_config(raw)


def parse_config(raw: dict) -> SftpOutputConfig:
    """Validate an already-decoded mapping, e.g. a task's config section."""
    try:
        return SftpOutputConfig(**raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


__all__ = [
    "ConfigLoader",
    "ProxyConfig",
    "ProxyType",
    "SftpOutputConfig",
    "parse_config",
]
