"""Immutable description of the SFTP server a task writes to."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import quote

from .config import ProxyConfig, SftpOutputConfig
from .errors import ConfigurationError

SCHEME = "sftp"
REDACTED = "***"


@dataclass(frozen=True)
class ConnectionOptions:
    """Transport settings handed to the connection manager."""

    timeout: float = 600
    user_dir_is_root: bool = True
    strict_host_key_checking: bool = False
    identity_file: str | None = None
    identity_passphrase: str = field(default="", repr=False)
    proxy: ProxyConfig | None = None
    verbose_transport_logging: bool = False


@dataclass(frozen=True)
class RemoteEndpoint:
    host: str
    port: int
    user: str
    password: str | None = field(default=None, repr=False)
    options: ConnectionOptions = field(default_factory=ConnectionOptions)
    max_connection_retries: int = 5

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigurationError("endpoint host must not be empty")
        if not self.user:
            raise ConfigurationError("endpoint user must not be empty")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"endpoint port out of range: {self.port}")

    @classmethod
    def from_config(cls, config: SftpOutputConfig) -> "RemoteEndpoint":
        options = ConnectionOptions(
            timeout=config.timeout,
            user_dir_is_root=config.user_directory_is_root,
            identity_file=os.path.expanduser(config.secret_key_file) if config.secret_key_file else None,
            identity_passphrase=config.secret_key_passphrase,
            proxy=config.proxy,
            verbose_transport_logging=config.verbose_transport_logging,
        )
        return cls(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            options=options,
            max_connection_retries=config.max_connection_retry,
        )

    @property
    def user_info(self) -> str:
        """Percent-encoded ``user[:password]`` suitable for a URI authority."""
        user_info = quote(self.user, safe="")
        if self.password is not None:
            user_info += ":" + quote(self.password, safe="")
        return user_info

    def uri(self, remote_path: str) -> str:
        return self._build_uri(self.user_info, remote_path)

    def redacted_uri(self, remote_path: str) -> str:
        """Same as :meth:`uri` with the password masked; the only form that may be logged."""
        user_info = quote(self.user, safe="")
        if self.password is not None:
            user_info += ":" + REDACTED
        return self._build_uri(user_info, remote_path)

    def _build_uri(self, user_info: str, remote_path: str) -> str:
        path = remote_path if remote_path.startswith("/") else "/" + remote_path
        return f"{SCHEME}://{user_info}@{self._netloc_host()}:{self.port}{quote(path)}"

    def _netloc_host(self) -> str:
        if ":" in self.host and not self.host.startswith("["):
            return f"[{self.host}]"
        return self.host


__all__ = ["ConnectionOptions", "RemoteEndpoint", "REDACTED"]
