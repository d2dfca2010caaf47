"""paramiko-backed connection manager and remote file handles."""
from __future__ import annotations

import logging
import posixpath
import stat

import paramiko
import socks

from .config import ProxyType
from .endpoint import RemoteEndpoint
from .errors import ProgrammingError

logger = logging.getLogger(__name__)

TRANSPORT_LOG_CHANNEL = "sftp_sink.transport.paramiko"


class RemoteFile:
    """One remote file and, once opened, its output stream."""

    def __init__(self, sftp: paramiko.SFTPClient, server_path: str, public_uri: str) -> None:
        self._sftp = sftp
        self.server_path = server_path
        self.public_uri = public_uri
        self._stream: paramiko.SFTPFile | None = None

    def open_output_stream(self) -> paramiko.SFTPFile:
        if self._stream is None:
            self._stream = self._sftp.open(self.server_path, "wb")
            self._stream.set_pipelined(True)
        return self._stream

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None and not stream.closed:
            stream.close()

    def __repr__(self) -> str:
        return f"RemoteFile({self.public_uri!r})"


class SftpConnectionManager:
    """Owns one SSH/SFTP session for a single task and hands out :class:`RemoteFile` handles."""

    def __init__(self, endpoint: RemoteEndpoint, verbose_transport_logging: bool | None = None) -> None:
        self._endpoint = endpoint
        if verbose_transport_logging is None:
            verbose_transport_logging = endpoint.options.verbose_transport_logging
        # per-manager child channel; the shared parent's level is never touched
        self.log_channel = f"{TRANSPORT_LOG_CHANNEL}.{id(self):x}"
        logging.getLogger(self.log_channel).setLevel(
            logging.NOTSET if verbose_transport_logging else logging.WARNING
        )
        self._client: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None
        self._home: str | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def resolve_file(self, remote_path: str) -> RemoteFile:
        """Connect if needed, create parent directories and return a handle for ``remote_path``.

        Transport failures (``paramiko.SSHException``, ``OSError``, ``EOFError``)
        propagate unchanged so the caller can decide whether to retry.
        """
        if self._closed:
            raise ProgrammingError("connection manager already closed")
        sftp = self._ensure_connected()
        server_path = self._server_path(remote_path)
        self._mkdirs(sftp, posixpath.dirname(server_path))
        return RemoteFile(sftp, server_path, self._endpoint.redacted_uri(remote_path))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._disconnect()

    def _server_path(self, remote_path: str) -> str:
        if self._endpoint.options.user_dir_is_root:
            return posixpath.join(self._home or "/", remote_path.lstrip("/"))
        return remote_path

    def _ensure_connected(self) -> paramiko.SFTPClient:
        if self._sftp is not None and self._is_active():
            return self._sftp
        self._disconnect()

        endpoint = self._endpoint
        options = endpoint.options
        client = paramiko.SSHClient()
        client.set_log_channel(self.log_channel)
        if options.strict_host_key_checking:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            "hostname": endpoint.host,
            "port": endpoint.port,
            "username": endpoint.user,
            "password": endpoint.password,
            "timeout": options.timeout,
            "banner_timeout": options.timeout,
            "auth_timeout": options.timeout,
            "allow_agent": False,
            "look_for_keys": options.identity_file is None and endpoint.password is None,
        }
        if options.identity_file:
            connect_kwargs["key_filename"] = options.identity_file
            connect_kwargs["passphrase"] = options.identity_passphrase or None
            logger.info("set identity: %s", options.identity_file)
        sock = self._open_proxy_socket()
        if sock is not None:
            connect_kwargs["sock"] = sock

        try:
            client.connect(**connect_kwargs)
            sftp = client.open_sftp()
            sftp.get_channel().settimeout(options.timeout)
            home = sftp.normalize(".")
        except BaseException:
            client.close()
            raise

        self._client = client
        self._sftp = sftp
        self._home = home
        logger.debug("Connected to %s:%s", endpoint.host, endpoint.port)
        return sftp

    def _open_proxy_socket(self):
        proxy = self._endpoint.options.proxy
        if proxy is None:
            return None
        host, port = self._endpoint.host, self._endpoint.port
        if proxy.type is ProxyType.STREAM:
            command = proxy.command.replace("%h", host).replace("%p", str(port))
            return paramiko.ProxyCommand(command)
        proxy_type = socks.HTTP if proxy.type is ProxyType.HTTP else socks.SOCKS5
        sock = socks.socksocket()
        sock.set_proxy(
            proxy_type,
            proxy.host,
            proxy.port,
            username=proxy.user,
            password=proxy.password,
        )
        sock.settimeout(self._endpoint.options.timeout)
        try:
            sock.connect((host, port))
        except BaseException:
            sock.close()
            raise
        logger.debug("Tunnelled through %s proxy %s:%s", proxy.type.value, proxy.host, proxy.port)
        return sock

    def _is_active(self) -> bool:
        transport = self._client.get_transport() if self._client is not None else None
        return transport is not None and transport.is_active()

    def _disconnect(self) -> None:
        sftp, self._sftp = self._sftp, None
        client, self._client = self._client, None
        self._home = None
        if sftp is not None:
            sftp.close()
        if client is not None:
            client.close()

    @staticmethod
    def _mkdirs(sftp: paramiko.SFTPClient, directory: str) -> None:
        if directory in ("", "/", "."):
            return
        try:
            details = sftp.stat(directory)
        except FileNotFoundError:
            SftpConnectionManager._mkdirs(sftp, posixpath.dirname(directory))
            sftp.mkdir(directory)
            return
        if not stat.S_ISDIR(details.st_mode):
            raise NotADirectoryError(f"Remote path is not a directory: {directory}")


__all__ = ["RemoteFile", "SftpConnectionManager", "TRANSPORT_LOG_CHANNEL"]
