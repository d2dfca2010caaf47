"""Error taxonomy surfaced to the task coordinator."""
from __future__ import annotations


class SinkError(Exception):
    """Base class for every failure raised by sftp_sink."""


class ConfigurationError(SinkError, ValueError):
    """Malformed endpoint, proxy or path template; raised before any network I/O."""


class RemoteConnectionError(SinkError, ConnectionError):
    """Connection, authentication or timeout failure that outlived the retry budget."""


class TransferError(SinkError, OSError):
    """I/O failure while writing to or closing an already-open remote file."""


class ProgrammingError(SinkError, RuntimeError):
    """The caller drove the writer lifecycle out of order."""


__all__ = [
    "SinkError",
    "ConfigurationError",
    "RemoteConnectionError",
    "TransferError",
    "ProgrammingError",
]
