"""Bounded, exponentially backed-off resolution of remote files."""
from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

import paramiko

from .endpoint import RemoteEndpoint
from .errors import RemoteConnectionError
from .transport import RemoteFile

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (paramiko.SSHException, OSError, EOFError)


class FileResolver(Protocol):
    def resolve_file(self, remote_path: str) -> RemoteFile:
        """Return a handle for ``remote_path``; raise a transport error on failure."""


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait after the ``attempt``-th failure: 2, 4, 8, ..."""
    return float(2 ** attempt)


class RetryingResolver:
    """Resolves remote paths, retrying transient transport failures.

    ``max_attempts`` counts every try including the first, so a value of
    ``N`` means ``N`` calls to the underlying resolver and ``N - 1`` sleeps.
    There is no cap on the backoff and no jitter. ``backoff`` and ``sleep``
    are injectable so tests run without real delays.
    """

    def __init__(
        self,
        manager: FileResolver,
        endpoint: RemoteEndpoint,
        max_attempts: int | None = None,
        backoff: Callable[[int], float] = exponential_backoff,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._manager = manager
        self._endpoint = endpoint
        self.max_attempts = max(
            1, endpoint.max_connection_retries if max_attempts is None else max_attempts
        )
        self._backoff = backoff
        self._sleep = sleep

    def resolve(self, remote_path: str) -> RemoteFile:
        count = 0
        while True:
            try:
                return self._manager.resolve_file(remote_path)
            except TRANSIENT_ERRORS as exc:
                count += 1
                if count >= self.max_attempts:
                    raise RemoteConnectionError(
                        f"failed to connect sftp server after {count} attempt(s): "
                        f"{self._endpoint.redacted_uri(remote_path)}"
                    ) from exc
                logger.warning("failed to connect sftp server: %s", exc, exc_info=True)
                self._pause(count)
                logger.warning("retry to connect sftp server: %s times", count)

    def _pause(self, attempt: int) -> None:
        seconds = self._backoff(attempt)
        logger.warning("sleep in next connection retry: %d milliseconds", int(seconds * 1000))
        try:
            self._sleep(seconds)
        except InterruptedError as exc:
            # the retry still happens; there is no way to cancel a pending retry
            logger.warning("retry sleep interrupted: %s", exc)


__all__ = ["FileResolver", "RetryingResolver", "TRANSIENT_ERRORS", "exponential_backoff"]
