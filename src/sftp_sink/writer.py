"""Per-task transactional writer for a sequence of remote files."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

import paramiko

from .endpoint import RemoteEndpoint
from .errors import ProgrammingError, TransferError
from .paths import PathTemplate
from .retry import RetryingResolver
from .transport import RemoteFile, SftpConnectionManager

logger = logging.getLogger(__name__)

STREAM_ERRORS: tuple[type[BaseException], ...] = (OSError, EOFError, paramiko.SSHException)


class WriterState(str, enum.Enum):
    IDLE = "idle"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class TaskReport:
    """Success token handed back to the job coordinator on commit."""

    def to_dict(self) -> dict[str, Any]:
        return {}


class SequentialFileWriter:
    """Writes one task's output as ``prefix + seq(task, file) + ext`` files, one at a time.

    Lifecycle, as driven by the coordinator::

        writer.open_next()          # once per output file
        writer.write(chunk)         # any number of times
        writer.finish()
        writer.commit()             # or writer.abort()
        writer.release()            # always, from any state

    At most one remote file is open. The file index used for naming is bumped
    when a file is closed, so a failed open never consumes an index.
    """

    def __init__(
        self,
        endpoint: RemoteEndpoint,
        template: PathTemplate,
        task_index: int,
        manager: SftpConnectionManager | None = None,
        resolver: RetryingResolver | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._template = template
        self._task_index = task_index
        self._manager = manager if manager is not None else SftpConnectionManager(endpoint)
        self._resolver = resolver if resolver is not None else RetryingResolver(self._manager, endpoint)
        self._file_index = 0
        self._current_file: RemoteFile | None = None
        self._current_stream = None
        self._released = False

    @property
    def task_index(self) -> int:
        return self._task_index

    @property
    def file_index(self) -> int:
        return self._file_index

    @property
    def state(self) -> WriterState:
        if self._released:
            return WriterState.CLOSED
        if self._current_file is not None:
            return WriterState.OPEN
        return WriterState.IDLE

    @property
    def current_path(self) -> str | None:
        if self._current_file is None:
            return None
        return self._template.next_path(self._task_index, self._file_index)

    def open_next(self) -> RemoteFile:
        """Close the current file, if any, and open the next one in the sequence."""
        self._ensure_not_released()
        self._close_current_file()

        remote_path = self._template.next_path(self._task_index, self._file_index)
        remote_file = self._resolver.resolve(remote_path)
        try:
            stream = remote_file.open_output_stream()
        except STREAM_ERRORS as exc:
            logger.error("failed to open %s: %s", remote_file.public_uri, exc)
            remote_file.close()
            raise TransferError(f"failed to open {remote_file.public_uri}") from exc
        self._current_file = remote_file
        self._current_stream = stream
        logger.info("new sftp file: %s", remote_file.public_uri)
        return remote_file

    # name used by the host framework's FileOutput contract
    next_file = open_next

    def write(self, data, offset: int = 0, length: int | None = None) -> None:
        """Append ``data[offset:offset + length]`` to the open file.

        The buffer is consumed by this call: a ``memoryview`` (or anything
        with ``release()``) passed in is released whether the write succeeds
        or not.
        """
        try:
            if self._current_file is None:
                raise ProgrammingError("no file open: open_next() must be called before write()")
            with memoryview(data) as view:
                end = len(view) if length is None else offset + length
                if offset < 0 or end < offset or end > len(view):
                    raise ProgrammingError(
                        f"offset={offset} length={length} out of range for a {len(view)}-byte buffer"
                    )
                try:
                    self._current_stream.write(bytes(view[offset:end]))
                except STREAM_ERRORS as exc:
                    logger.error("failed to write to %s: %s", self._current_file.public_uri, exc)
                    raise TransferError(
                        f"failed to write to {self._current_file.public_uri}"
                    ) from exc
        finally:
            release = getattr(data, "release", None)
            if callable(release):
                release()

    add = write

    def finish(self) -> None:
        self._close_current_file()

    def commit(self) -> TaskReport:
        return TaskReport()

    def abort(self) -> None:
        """Leave any partially written remote files where they are."""

    def release(self) -> None:
        """Close whatever is open and tear down the connection; safe to repeat."""
        if self._released:
            return
        self._released = True
        try:
            self._close_current_file()
        except Exception:
            logger.warning("ignoring failure while closing file during release", exc_info=True)
        finally:
            try:
                self._manager.close()
            except Exception:
                logger.warning("ignoring failure while closing sftp connection", exc_info=True)

    close = release

    def __enter__(self) -> "SequentialFileWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def _ensure_not_released(self) -> None:
        if self._released:
            raise ProgrammingError("writer already released")

    def _close_current_file(self) -> None:
        if self._current_file is None:
            return
        remote_file, stream = self._current_file, self._current_stream
        try:
            stream.flush()
            stream.close()
            remote_file.close()
        except STREAM_ERRORS as exc:
            logger.error("failed to close %s: %s", remote_file.public_uri, exc)
            raise TransferError(f"failed to close {remote_file.public_uri}") from exc
        finally:
            self._file_index += 1
            self._current_file = None
            self._current_stream = None


__all__ = ["SequentialFileWriter", "TaskReport", "WriterState"]
