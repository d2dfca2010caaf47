from __future__ import annotations

import socket
import time
from pathlib import Path
from unittest.mock import MagicMock

import paramiko
import pytest

from sftp_sink.endpoint import ConnectionOptions, RemoteEndpoint
from sftp_sink.errors import ProgrammingError, RemoteConnectionError, TransferError
from sftp_sink.retry import RetryingResolver
from sftp_sink.transport import SftpConnectionManager
from sftp_sink.writer import SequentialFileWriter, TaskReport, WriterState


def test_write_before_open_is_programming_error(make_writer, local_manager):
    writer = make_writer()
    with pytest.raises(ProgrammingError):
        writer.write(b"data")
    assert local_manager.resolved == []


def test_files_are_named_by_file_index(make_writer, local_manager, tmp_path: Path):
    writer = make_writer(task_index=1)
    for index in range(3):
        writer.open_next()
        assert writer.current_path == f"/out/001.{index:02d}.txt"
        writer.write(f"file {index}".encode())
    writer.finish()

    assert local_manager.resolved == ["/out/001.00.txt", "/out/001.01.txt", "/out/001.02.txt"]
    for index in range(3):
        assert (tmp_path / f"out/001.{index:02d}.txt").read_bytes() == f"file {index}".encode()
    assert writer.file_index == 3


def test_bytes_round_trip_in_submission_order(make_writer, tmp_path: Path):
    writer = make_writer(task_index=0)
    first = [b"alpha,", bytearray(b"beta,"), memoryview(b"gamma")]
    second = [b"x" * 70000, b"tail"]

    writer.open_next()
    for chunk in first:
        writer.write(chunk)
    writer.open_next()
    for chunk in second:
        writer.write(chunk)
    writer.finish()
    writer.release()

    assert (tmp_path / "out/000.00.txt").read_bytes() == b"alpha,beta,gamma"
    assert (tmp_path / "out/000.01.txt").read_bytes() == b"".join(second)


def test_write_honours_offset_and_length(make_writer, tmp_path: Path):
    writer = make_writer()
    writer.open_next()
    writer.write(b"0123456789", offset=2, length=5)
    writer.write(b"abc", offset=1)
    writer.finish()
    assert (tmp_path / "out/001.00.txt").read_bytes() == b"23456bc"


def test_memoryview_buffer_is_released(make_writer):
    writer = make_writer()
    buffer = memoryview(bytearray(b"payload"))
    with pytest.raises(ProgrammingError):
        writer.write(buffer)
    with pytest.raises(ValueError):
        buffer.tobytes()

    writer.open_next()
    buffer = memoryview(bytearray(b"payload"))
    writer.write(buffer)
    with pytest.raises(ValueError):
        buffer.tobytes()


def test_failed_open_keeps_file_index(endpoint, make_manager, make_writer, sleeps):
    manager = make_manager(failures=endpoint.max_connection_retries)
    writer = make_writer(task_index=1, manager=manager)

    with pytest.raises(RemoteConnectionError):
        writer.open_next()
    assert writer.state is WriterState.IDLE
    assert writer.file_index == 0
    assert sleeps == [2.0, 4.0]

    writer.open_next()
    assert manager.resolved == ["/out/001.00.txt"]


def test_write_failure_is_transfer_error(make_writer):
    writer = make_writer()
    writer.open_next()
    writer._current_stream = MagicMock()
    writer._current_stream.write.side_effect = socket.timeout("timed out")

    with pytest.raises(TransferError):
        writer.write(b"late")
    assert writer.state is WriterState.OPEN


def test_close_failure_still_advances_file_index(make_writer):
    writer = make_writer()
    writer.open_next()
    writer._current_stream = MagicMock()
    writer._current_stream.close.side_effect = OSError("broken pipe")

    with pytest.raises(TransferError):
        writer.open_next()
    assert writer.file_index == 1
    assert writer.state is WriterState.IDLE


def test_finish_is_idempotent_and_commit_returns_empty_report(make_writer):
    writer = make_writer()
    writer.finish()
    writer.open_next()
    writer.finish()
    writer.finish()
    assert writer.file_index == 1

    report = writer.commit()
    assert report == TaskReport()
    assert report.to_dict() == {}
    assert writer.state is WriterState.IDLE


def test_abort_leaves_state_untouched(make_writer, tmp_path: Path):
    writer = make_writer()
    writer.open_next()
    writer.write(b"partial")
    writer.abort()
    assert writer.state is WriterState.OPEN
    writer.release()
    assert (tmp_path / "out/001.00.txt").read_bytes() == b"partial"


def test_release_is_idempotent(make_writer, local_manager):
    writer = make_writer()
    writer.open_next()
    writer.release()
    writer.release()

    assert local_manager.close_calls == 1
    assert writer.state is WriterState.CLOSED
    with pytest.raises(ProgrammingError):
        writer.open_next()


def test_release_swallows_secondary_failures(make_writer, local_manager):
    writer = make_writer()
    writer.open_next()
    writer._current_stream = MagicMock()
    writer._current_stream.flush.side_effect = OSError("connection reset")
    local_manager.close = MagicMock(side_effect=OSError("already gone"))

    writer.release()

    local_manager.close.assert_called_once_with()
    assert writer.state is WriterState.CLOSED


def test_context_manager_releases(make_writer, local_manager):
    with make_writer() as writer:
        writer.open_next()
    assert local_manager.close_calls == 1
    assert writer.state is WriterState.CLOSED


def test_release_closes_connection_when_flush_raises_sftp_error(make_writer, local_manager):
    writer = make_writer()
    writer.open_next()
    writer._current_stream = MagicMock()
    writer._current_stream.flush.side_effect = paramiko.SFTPError("Expected handle")

    writer.release()

    assert local_manager.close_calls == 1
    assert writer.state is WriterState.CLOSED
    assert writer.file_index == 1


@pytest.mark.parametrize(
    "offset, length",
    [(-1, None), (-1, 2), (1, 10), (0, -1), (4, None), (3, 1)],
)
def test_out_of_range_offset_or_length_is_rejected(make_writer, tmp_path: Path, offset, length):
    writer = make_writer()
    writer.open_next()

    with pytest.raises(ProgrammingError):
        writer.write(b"abc", offset=offset, length=length)
    writer.finish()

    assert (tmp_path / "out/001.00.txt").read_bytes() == b""


def test_write_at_buffer_end_is_empty_not_an_error(make_writer, tmp_path: Path):
    writer = make_writer()
    writer.open_next()
    writer.write(b"abc", offset=3)
    writer.write(b"abc", offset=1, length=2)
    writer.finish()
    assert (tmp_path / "out/001.00.txt").read_bytes() == b"bc"


def test_silent_server_times_out_instead_of_hanging(template, sleeps):
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    try:
        endpoint = RemoteEndpoint(
            host="127.0.0.1",
            port=server.getsockname()[1],
            user="username",
            password="password",
            options=ConnectionOptions(timeout=0.5),
            max_connection_retries=2,
        )
        manager = SftpConnectionManager(endpoint)
        resolver = RetryingResolver(manager, endpoint, sleep=sleeps.append)
        writer = SequentialFileWriter(endpoint, template, 0, manager=manager, resolver=resolver)

        started = time.monotonic()
        with pytest.raises(RemoteConnectionError):
            writer.open_next()
        elapsed = time.monotonic() - started
        writer.release()
    finally:
        server.close()

    assert sleeps == [2.0]
    assert elapsed < 10
    assert writer.state is WriterState.CLOSED
