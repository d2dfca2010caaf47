"""Pytest configuration for loading local environment variables."""
from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

try:
    from sftp_sink.env import load_env
except ImportError as exc:
    raise RuntimeError(
        "sftp_sink is not importable. Activate your virtualenv (source .venv/bin/activate) "
        "and run 'pip install -e .' before running pytest."
    ) from exc

from sftp_sink.endpoint import ConnectionOptions, RemoteEndpoint
from sftp_sink.paths import PathTemplate
from sftp_sink.retry import RetryingResolver
from sftp_sink.transport import RemoteFile
from sftp_sink.writer import SequentialFileWriter

# Load default runtime env first, then overlay .env.test if provided
load_env()
test_env = Path(".env.test")
if test_env.exists():
    load_env(dotenv_path=test_env, override=True)


class LocalStream(io.FileIO):
    """Stands in for paramiko.SFTPFile over a local file."""

    def set_pipelined(self, pipelined: bool = True) -> None:
        pass


class LocalSftp:
    def __init__(self, root: Path) -> None:
        self.root = root

    def open(self, path: str, mode: str = "r"):
        return LocalStream(str(self.root / path.lstrip("/")), mode.replace("b", ""))


class LocalManager:
    """Connection manager double that writes under a local directory."""

    def __init__(self, root: Path, endpoint: RemoteEndpoint, failures: int = 0) -> None:
        self.sftp = LocalSftp(root)
        self.endpoint = endpoint
        self.failures = failures
        self.resolved: list[str] = []
        self.close_calls = 0

    def resolve_file(self, remote_path: str) -> RemoteFile:
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError("connection refused")
        local = self.sftp.root / remote_path.lstrip("/")
        local.parent.mkdir(parents=True, exist_ok=True)
        self.resolved.append(remote_path)
        return RemoteFile(self.sftp, remote_path, self.endpoint.redacted_uri(remote_path))

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def endpoint() -> RemoteEndpoint:
    return RemoteEndpoint(
        host="127.0.0.1",
        port=20022,
        user="username",
        password="s3cr3t:pass",
        options=ConnectionOptions(timeout=5),
        max_connection_retries=3,
    )


@pytest.fixture
def template() -> PathTemplate:
    return PathTemplate(prefix="/out/", extension="txt")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def local_manager(tmp_path: Path, endpoint: RemoteEndpoint) -> LocalManager:
    return LocalManager(tmp_path, endpoint)


@pytest.fixture
def make_writer(tmp_path, endpoint, template, sleeps, local_manager):
    def _make(task_index: int = 1, manager=None) -> SequentialFileWriter:
        manager = manager or local_manager
        resolver = RetryingResolver(manager, endpoint, sleep=sleeps.append)
        return SequentialFileWriter(endpoint, template, task_index, manager=manager, resolver=resolver)

    return _make


@pytest.fixture(autouse=True)
def _debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="sftp_sink")


@pytest.fixture
def make_manager(tmp_path: Path, endpoint: RemoteEndpoint):
    def _make(failures: int = 0) -> LocalManager:
        return LocalManager(tmp_path, endpoint, failures=failures)

    return _make
