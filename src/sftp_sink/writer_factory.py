"""Factory for building a task's writer from validated configuration."""
from __future__ import annotations

import time
from typing import Callable

from .config import SftpOutputConfig
from .endpoint import RemoteEndpoint
from .paths import PathTemplate
from .retry import RetryingResolver, exponential_backoff
from .transport import SftpConnectionManager
from .writer import SequentialFileWriter


def create_file_writer(
    config: SftpOutputConfig,
    task_index: int,
    backoff: Callable[[int], float] = exponential_backoff,
    sleep: Callable[[float], None] = time.sleep,
) -> SequentialFileWriter:
    """Build the endpoint, template and connection stack for one task.

    Configuration errors surface here, before any network activity.
    """
    endpoint = RemoteEndpoint.from_config(config)
    template = PathTemplate.from_config(config)
    manager = SftpConnectionManager(endpoint)
    resolver = RetryingResolver(manager, endpoint, backoff=backoff, sleep=sleep)
    return SequentialFileWriter(endpoint, template, task_index, manager=manager, resolver=resolver)


__all__ = ["create_file_writer"]
