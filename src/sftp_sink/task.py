"""Drive one writer through a whole task the way the host job framework does."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from .writer import SequentialFileWriter, TaskReport

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 32 * 1024


def run_task(writer: SequentialFileWriter, files: Iterable[Iterable[bytes]]) -> TaskReport:
    """Write each element of ``files`` (an iterable of chunks) to its own remote file.

    Commits on success; aborts on any failure. The writer is always released.
    """
    committed = False
    try:
        for chunks in files:
            writer.open_next()
            for chunk in chunks:
                writer.write(chunk)
        writer.finish()
        report = writer.commit()
        committed = True
        return report
    finally:
        if not committed:
            logger.warning("aborting task %s", writer.task_index)
            writer.abort()
        writer.release()


def iter_file_chunks(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                return
            yield chunk


__all__ = ["DEFAULT_CHUNK_SIZE", "iter_file_chunks", "run_task"]
