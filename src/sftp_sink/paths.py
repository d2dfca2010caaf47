"""Deterministic remote file naming for a task's output sequence."""
from __future__ import annotations

from dataclasses import dataclass

from .config import DEFAULT_SEQUENCE_FORMAT, SftpOutputConfig
from .errors import ConfigurationError


@dataclass(frozen=True)
class PathTemplate:
    """``prefix + sequence_format % (task_index, file_index) + extension``."""

    prefix: str
    extension: str
    sequence_format: str = DEFAULT_SEQUENCE_FORMAT

    def __post_init__(self) -> None:
        try:
            self.sequence_format % (0, 0)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"sequence_format must take (task_index, file_index): {self.sequence_format!r}"
            ) from exc

    @classmethod
    def from_config(cls, config: SftpOutputConfig) -> "PathTemplate":
        return cls(
            prefix=config.path_prefix,
            extension=config.file_ext,
            sequence_format=config.sequence_format,
        )

    def next_path(self, task_index: int, file_index: int) -> str:
        return self.prefix + self.sequence_format % (task_index, file_index) + self.extension


__all__ = ["PathTemplate"]
