"""Transactional SFTP file output for one task of a batch job."""
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("sftp-sink")
except PackageNotFoundError:  # pragma: no cover - during local dev without install
    __version__ = "0.0.0"

__all__ = ["__version__"]
