#!/usr/bin/env python
"""Fail-fast import verification for the sftp_sink modules."""
from __future__ import annotations

import importlib
import os
import sys

MODULES = [
    "sftp_sink",
    "sftp_sink.cli",
    "sftp_sink.config",
    "sftp_sink.endpoint",
    "sftp_sink.paths",
    "sftp_sink.retry",
    "sftp_sink.task",
    "sftp_sink.transport",
    "sftp_sink.writer",
    "sftp_sink.writer_factory",
]


def main() -> int:
    if not os.getenv("VIRTUAL_ENV"):
        print(
            "[verify_repo_integrity] Must run inside activated virtualenv (source .venv/bin/activate).",
            file=sys.stderr,
        )
        return 1
    failed = []
    for module in MODULES:
        try:
            importlib.import_module(module)
        except ImportError as exc:
            print(f"[verify_repo_integrity] Failed to import {module}: {exc}", file=sys.stderr)
            failed.append(module)
    if failed:
        return 1
    print(f"[verify_repo_integrity] {len(MODULES)} modules imported successfully.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
