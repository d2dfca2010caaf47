"""Command line interface for SFTP output tasks."""
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from .config import ConfigLoader, SftpOutputConfig
from .endpoint import REDACTED
from .errors import SinkError
from .task import DEFAULT_CHUNK_SIZE, iter_file_chunks, run_task
from .writer_factory import create_file_writer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)

app = typer.Typer(help="Transactional SFTP output controller")


def _redacted(config: SftpOutputConfig) -> dict:
    payload = config.model_dump(mode="json")
    for key in ("password", "secret_key_passphrase"):
        if payload.get(key):
            payload[key] = REDACTED
    proxy = payload.get("proxy")
    if proxy and proxy.get("password"):
        proxy["password"] = REDACTED
    return payload


@app.command()
def upload(
    files: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Local files, one remote file each"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
    task_index: int = typer.Option(0, "--task-index"),
    chunk_size: int = typer.Option(DEFAULT_CHUNK_SIZE, "--chunk-size"),
) -> None:
    """Upload local files as the ordered output of one task."""
    try:
        config = ConfigLoader(config_path).model
        writer = create_file_writer(config, task_index)
    except (FileNotFoundError, SinkError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)

    logger.info("Starting task %s with %s file(s)", task_index, len(files))
    try:
        run_task(writer, (iter_file_chunks(path, chunk_size) for path in files))
    except SinkError as exc:
        logger.error("Task %s failed: %s", task_index, exc)
        raise typer.Exit(code=1)
    typer.echo(f"Wrote {len(files)} file(s) for task {task_index}")


@app.command("show-config")
def show_config(
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
) -> None:
    """Print the validated configuration with secrets masked."""
    try:
        config = ConfigLoader(config_path).model
    except (FileNotFoundError, SinkError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps(_redacted(config), indent=2))


if __name__ == "__main__":
    app()
