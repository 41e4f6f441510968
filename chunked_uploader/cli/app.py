"""Command line entry point for chunked uploads."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from tqdm import tqdm

from chunked_uploader import __version__
from chunked_uploader.config_manager.config import ConfigManager
from chunked_uploader.config_manager.helpers import parse_bytes
from chunked_uploader.config_manager.upload_config import UploadConfig
from chunked_uploader.exceptions import UploaderError
from chunked_uploader.models import ProgressSnapshot, ServerUploadStatus
from chunked_uploader.uploader import ChunkedFileUploader

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
EXIT_CANCELLED = 130

app = typer.Typer(add_completion=False, help="Chunked, resumable file uploads.")


def configure_logging(level: int = logging.WARNING) -> None:
    """Configure root logging with a concise, consistent format."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler])


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the chunked-uploader version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
) -> None:
    """Handle global CLI option for --version."""
    return None


def _resolve_config(cli_config: dict[str, Any]) -> UploadConfig:
    try:
        return ConfigManager().resolve_effective_config(cli_config)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _format_speed(snapshot: ProgressSnapshot) -> str:
    if snapshot.speed_bytes_per_second is None:
        return snapshot.status.value
    speed = tqdm.format_sizeof(snapshot.speed_bytes_per_second, "B/s", divisor=1024)
    return f"{snapshot.status.value} {speed}"


async def _run_upload(
    config: UploadConfig, path: Path, upload_id: str | None
) -> str | None:
    async with ChunkedFileUploader(config) as uploader:
        progress_bar = tqdm(
            total=path.stat().st_size,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            desc=path.name,
        )

        def on_progress(snapshot: ProgressSnapshot) -> None:
            progress_bar.update(snapshot.uploaded_bytes - progress_bar.n)
            progress_bar.set_postfix_str(_format_speed(snapshot))

        uploader.progress.on(on_progress)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, uploader.cancel_upload)
            handles_sigint = True
        except (NotImplementedError, RuntimeError, ValueError):
            handles_sigint = False

        try:
            return await uploader.upload_file(path, upload_id=upload_id)
        finally:
            if handles_sigint:
                loop.remove_signal_handler(signal.SIGINT)
            progress_bar.close()


@app.command("upload")
def upload(
    path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to upload."
    ),
    server_url: str | None = typer.Option(
        None, "--server-url", help="Base URL of the upload server."
    ),
    chunk_size: str | None = typer.Option(
        None, "--chunk-size", help="Chunk size, e.g. 1048576, 512k or 4m."
    ),
    parallel: int | None = typer.Option(
        None, "--parallel", help="Chunks uploaded concurrently per batch."
    ),
    max_retries: int | None = typer.Option(
        None, "--max-retries", help="Attempts per chunk before giving up."
    ),
    resumable: bool | None = typer.Option(
        None,
        "--resumable/--no-resumable",
        help="Skip chunks the server already holds.",
    ),
    upload_id: str | None = typer.Option(
        None, "--upload-id", help="Resume an existing upload session."
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Upload a file in chunks and print the name the server stored it as."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING)

    chunk_size_bytes = None
    if chunk_size is not None:
        try:
            chunk_size_bytes = parse_bytes(chunk_size)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--chunk-size") from exc

    config = _resolve_config({
        "server_url": server_url,
        "chunk_size": chunk_size_bytes,
        "parallel_uploads": parallel,
        "max_retries": max_retries,
        "resumable": resumable,
    })

    try:
        final_filename = asyncio.run(_run_upload(config, path, upload_id))
    except UploaderError as exc:
        typer.echo(f"Upload failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if final_filename is None:
        typer.echo("Upload cancelled", err=True)
        raise typer.Exit(code=EXIT_CANCELLED)
    typer.echo(final_filename)


async def _query_status(
    config: UploadConfig, upload_id: str
) -> ServerUploadStatus | None:
    async with ChunkedFileUploader(config) as uploader:
        return await uploader.get_upload_status(upload_id)


async def _delete(config: UploadConfig, upload_id: str) -> None:
    async with ChunkedFileUploader(config) as uploader:
        await uploader.delete_upload(upload_id)


@app.command("status")
def status(
    upload_id: str = typer.Argument(..., help="Upload session id."),
    server_url: str | None = typer.Option(
        None, "--server-url", help="Base URL of the upload server."
    ),
) -> None:
    """Show which chunks the server holds for an upload session."""
    configure_logging()
    config = _resolve_config({"server_url": server_url})
    server_status = asyncio.run(_query_status(config, upload_id))
    if server_status is None:
        typer.echo(f"Could not read status for {upload_id}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"received {server_status.received_chunks}/{server_status.total_chunks}"
    )
    missing = server_status.missing_chunks or []
    typer.echo(f"missing {', '.join(str(i) for i in missing) or 'none'}")


@app.command("delete")
def delete(
    upload_id: str = typer.Argument(..., help="Upload session id."),
    server_url: str | None = typer.Option(
        None, "--server-url", help="Base URL of the upload server."
    ),
) -> None:
    """Delete an upload session on the server (best effort)."""
    configure_logging()
    config = _resolve_config({"server_url": server_url})
    asyncio.run(_delete(config, upload_id))
    typer.echo(f"Deleted {upload_id}")


def main() -> None:
    """Console script entry point."""
    app()

