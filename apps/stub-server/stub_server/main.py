"""CLI entrypoint for the standalone stub server."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Optional

import typer

from .config import get_log_format, load_settings
from .errors import ConfigurationError, PortBindError
from .loader import load_stubs_from_directory, load_stubs_from_file
from .logging_utils import configure_logging
from .models import StubDefinition
from .server import StubServer

app = typer.Typer(help="Serve canned HTTP responses from JSON/YAML stub files.")


def _load(directory: Optional[Path], file: Optional[Path]) -> list[StubDefinition]:
    if directory is None and file is None:
        raise typer.BadParameter("Provide stubs via --directory or --file")
    stubs: list[StubDefinition] = []
    if directory is not None:
        stubs.extend(load_stubs_from_directory(directory))
    if file is not None:
        stubs.extend(load_stubs_from_file(file))
    return stubs


@app.command()
def serve(
    directory: Optional[Path] = typer.Option(
        None,
        "--directory",
        "-d",
        help="Directory scanned recursively for .json/.yaml stub files (env: STUB_SERVER_STUBS_DIR).",
    ),
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        help="Single stub file holding one stub or a list of stubs.",
    ),
    host: Optional[str] = typer.Option(None, help="Bind host (env: STUB_SERVER_HOST, default 127.0.0.1)."),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="Bind port, 0 picks a free one (env: STUB_SERVER_PORT, default 8080).",
    ),
    log_level: Optional[str] = typer.Option(None, help="Log level (env: STUB_SERVER_LOG_LEVEL, default INFO)."),
    log_format: Optional[str] = typer.Option(
        None,
        help="Log format: console, plain or json (env: CONSOLE_OUTPUT_FORMAT).",
    ),
) -> None:
    """Load stubs and serve them until interrupted with Ctrl+C."""

    try:
        settings = load_settings(
            host=host,
            port=port,
            stubs_dir=directory,
            log_level=log_level,
            log_format=log_format,
        )
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    logger = configure_logging(settings.log_level, settings.log_format)

    try:
        stubs = _load(settings.stubs_dir, file)
    except ConfigurationError as exc:
        typer.secho(f"Invalid stubs: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    server = StubServer(stubs, host=settings.host, port=settings.port)
    try:
        server.start()
    except PortBindError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    for line in server.console_summary():
        typer.echo(line)
    typer.secho("Press Ctrl+C to stop", fg=typer.colors.GREEN)

    stop_requested = threading.Event()
    try:
        while not stop_requested.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        logger.info("shutdown_requested")
    finally:
        server.stop()


@app.command()
def validate(
    directory: Optional[Path] = typer.Option(None, "--directory", "-d", help="Stub directory to check."),
    file: Optional[Path] = typer.Option(None, "--file", help="Single stub file to check."),
    log_level: str = typer.Option("WARNING", help="Log level for diagnostics written to stderr."),
) -> None:
    """Parse stubs without serving them and list what would be registered."""

    # stdout carries only the listing.
    configure_logging(log_level, get_log_format(), stream=sys.stderr)

    try:
        stubs = _load(directory, file)
    except ConfigurationError as exc:
        typer.secho(f"Invalid stubs: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    for index, stub in enumerate(stubs, start=1):
        typer.echo(f"{index:>3}. {stub.describe()}")
    typer.secho(f"{len(stubs)} stub(s) OK", fg=typer.colors.GREEN)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
