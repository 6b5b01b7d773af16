"""dmarcconv command-line interface."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from . import __version__
from .config import DEFAULT_CONFIG_PATH, Config, ConfigError, SetupError, load_config
from .files import FilesConverter
from .logging import configure_logging
from .merge import MergeError
from .output import OutputError

app = typer.Typer(help="Convert DMARC aggregate reports into readable output.")
LOGGER = logging.getLogger(__name__)


@dataclass
class CLIState:
    """Stores shared CLI options."""

    config_path: Path | None


@app.callback()
def _dmarcconv(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "-c",
            "--config",
            help="Path to config (env DMARCCONV_CONFIG or ~/.config/dmarcconv/config.yaml).",
        ),
    ] = None,
) -> None:
    """Capture global CLI options."""

    resolved = config.expanduser() if config else None
    ctx.obj = CLIState(config_path=resolved)


@app.command()
def convert(ctx: typer.Context) -> None:
    """Convert every report found in the configured input directory."""

    state = _state(ctx)
    config = _load_config(state.config_path)
    configure_logging(config.log_debug, config.log_datetime)

    if config.input.imap.is_configured:
        LOGGER.warning(
            "Fetching from IMAP server %s is not supported; converting %s only",
            config.input.imap.server,
            config.input.dir,
        )

    try:
        converter = FilesConverter(config)
        converter.convert_write()
    except (MergeError, OutputError, OSError) as exc:
        LOGGER.error("Conversion failed: %s", exc)
        typer.secho(f"Conversion failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc


@app.command()
def check(ctx: typer.Context) -> None:
    """Validate the configuration and print a summary."""

    state = _state(ctx)
    config = _load_config(state.config_path)

    typer.echo("→ dmarcconv configuration")
    typer.echo(f"Version: {__version__}")
    typer.echo(f"Config path: {_resolved_config_path(state.config_path)}")
    typer.echo(f"Input dir: {config.input.dir}")
    if config.input.delete:
        typer.echo("Processed files: deleted")
    elif config.input.archive_dir is not None:
        typer.echo(f"Processed files: archived to {config.input.archive_dir}")
    else:
        typer.echo("Processed files: kept")
    typer.echo(f"Output format: {config.output.format.value}")
    typer.echo(f"Output file: {config.output.file or 'stdout'}")
    typer.echo(f"Merge reports: {'yes' if config.merge_reports else 'no'}")
    if config.lookup_addr:
        typer.echo(f"Address lookup: yes (limit {config.lookup_limit})")
    else:
        typer.echo("Address lookup: no")


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise RuntimeError("CLI state missing from context.")
    return state


def _load_config(path: Path | None) -> Config:
    try:
        return load_config(path)
    except ConfigError as exc:
        _config_failure(exc)
    except SetupError as exc:
        typer.secho(f"Setup error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc


def _config_failure(exc: ConfigError) -> NoReturn:
    typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(2) from exc


def _resolved_config_path(path: Path | None) -> Path:
    if path:
        return path
    env = os.environ.get("DMARCCONV_CONFIG")
    if env:
        return Path(env).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def main() -> None:  # pragma: no cover - delegated to Typer
    app()


__all__ = ["app", "main"]
