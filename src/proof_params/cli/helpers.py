"""Shared console, logging and settings helpers for CLI commands."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from proof_params.api import ParameterCatalog
from proof_params.config import ParamsConfig, Settings
from proof_params.errors import ParamsError

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool = False) -> None:
    """Route log records through rich on stderr."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose, rich_tracebacks=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def format_bytes(size: int) -> str:
    """Human-readable byte count (e.g., '1.5 GiB')."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024:
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TiB"


def get_settings(ctx: typer.Context) -> Settings:
    """Settings resolved by the root callback, or from config if absent."""
    settings = ctx.obj if isinstance(ctx.obj, Settings) else None
    if settings is None:
        try:
            settings = ParamsConfig().load()
        except ParamsError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
    return settings


def get_catalog(ctx: typer.Context) -> ParameterCatalog:
    return ParameterCatalog(get_settings(ctx))
