"""
proof-params - fetch, verify and publish zk-SNARK parameter files.

Usage:
    proof-params fetch --classifier sector-32GiB
    proof-params publish v28-*.params --classifier sector-2KiB
    proof-params check
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from proof_params.cli.commands import check, fetch, list_entries, publish
from proof_params.cli.commands import config_cmd
from proof_params.cli.helpers import configure_logging, console
from proof_params.config import ParamsConfig
from proof_params.errors import ParamsError

__version__ = "0.3.0"

app = typer.Typer(
    name="proof-params",
    help="Fetch, verify and publish zk-SNARK parameter files",
    add_completion=False,
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"proof-params {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    ctx: typer.Context,
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Parameter cache directory"),
    manifest: Optional[Path] = typer.Option(None, "--manifest", "-m", help="Manifest JSON file"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Distribution endpoint base URL"),
    workers: Optional[int] = typer.Option(None, "--workers", "-j", min=1, help="Parallel transfers"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Resolve settings shared by every command."""
    configure_logging(verbose)
    try:
        settings = ParamsConfig().load()
    except ParamsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    ctx.obj = settings.with_overrides(
        cache_dir=cache_dir,
        manifest_path=manifest,
        base_url=base_url.rstrip("/") if base_url else None,
        workers=workers,
    )


app.command()(fetch)
app.command()(publish)
app.command()(check)
app.command("list")(list_entries)
app.add_typer(config_cmd.app, name="config")


def main():
    app()


if __name__ == "__main__":
    main()
