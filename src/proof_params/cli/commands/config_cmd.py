"""``proof-params config`` commands."""

from __future__ import annotations

import typer
from rich.table import Table

from proof_params.cli.helpers import console, get_settings
from proof_params.config import ParamsConfig
from proof_params.errors import ConfigError

app = typer.Typer(help="Show or change configuration")


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Display resolved configuration."""
    settings = get_settings(ctx)

    table = Table(title="Configuration", show_lines=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        table.add_row(key, "[dim]not set[/dim]" if value is None else str(value))
    console.print(table)


@app.command("set")
def set_value(
    key: str = typer.Argument(..., help="Configuration key (e.g. base_url)"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Persist a configuration value in ~/.proof-params/config.toml."""
    config = ParamsConfig()
    try:
        config.set_value(key, value)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"✅ {key} set in {config.config_file}")
