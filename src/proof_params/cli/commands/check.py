"""Check and list commands: inspect the manifest and the local cache."""

from __future__ import annotations

import json
from typing import List, Optional

import typer
from rich.table import Table

from proof_params.cli.helpers import console, format_bytes, get_catalog
from proof_params.errors import ParamsError


def check(
    ctx: typer.Context,
    classifiers: Optional[List[str]] = typer.Option(
        None,
        "--classifier",
        "-c",
        help="Only check these classifiers (default: all)",
    ),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Verify cached parameter files against the manifest digests."""
    catalog = get_catalog(ctx)
    try:
        results = catalog.verify_all(classifiers or None)
    except ParamsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    invalid = [identifier for identifier, valid in results.items() if not valid]

    if json_output:
        print(json.dumps(results, indent=2, sort_keys=True))
    else:
        for identifier, valid in results.items():
            mark = "[green]✓[/green]" if valid else "[red]✗[/red]"
            console.print(f"{mark} {identifier}")
        console.print(f"\nValid: {len(results) - len(invalid)}, Invalid: {len(invalid)}")

    if invalid:
        raise typer.Exit(1)


def list_entries(
    ctx: typer.Context,
    classifiers: Optional[List[str]] = typer.Option(
        None,
        "--classifier",
        "-c",
        help="Only list these classifiers (default: all)",
    ),
) -> None:
    """List manifest entries."""
    catalog = get_catalog(ctx)
    try:
        manifest = catalog.load_manifest()
    except ParamsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    entries = manifest.entries_for(classifiers or None)
    if not entries:
        console.print("[yellow]No manifest entries.[/yellow]")
        return

    table = Table(title=str(catalog.store.path))
    table.add_column("Identifier", style="bold")
    table.add_column("Version")
    table.add_column("Classifier", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Digest", style="dim")
    for entry in entries:
        table.add_row(
            entry.identifier,
            entry.version or "-",
            entry.classifier,
            format_bytes(entry.size),
            entry.digest,
        )
    console.print(table)
