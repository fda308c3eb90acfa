"""Fetch command: download and verify parameter files."""

from __future__ import annotations

import json
from typing import List, Optional

import typer
from rich.table import Table

from proof_params.cli.helpers import console, format_bytes, get_catalog
from proof_params.errors import ParamsError
from proof_params.fetch.states import FetchState

STATE_STYLES = {
    FetchState.VERIFIED: "green",
    FetchState.FAILED: "red",
}


def fetch(
    ctx: typer.Context,
    classifiers: Optional[List[str]] = typer.Option(
        None,
        "--classifier",
        "-c",
        help="Classifier to fetch (e.g. sector-32GiB); repeat for several",
    ),
    fetch_all: bool = typer.Option(False, "--all", "-a", help="Fetch every entry in the manifest"),
    json_output: bool = typer.Option(False, "--json", help="Print per-identifier results as JSON"),
) -> None:
    """Download parameter files and verify them against the manifest."""
    if not classifiers and not fetch_all:
        console.print("[red]Error:[/red] pass --classifier at least once, or --all")
        raise typer.Exit(2)

    catalog = get_catalog(ctx)
    classifier_filter = None if fetch_all else classifiers

    try:
        report = catalog.fetch(classifier_filter)
    except ParamsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if json_output:
        print(json.dumps(report.to_dict(), indent=2))
    elif not report:
        console.print("[yellow]No manifest entries match the requested classifiers.[/yellow]")
    else:
        table = Table(title=f"Fetch into {catalog.cache_dir}")
        table.add_column("Identifier", style="bold")
        table.add_column("State")
        table.add_column("Attempts", justify="right")
        table.add_column("Downloaded", justify="right")
        table.add_column("Detail")
        for identifier, outcome in report.items():
            style = STATE_STYLES.get(outcome.state, "yellow")
            table.add_row(
                identifier,
                f"[{style}]{outcome.state}[/{style}]",
                str(outcome.attempts),
                format_bytes(outcome.bytes_downloaded),
                " -> ".join(outcome.history[1:]) if outcome.ok else (outcome.error or ""),
            )
        console.print(table)
        console.print(f"Verified: {len(report.verified)}, Failed: {len(report.failed)}")

    if not report.ok:
        raise typer.Exit(1)
