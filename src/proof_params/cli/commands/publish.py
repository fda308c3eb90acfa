"""Publish command: add local parameter files to the manifest."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from rich.table import Table

from proof_params.cli.helpers import console, format_bytes, get_catalog
from proof_params.errors import ParamsError, PublishConflict, PublishError
from proof_params.publish.orchestrator import PublishAction

ACTION_STYLES = {
    PublishAction.ADDED: "green",
    PublishAction.REPLACED: "yellow",
    PublishAction.UNCHANGED: "dim",
}


def publish(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Parameter files to publish"),
    classifier: Optional[str] = typer.Option(
        None,
        "--classifier",
        "-c",
        help="Classifier for every file (default: read sector_size from each file's .meta)",
    ),
    confirm_overwrite: bool = typer.Option(
        False,
        "--confirm-overwrite",
        help="Replace entries whose digest changed",
    ),
    upload: bool = typer.Option(True, "--upload/--no-upload", help="Upload files to the configured base URL"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without uploading or committing"),
) -> None:
    """Digest parameter files and commit them to the manifest as one batch."""
    catalog = get_catalog(ctx)

    try:
        if dry_run:
            planned = catalog.plan_publish(paths, classifier, confirm_overwrite)
            rows = [(c.entry, c.action) for c in planned]
        else:
            before = catalog.load_manifest()
            after = catalog.publish(paths, classifier, confirm_overwrite, upload=upload)
            diff = before.diff(after)
            rows = [(after[i], PublishAction.ADDED) for i in diff.added]
            rows += [(after[i], PublishAction.REPLACED) for i in diff.changed]
    except PublishConflict as e:
        console.print(f"[red]Conflict:[/red] {e}")
        raise typer.Exit(1)
    except PublishError as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print("[dim]Manifest not modified.[/dim]")
        raise typer.Exit(1)
    except ParamsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not rows:
        console.print("Nothing to publish; manifest unchanged.")
        return

    table = Table(title="Publish plan" if dry_run else f"Published to {catalog.store.path}")
    table.add_column("Identifier", style="bold")
    table.add_column("Classifier", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Digest")
    table.add_column("Action")
    for entry, action in sorted(rows, key=lambda row: row[0].identifier):
        style = ACTION_STYLES[action]
        table.add_row(
            entry.identifier,
            entry.classifier,
            format_bytes(entry.size),
            entry.digest,
            f"[{style}]{action}[/{style}]",
        )
    console.print(table)
