"""vitalsguard report -- display a stored batch result.

Shows the latest run by default, or a specific run by ID. ``--list``
prints the stored run IDs, optionally only those that measured one
scenario.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from vitalsguard.cli.output import output_json, render_result
from vitalsguard.models.config import find_project_root, load_run_config
from vitalsguard.storage.json_store import ResultStore


def report(
    run_id: Optional[str] = typer.Argument(None, help="Run ID to show (default: latest)"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
    list_runs: bool = typer.Option(False, "--list", help="List stored run IDs"),
    scenario: Optional[str] = typer.Option(None, "--scenario", help="With --list, only runs of this scenario"),
) -> None:
    """Show a stored run's vitals and budget violations."""
    project_root = find_project_root()
    config = load_run_config(project_root)
    store = ResultStore(project_root, config.storage_dir)
    console = Console()

    if list_runs:
        run_ids = store.list_runs(scenario)
        if not run_ids:
            console.print("No runs found.")
            return
        for stored in run_ids:
            console.print(stored)
        return

    if run_id is None:
        result = store.load_latest()
        if result is None:
            console.print("No runs found. Run 'vitalsguard run' first.")
            raise typer.Exit(code=1)
    else:
        try:
            result = store.load_batch(run_id)
        except FileNotFoundError:
            console.print(f"[bold red]Run not found:[/bold red] {run_id}")
            raise typer.Exit(code=1)

    if format_json:
        output_json(result)
        return

    if result.started_at is not None:
        console.print(f"[bold]Run:[/bold] {result.run_id}  [dim]{result.started_at:%Y-%m-%d %H:%M:%S} UTC[/dim]")
    render_result(result, console)
