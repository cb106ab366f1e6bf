"""vitalsguard run -- measure every scenario and check budgets.

Loads vitalsguard.yaml, applies command-line overrides, runs all
discovered scenarios in Chromium, renders the vitals table and budget
violations, persists the batch result and exits with a status code.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from vitalsguard.cli.logs import configure_logging
from vitalsguard.cli.output import create_scenario_progress, output_json, render_result
from vitalsguard.execution.batch import NoScenariosFoundError, ProgressCallback, run_guardian
from vitalsguard.models.budget import BudgetThresholds
from vitalsguard.models.config import RunConfig, find_project_root, load_run_config
from vitalsguard.models.report import BatchResult
from vitalsguard.storage.json_store import ResultStore, write_batch

console = Console(stderr=True)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def parse_pairs(pairs: list[str] | None, option: str) -> dict[str, str]:
    """Parse repeated ``KEY=VALUE`` options into a dict."""
    parsed: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint=option)
        parsed[key.strip()] = value.strip()
    return parsed


def apply_overrides(
    config: RunConfig,
    *,
    scenarios_dir: str | None = None,
    headed: bool = False,
    profile: bool = False,
    budgets: dict[str, str] | None = None,
    variables: dict[str, str] | None = None,
) -> RunConfig:
    """Return a copy of config with command-line values applied.

    Raises:
        pydantic.ValidationError: If a budget override is not a valid
            non-negative number for a known metric.
    """
    updates: dict = {}
    if scenarios_dir:
        updates["scenarios_dir"] = scenarios_dir
    if headed:
        updates["headless"] = False
    if profile:
        updates["profile"] = True
    if budgets:
        merged = {**config.budgets.as_dict(), **{k.upper(): v for k, v in budgets.items()}}
        updates["budgets"] = BudgetThresholds.model_validate(merged)
    if variables:
        updates["variables"] = {**config.variables, **variables}
    return config.model_copy(update=updates)


def run(
    scenarios_dir: Optional[str] = typer.Argument(
        None, help="Directory (or file) to search for scenarios (default: scenarios_dir from config)"
    ),
    headed: bool = typer.Option(False, "--headed", help="Show the browser window"),
    profile: bool = typer.Option(False, "--profile", help="Capture a CPU profile around scenario steps"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Also write the batch JSON to this path"),
    budget: Optional[list[str]] = typer.Option(None, "--budget", help="Budget override METRIC=VALUE (repeatable)"),
    var: Optional[list[str]] = typer.Option(None, "--var", help="Template variable KEY=VALUE (repeatable)"),
    verbose: bool = typer.Option(False, "-V", "--verbose", help="Debug logging"),
) -> None:
    """Run all scenarios and check Core Web Vitals budgets."""
    configure_logging(console, verbose)
    project_root = find_project_root()

    try:
        config = apply_overrides(
            load_run_config(project_root),
            scenarios_dir=scenarios_dir,
            headed=headed,
            profile=profile,
            budgets=parse_pairs(budget, "--budget"),
            variables=parse_pairs(var, "--var"),
        )
    except (ValidationError, yaml.YAMLError) as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_USAGE)

    try:
        result = _execute(config, project_root, show_progress=not format_json)
    except NoScenariosFoundError as exc:
        console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=EXIT_USAGE)

    store = ResultStore(project_root, config.storage_dir)
    run_id = store.save_batch(result)
    if output:
        write_batch(result, Path(output))

    if format_json:
        output_json(result)
    else:
        output_console = Console()
        render_result(result, output_console)
        output_console.print(f"[dim]Run saved: {run_id}[/dim]")

    if not result.summary.ok:
        raise typer.Exit(code=EXIT_FAILED)


def _execute(config: RunConfig, project_root: Path, *, show_progress: bool) -> BatchResult:
    progress = create_scenario_progress(console) if show_progress else None
    if progress is None:
        return asyncio.run(run_guardian(config, project_root))

    with progress:
        task = progress.add_task("Running scenarios", total=None)

        def on_progress(position: int, total: int, name: str, succeeded: bool) -> None:
            progress.update(task, total=total, completed=position, description=name)

        callback: ProgressCallback = on_progress
        return asyncio.run(run_guardian(config, project_root, callback))
