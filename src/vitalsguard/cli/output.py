"""Rich terminal output layer for batch results.

Provides the progress bar, the headline status table, the per-scenario
vitals table, budget violation listing and JSON output for BatchResult
display in terminal and CI.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from vitalsguard.models.budget import METRIC_NAMES, MILLISECOND_METRICS
from vitalsguard.storage.json_store import dump_batch

if TYPE_CHECKING:
    from vitalsguard.models.report import BatchResult, ScenarioReport


def create_scenario_progress(console: Console) -> Progress | None:
    """Create a progress bar for scenario execution, or None off-terminal."""
    if not console.is_terminal:
        return None

    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def format_metric(metric: str, value: float | None) -> str:
    if value is None:
        return "-"
    if metric in MILLISECOND_METRICS:
        return f"{value:.0f} ms"
    return f"{value:.3f}"


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def render_headline(result: BatchResult, console: Console) -> None:
    """Render the batch status, scenario counts and violation count."""
    summary = result.summary
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    if summary.ok:
        table.add_row("Status", "[bold green]✓ PASS[/bold green]")
    else:
        table.add_row("Status", "[bold red]✗ FAIL[/bold red]")
    table.add_row(
        "Scenarios",
        f"{summary.passed}/{summary.total_scenarios} completed"
        + (f", {summary.failed} failed" if summary.failed else ""),
    )
    table.add_row("Violations", str(len(summary.budget_violations)))
    if result.run_id:
        table.add_row("Run", result.run_id)

    console.print()
    console.print(table)


def _vitals_row(report: ScenarioReport) -> list[str]:
    network = report.network.summary
    source = "" if report.network.source == "cdp" else " [dim](rt)[/dim]"
    return [
        escape(report.scenario),
        *(format_metric(metric, report.metrics.get(metric)) for metric in METRIC_NAMES),
        f"{report.performance.load_time:.0f} ms",
        f"{network.total_requests}{source}",
        format_bytes(network.total_transfer_size),
    ]


def render_scenarios(result: BatchResult, console: Console) -> None:
    """Render one row of vitals, load time and network totals per scenario."""
    if not result.reports:
        return
    table = Table(box=box.SIMPLE_HEAD, title="Core Web Vitals", title_justify="left")
    table.add_column("Scenario", style="bold")
    for metric in METRIC_NAMES:
        table.add_column(metric, justify="right")
    table.add_column("Load", justify="right")
    table.add_column("Requests", justify="right")
    table.add_column("Transfer", justify="right")

    for report in result.reports:
        table.add_row(*_vitals_row(report))

    console.print()
    console.print(table)


def render_profiles(result: BatchResult, console: Console) -> None:
    """Render the heaviest functions for scenarios that were profiled."""
    for report in result.reports:
        profile = report.profile
        if profile is None or not profile.top_functions:
            continue
        console.print()
        console.print(
            f"[bold]Profile: {escape(report.scenario)}[/bold] "
            f"[dim]JS {profile.execution_efficiency.js_execution_percentage:.1f}% "
            f"idle {profile.execution_efficiency.idle_time_percentage:.1f}% "
            f"third-party {profile.third_party_impact.percentage:.1f}%[/dim]"
        )
        for i, func in enumerate(profile.top_functions[:5], 1):
            console.print(
                f"  {i}. {escape(func.name)} {func.time:.1f} ms ({func.percentage:.1f}%)  "
                f"[dim]{escape(func.source)}:{func.line}[/dim]"
            )


def render_violations(result: BatchResult, console: Console) -> None:
    violations = result.summary.budget_violations
    if not violations:
        return
    console.print()
    console.print("[bold red]Budget violations[/bold red]")
    for violation in violations:
        console.print(f"  ✗ {escape(violation)}")


def render_result(result: BatchResult, console: Console) -> None:
    render_headline(result, console)
    render_scenarios(result, console)
    render_profiles(result, console)
    render_violations(result, console)


def output_json(result: BatchResult) -> None:
    """Write the batch result as pure JSON to stdout."""
    sys.stdout.write(dump_batch(result))
    sys.stdout.write("\n")
