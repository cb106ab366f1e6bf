"""vitalsguard CLI entry point."""

import typer

from vitalsguard import __version__
from vitalsguard.cli.report_cmd import report as report_cmd
from vitalsguard.cli.run_cmd import run
from vitalsguard.cli.validate_cmd import validate

app = typer.Typer(
    name="vitalsguard",
    help="Core Web Vitals budgets for scripted browser scenarios",
    no_args_is_help=True,
)

app.command(name="report")(report_cmd)
app.command()(run)
app.command()(validate)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"vitalsguard {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Measure Core Web Vitals for scripted scenarios and enforce budgets."""
