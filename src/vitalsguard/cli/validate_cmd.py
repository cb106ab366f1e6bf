"""vitalsguard validate -- check scenario files without running a browser.

Validates scenario files against the scenario schema, reporting all
errors at once with annotated or CI-friendly formatting.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from vitalsguard.execution.batch import resolve_scenarios_dir
from vitalsguard.loader.discovery import find_scenario_files
from vitalsguard.loader.errors import ErrorFormatter
from vitalsguard.loader.validator import validate_scenario_file
from vitalsguard.models.config import find_project_root, load_run_config


def validate(
    scenarios: Optional[list[str]] = typer.Argument(
        None, help="Scenario files to validate (default: all under scenarios_dir)"
    ),
    ci: bool = typer.Option(False, "--ci", help="CI-friendly concise output"),
) -> None:
    """Validate scenario files.

    Checks syntax, template variables and the scenario schema. Exits with
    code 0 if all files are valid, 1 if any has errors, 2 if none found.
    """
    project_root = find_project_root()
    config = load_run_config(project_root)
    formatter = ErrorFormatter(ci_mode=ci or config.ci_mode or None)

    files: list[Path] = []
    if scenarios:
        for s in scenarios:
            p = Path(s)
            if not p.is_file():
                reason = "Not a file" if p.exists() else "File not found"
                typer.echo(f"Error: {reason}: {s}", err=True)
                raise typer.Exit(code=1)
            files.append(p)
    else:
        files = find_scenario_files(resolve_scenarios_dir(config, project_root))
        if not files:
            typer.echo(
                f"No scenario files found under {config.scenarios_dir}/. "
                "Scenario files end in .scenario.yaml, .scenario.yml or .scenario.json."
            )
            raise typer.Exit(code=2)

    error_count = 0
    for filepath in files:
        scenario, errors = validate_scenario_file(filepath, config.variables)
        if errors:
            error_count += 1
            source = filepath.read_text(encoding="utf-8", errors="replace")
            typer.echo(formatter.format_all(errors, source, str(filepath)), err=not formatter.ci_mode)
        else:
            formatter.print_success(str(filepath))

    typer.echo(f"\n{len(files) - error_count}/{len(files)} scenarios valid")

    if error_count > 0:
        raise typer.Exit(code=1)
