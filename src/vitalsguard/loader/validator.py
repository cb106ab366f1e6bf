"""Scenario validation pipeline combining YAML parsing with Pydantic validation.

Two-stage validation: first parse the file with position tracking, then
interpolate template variables and validate against the Scenario model.
Errors from both stages are enriched with source positions and collected
so a user sees every problem in a file at once.
"""

from __future__ import annotations

import difflib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from vitalsguard.loader.interpolation import interpolate_object, merge_variables
from vitalsguard.loader.yaml_parser import (
    LineMap,
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)
from vitalsguard.models.budget import METRIC_NAMES
from vitalsguard.models.scenario import (
    STEP_TYPES,
    ClickStep,
    HoverStep,
    NavigateStep,
    Scenario,
    ScrollStep,
    TypeStep,
    WaitStep,
)

VALID_SCENARIO_FIELDS: list[str] = list(Scenario.model_fields.keys())

_STEP_MODELS = {
    "navigate": NavigateStep,
    "click": ClickStep,
    "type": TypeStep,
    "wait": WaitStep,
    "scroll": ScrollStep,
    "hover": HoverStep,
}


@dataclass
class ValidationErrorDetail:
    """A single validation error with source position and context.

    Attributes:
        field: The field name or dotted path that caused the error.
        message: Human-readable error description.
        type: Pydantic error type string (e.g. 'missing', 'extra_forbidden').
        line: 1-indexed line number in the source file, or None if unknown.
        col: 1-indexed column number in the source file, or None if unknown.
        suggestion: 'Did you mean X?' suggestion for typos, or None.
        input_value: The invalid input value, if available.
    """

    field: str
    message: str
    type: str
    line: int | None = None
    col: int | None = None
    suggestion: str | None = None
    input_value: Any = field(default=None)


class ScenarioLoadError(Exception):
    """Raised when a scenario file cannot be turned into a Scenario.

    Attributes:
        path: The offending scenario file.
        errors: Every validation problem found in the file.
    """

    def __init__(self, path: Path, errors: list[ValidationErrorDetail]) -> None:
        self.path = path
        self.errors = errors
        summary = "; ".join(f"{e.field}: {e.message}" for e in errors[:3])
        if len(errors) > 3:
            summary += f" (+{len(errors) - 3} more)"
        super().__init__(f"Invalid scenario file {path}: {summary}")


def _field_path(loc: tuple[str | int, ...]) -> str:
    """Dotted path for an error location, minus the union tag segment.

    Pydantic reports step errors as ``steps.0.click.selector``; the
    ``click`` segment is the union member, not a key in the file.
    """
    parts = list(loc)
    if len(parts) >= 3 and parts[0] == "steps" and parts[2] in STEP_TYPES:
        del parts[2]
    return ".".join(str(part) for part in parts)


def _find_position(field_path: str, line_map: LineMap) -> tuple[int | None, int | None]:
    """Look up the position of a path, falling back to its closest parent."""
    parts = field_path.split(".")
    while parts:
        prefix = ".".join(parts)
        if prefix in line_map:
            return line_map[prefix]
        parts.pop()
    return None, None


def _candidates_for(loc: tuple[str | int, ...]) -> list[str]:
    if loc and loc[0] == "budgets":
        return list(METRIC_NAMES)
    if len(loc) >= 4 and loc[0] == "steps" and loc[2] in _STEP_MODELS:
        model = _STEP_MODELS[str(loc[2])]
        return [info.alias or name for name, info in model.model_fields.items()]
    return VALID_SCENARIO_FIELDS


def _get_suggestion(loc: tuple[str | int, ...]) -> str | None:
    """Get a 'did you mean?' suggestion for a mistyped field name."""
    if not loc:
        return None
    matches = difflib.get_close_matches(str(loc[-1]), _candidates_for(loc), n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return None


def _interpolate(raw_data: dict[str, Any], variables: Mapping[str, Any] | None) -> dict[str, Any]:
    own = raw_data.get("variables")
    merged = merge_variables(variables, own if isinstance(own, dict) else None)
    return {
        key: value if key == "variables" else interpolate_object(value, merged)
        for key, value in raw_data.items()
    }


def validate_scenario(
    raw_data: dict[str, Any],
    line_map: LineMap,
    variables: Mapping[str, Any] | None = None,
) -> tuple[Scenario | None, list[ValidationErrorDetail]]:
    """Interpolate and validate parsed scenario data.

    Args:
        raw_data: Parsed scenario mapping.
        line_map: Mapping of dotted key paths to (line, col) positions.
        variables: Global template variables; the scenario's own
            ``variables`` block overrides them.

    Returns:
        Tuple of (Scenario, []) on success, or (None, errors) on failure.
    """
    try:
        return Scenario.model_validate(_interpolate(raw_data, variables)), []
    except ValidationError as e:
        errors: list[ValidationErrorDetail] = []
        for err in e.errors():
            loc = err.get("loc", ())
            field_path = _field_path(loc)
            error_type = err.get("type", "unknown")
            line, col = _find_position(field_path, line_map)

            suggestion = None
            if error_type == "extra_forbidden":
                suggestion = _get_suggestion(loc)

            errors.append(
                ValidationErrorDetail(
                    field=field_path or "<root>",
                    message=err.get("msg", "Validation error"),
                    type=error_type,
                    line=line,
                    col=col,
                    suggestion=suggestion,
                    input_value=err.get("input"),
                )
            )
        return None, errors


def _syntax_error(e: YAMLParseError) -> ValidationErrorDetail:
    return ValidationErrorDetail(
        field="<yaml>",
        message=e.message,
        type="yaml_syntax_error",
        line=e.line,
        col=e.column,
    )


def validate_scenario_file(
    filepath: Path,
    variables: Mapping[str, Any] | None = None,
) -> tuple[Scenario | None, list[ValidationErrorDetail]]:
    """Validate a scenario file, returning all errors at once."""
    try:
        raw_data, line_map = parse_yaml_file(filepath)
    except YAMLParseError as e:
        return None, [_syntax_error(e)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="File is empty or does not contain a mapping",
                type="empty_file",
            )
        ]
    return validate_scenario(raw_data, line_map, variables)


def validate_scenario_string(
    source: str,
    filename: str = "<string>",
    variables: Mapping[str, Any] | None = None,
) -> tuple[Scenario | None, list[ValidationErrorDetail]]:
    """Validate a scenario given as YAML or JSON text."""
    try:
        raw_data, line_map = parse_yaml_with_lines(source, filename=filename)
    except YAMLParseError as e:
        return None, [_syntax_error(e)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="Input is empty or does not contain a mapping",
                type="empty_input",
            )
        ]
    return validate_scenario(raw_data, line_map, variables)


def load_scenario_file(
    filepath: Path,
    variables: Mapping[str, Any] | None = None,
) -> Scenario:
    """Load a scenario file or raise with every problem found.

    Raises:
        ScenarioLoadError: If the file is unreadable, malformed or invalid.
    """
    try:
        scenario, errors = validate_scenario_file(filepath, variables)
    except OSError as e:
        raise ScenarioLoadError(
            filepath,
            [ValidationErrorDetail(field="<file>", message=str(e), type="read_error")],
        ) from e
    if scenario is None:
        raise ScenarioLoadError(filepath, errors)
    return scenario
