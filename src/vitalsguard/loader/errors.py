"""Scenario error formatter with human and CI output modes.

Human mode prints an annotated excerpt of the scenario file with a
marker under the offending key. CI mode prints one
``file:line:col -- field: message`` line per error.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vitalsguard.loader.validator import ValidationErrorDetail


# Pydantic error types grouped under stable codes
ERROR_CODES: dict[str, str] = {
    "extra_forbidden": "E001",
    "missing": "E002",
    "union_tag_not_found": "E002",
    "value_error": "E003",
    "string_too_short": "E003",
    "greater_than": "E003",
    "greater_than_equal": "E003",
    "string_type": "E004",
    "int_type": "E004",
    "int_parsing": "E004",
    "float_type": "E004",
    "float_parsing": "E004",
    "bool_type": "E004",
    "bool_parsing": "E004",
    "dict_type": "E004",
    "list_type": "E004",
    "model_type": "E004",
    "literal_error": "E005",
    "union_tag_invalid": "E005",
    "yaml_syntax_error": "E006",
    "empty_file": "E007",
    "empty_input": "E007",
    "read_error": "E008",
}

ERROR_DESCRIPTIONS: dict[str, str] = {
    "E001": "unknown field",
    "E002": "required field missing",
    "E003": "invalid value",
    "E004": "type mismatch",
    "E005": "unknown step type",
    "E006": "syntax error",
    "E007": "empty scenario",
    "E008": "unreadable file",
}


def error_code(error_type: str) -> str:
    """Map a pydantic error type to its code, E999 when unrecognised."""
    if error_type in ERROR_CODES:
        return ERROR_CODES[error_type]
    for key, code in ERROR_CODES.items():
        if key in error_type:
            return code
    return "E999"


class ErrorFormatter:
    """Formats scenario validation errors for people or CI logs.

    Args:
        ci_mode: Use concise one-line output. When None, auto-detected
            from the ``CI`` environment variable.
    """

    def __init__(self, ci_mode: bool | None = None) -> None:
        if ci_mode is None:
            ci_mode = os.environ.get("CI", "").lower() in ("true", "1", "yes")
        self.ci_mode = ci_mode

    def format_error(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        if self.ci_mode:
            return self._format_ci(error, filename)
        return self._format_annotated(error, source_lines, filename)

    def _format_ci(self, error: ValidationErrorDetail, filename: str) -> str:
        hint = f" ({error.suggestion})" if error.suggestion else ""
        return f"{filename}:{error.line or 0}:{error.col or 0} -- {error.field}: {error.message}{hint}"

    def _format_annotated(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        """Render an error as a file excerpt with a marker.

        Produces output like::

            error[E001]: unknown field
              --> home.scenario.yaml:4:5
               |
             4 |   - tipe: click
               |     ^^^^ Extra inputs are not permitted
               |
               = help: Did you mean 'type'?
        """
        code = error_code(error.type)
        out = [f"error[{code}]: {ERROR_DESCRIPTIONS.get(code, 'validation error')}"]

        if error.line is None:
            out += [f"  --> {filename}", "   |", f"   | {error.field}: {error.message}", "   |"]
        else:
            out += [f"  --> {filename}:{error.line}:{error.col or 1}", "   |"]
            index = error.line - 1
            if 0 <= index < len(source_lines):
                text = source_lines[index].rstrip()
                number = str(error.line)
                gutter = " " * len(number)
                out.append(f" {number} | {text}")
                key = error.field.rsplit(".", 1)[-1]
                start = text.find(key)
                if start >= 0 and not key.isdigit():
                    out.append(f" {gutter} | {' ' * start}{'^' * len(key)} {error.message}")
                else:
                    out.append(f" {gutter} | {error.message}")
            else:
                out.append(f"   | {error.message}")
            out.append("   |")

        if error.suggestion:
            out.append(f"   = help: {error.suggestion}")
        return "\n".join(out)

    def format_all(
        self,
        errors: list[ValidationErrorDetail],
        source: str,
        filename: str,
    ) -> str:
        """Format every error, separated by blank lines."""
        lines = source.splitlines()
        return "\n\n".join(self.format_error(e, lines, filename) for e in errors)

    def print_errors(
        self,
        errors: list[ValidationErrorDetail],
        source: str,
        filename: str,
    ) -> None:
        print(self.format_all(errors, source, filename), file=sys.stderr)

    def print_success(self, filename: str) -> None:
        print(f"  {filename} ... valid")
