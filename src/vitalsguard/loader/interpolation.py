"""Template-variable interpolation for scenario files.

``${name}`` references inside string values are replaced from a
variable map. Global variables from the run configuration are
overridden by the scenario's own ``variables`` block. References to
unknown names are left verbatim and logged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")


def merge_variables(
    global_variables: Mapping[str, Any] | None,
    scenario_variables: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Combine variable maps, scenario values winning per key."""
    merged: dict[str, Any] = dict(global_variables or {})
    merged.update(scenario_variables or {})
    return merged


def interpolate_variables(text: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``${name}`` in text with its value from variables."""

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        if name not in variables:
            logger.warning("Undefined scenario variable '%s' left as-is", name)
            return match.group(0)
        return str(variables[name])

    return VARIABLE_PATTERN.sub(_substitute, text)


def interpolate_object(value: Any, variables: Mapping[str, Any]) -> Any:
    """Recursively interpolate strings inside dicts and lists.

    Non-string scalars are returned unchanged. A string that is exactly
    one reference to a non-string variable keeps that variable's type,
    so ``timeout: ${slow}`` with ``slow: 5000`` yields an int.
    """
    if isinstance(value, str):
        whole = VARIABLE_PATTERN.fullmatch(value)
        if whole is not None:
            name = whole.group(1).strip()
            if name in variables and not isinstance(variables[name], str):
                return variables[name]
        return interpolate_variables(value, variables)
    if isinstance(value, dict):
        return {key: interpolate_object(item, variables) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate_object(item, variables) for item in value]
    return value
