"""vitalsguard scenario loader - discovery, parsing, interpolation, validation."""

from vitalsguard.loader.discovery import find_scenario_files
from vitalsguard.loader.interpolation import (
    interpolate_object,
    interpolate_variables,
    merge_variables,
)
from vitalsguard.loader.validator import (
    ScenarioLoadError,
    ValidationErrorDetail,
    load_scenario_file,
    validate_scenario_file,
    validate_scenario_string,
)
from vitalsguard.loader.yaml_parser import (
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)

__all__ = [
    "ScenarioLoadError",
    "ValidationErrorDetail",
    "YAMLParseError",
    "find_scenario_files",
    "interpolate_object",
    "interpolate_variables",
    "load_scenario_file",
    "merge_variables",
    "parse_yaml_file",
    "parse_yaml_with_lines",
    "validate_scenario_file",
    "validate_scenario_string",
]
