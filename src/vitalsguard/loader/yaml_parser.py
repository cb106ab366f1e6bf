"""Scenario file parser with source positions for error reporting.

Scenario files are YAML or JSON (JSON is parsed as YAML). The custom
PyYAML loader records the line and column of every mapping key and
sequence item under its dotted path (``steps.2.selector``,
``steps.2``) so validation errors can point
at the offending spot in the user's file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

LineMap = dict[str, tuple[int, int]]


class YAMLParseError(Exception):
    """Raised when a scenario file is not syntactically valid YAML/JSON.

    Attributes:
        line: 1-indexed line number where the error occurred.
        column: 1-indexed column number where the error occurred.
        message: Human-readable description of the syntax error.
        filename: Name of the file being parsed, or '<string>'.
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        filename: str = "<string>",
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename
        super().__init__(message)


class PositionTrackingLoader(yaml.SafeLoader):
    """SafeLoader that records the position of every key it constructs."""

    def __init__(self, stream: str) -> None:
        super().__init__(stream)
        self.line_map: LineMap = {}
        self._path: list[str] = []

    def _record(self, key: str, node: yaml.Node) -> None:
        if node.start_mark is None:
            return
        dotted = ".".join([*self._path, key])
        self.line_map[dotted] = (node.start_mark.line + 1, node.start_mark.column + 1)

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[str, Any]:
        self.flatten_mapping(node)
        result: dict[Any, Any] = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if not isinstance(key, str):
                result[key] = self.construct_object(value_node, deep=deep)
                continue
            self._record(key, key_node)
            self._path.append(key)
            try:
                result[key] = self.construct_object(value_node, deep=deep)
            finally:
                self._path.pop()
        return result

    def construct_sequence(self, node: yaml.SequenceNode, deep: bool = False) -> list[Any]:
        items = []
        for index, child in enumerate(node.value):
            self._record(str(index), child)
            self._path.append(str(index))
            try:
                items.append(self.construct_object(child, deep=deep))
            finally:
                self._path.pop()
        return items

    def construct_tracked_map(self, node: yaml.MappingNode) -> Any:
        yield self.construct_mapping(node, deep=True)

    def construct_tracked_seq(self, node: yaml.SequenceNode) -> Any:
        yield self.construct_sequence(node, deep=True)


PositionTrackingLoader.add_constructor(
    "tag:yaml.org,2002:map", PositionTrackingLoader.construct_tracked_map
)
PositionTrackingLoader.add_constructor(
    "tag:yaml.org,2002:seq", PositionTrackingLoader.construct_tracked_seq
)


def parse_yaml_with_lines(source: str, filename: str = "<string>") -> tuple[dict | None, LineMap]:
    """Parse scenario source text and return ``(data, line_map)``.

    Returns ``(None, {})`` for empty documents and for documents whose
    top level is not a mapping.

    Raises:
        YAMLParseError: If the text contains syntax errors.
    """
    loader = PositionTrackingLoader(source)
    try:
        data = loader.get_single_data()
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        raise YAMLParseError(
            message=str(e),
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
            filename=filename,
        ) from e
    finally:
        loader.dispose()

    if not isinstance(data, dict):
        return None, {}
    return data, loader.line_map


def parse_yaml_file(filepath: Path) -> tuple[dict | None, LineMap]:
    """Read and parse a scenario file.

    Raises:
        YAMLParseError: If the file contains syntax errors or is not UTF-8.
        FileNotFoundError: If the file does not exist.
    """
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise YAMLParseError(f"File is not valid UTF-8: {e.reason} at byte {e.start}", filename=str(filepath)) from e
    return parse_yaml_with_lines(content, filename=str(filepath))
