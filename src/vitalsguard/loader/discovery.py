"""Recursive discovery of scenario files under a directory."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

SCENARIO_SUFFIXES: tuple[str, ...] = (".scenario.yaml", ".scenario.yml", ".scenario.json")


def is_scenario_file(path: Path) -> bool:
    return path.name.endswith(SCENARIO_SUFFIXES)


def find_scenario_files(root: Path) -> list[Path]:
    """Return every scenario file below root, sorted.

    A root that is itself a scenario file is returned alone. A missing
    root yields an empty list; directories that cannot be read are
    skipped with a warning.
    """
    if root.is_file():
        return [root] if is_scenario_file(root) else []
    if not root.is_dir():
        logger.debug("Scenario directory %s does not exist", root)
        return []

    def _on_error(err: OSError) -> None:
        logger.warning("Skipping unreadable directory %s: %s", err.filename, err.strerror)

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        found.extend(Path(dirpath) / name for name in filenames if name.endswith(SCENARIO_SUFFIXES))
    return sorted(found)
