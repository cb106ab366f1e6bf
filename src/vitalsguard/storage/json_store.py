"""JSON file storage for vitalsguard batch results.

Stores BatchResult objects as JSON files under .vitalsguard/runs/ with an
index file mapping scenario names to the runs that measured them, and a
``latest`` pointer to the most recent run. Writes are atomic.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from vitalsguard.models.report import BatchResult

LATEST_LINK = "latest"
LATEST_FALLBACK = ".latest"


def new_run_id(now: datetime | None = None) -> str:
    """Run IDs sort chronologically: UTC timestamp plus a random suffix."""
    now = now or datetime.now(timezone.utc)
    return f"{now:%Y%m%dT%H%M%S}-{uuid4().hex[:8]}"


def _atomic_write(path: Path, content: str) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(content, encoding="utf-8")
    tmp_path.replace(path)


def dump_batch(result: BatchResult) -> str:
    """Serialize a batch result with its published camelCase keys."""
    return result.model_dump_json(by_alias=True, indent=2)


def write_batch(result: BatchResult, path: Path) -> None:
    """Write a batch result to an arbitrary path (e.g. a CI artefact)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write(path, dump_batch(result))


class ResultStore:
    """Persist and query BatchResult objects as JSON files in .vitalsguard/.

    File layout:
        .vitalsguard/
            runs/
                {run-id}.json    # One batch result per run
                latest           # Symlink to the newest run (or .latest text file)
            index.json           # Scenario name -> [run IDs]
    """

    def __init__(self, project_root: Path, storage_dir: str | None = None) -> None:
        self.root_dir = project_root / (storage_dir or ".vitalsguard")
        self.runs_dir = self.root_dir / "runs"
        self.index_path = self.root_dir / "index.json"

    def ensure_dirs(self) -> None:
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def save_batch(self, result: BatchResult) -> str:
        """Save a batch result, index it by scenario and mark it latest.

        Returns:
            The run ID (the result's own, or a newly generated one).
        """
        self.ensure_dirs()
        run_id = result.run_id or new_run_id()
        if not result.run_id:
            result = result.model_copy(update={"run_id": run_id})

        _atomic_write(self.runs_dir / f"{run_id}.json", dump_batch(result))
        self._update_index([report.scenario for report in result.reports], run_id)
        self.update_latest_symlink(run_id)
        return run_id

    def load_batch(self, run_id: str) -> BatchResult:
        """Load a stored batch result.

        Raises:
            FileNotFoundError: If no run with that ID exists.
        """
        content = (self.runs_dir / f"{run_id}.json").read_text(encoding="utf-8")
        return BatchResult.model_validate_json(content)

    def list_runs(self, scenario_name: str | None = None) -> list[str]:
        """List run IDs, oldest first, optionally only those measuring a scenario."""
        if scenario_name is not None:
            return self._load_index().get(scenario_name, [])
        if not self.runs_dir.exists():
            return []
        return sorted(f.stem for f in self.runs_dir.glob("*.json"))

    def update_latest_symlink(self, run_id: str) -> None:
        """Point ``latest`` at run_id, falling back to a text file without symlinks."""
        self.ensure_dirs()
        link_path = self.runs_dir / LATEST_LINK
        tmp_link = self.runs_dir / f".latest_tmp_{run_id}"
        try:
            if tmp_link.exists() or tmp_link.is_symlink():
                tmp_link.unlink()
            os.symlink(f"{run_id}.json", tmp_link)
            os.replace(tmp_link, link_path)
        except OSError:
            (self.runs_dir / LATEST_FALLBACK).write_text(run_id, encoding="utf-8")

    def latest_run_id(self) -> str | None:
        link_path = self.runs_dir / LATEST_LINK
        fallback_path = self.runs_dir / LATEST_FALLBACK
        if link_path.is_symlink():
            return os.readlink(link_path).removesuffix(".json")
        if fallback_path.exists():
            return fallback_path.read_text(encoding="utf-8").strip() or None
        return None

    def load_latest(self) -> BatchResult | None:
        """Load the most recent batch result, or None when nothing is stored."""
        run_id = self.latest_run_id()
        if run_id is None:
            return None
        try:
            return self.load_batch(run_id)
        except FileNotFoundError:
            return None

    def _load_index(self) -> dict[str, list[str]]:
        if self.index_path.exists():
            return json.loads(self.index_path.read_text(encoding="utf-8"))
        return {}

    def _update_index(self, scenario_names: list[str], run_id: str) -> None:
        index = self._load_index()
        for name in dict.fromkeys(scenario_names):
            index.setdefault(name, []).append(run_id)
        _atomic_write(self.index_path, json.dumps(index, indent=2, ensure_ascii=False))
