"""Run configuration model for vitalsguard.

Captures vitalsguard.yaml fields with sensible defaults for run-level
settings like the scenario directory, browser mode, global budgets and
vitals collection options.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from vitalsguard.models.budget import BudgetThresholds

CONFIG_FILENAME = "vitalsguard.yaml"

WEB_VITALS_PACKAGE_URL = "https://unpkg.com/web-vitals@3/dist/web-vitals.attribution.iife.js"


class VitalsOptions(BaseModel):
    """Configuration for in-page vitals collection.

    Controls whether the in-page observers are installed and whether the
    packaged web-vitals script may be loaded when they produce nothing.
    """

    model_config = {"extra": "forbid"}

    use_performance_observer: bool = True
    fallback_to_package: bool = False
    package_url: str = WEB_VITALS_PACKAGE_URL
    fallback_wait_ms: int = Field(default=10_000, ge=0)

    @property
    def package_only(self) -> bool:
        """True when observers are off and only the package supplies metrics."""
        return not self.use_performance_observer and self.fallback_to_package


class RunConfig(BaseModel):
    """Run-level configuration loaded from vitalsguard.yaml."""

    model_config = {"extra": "forbid"}

    scenarios_dir: str = "scenarios"
    headless: bool = True
    timeout_ms: int = Field(default=30_000, gt=0)
    settle_ms: int = Field(default=2_000, ge=0)
    budgets: BudgetThresholds = Field(default_factory=BudgetThresholds)
    vitals: VitalsOptions = Field(default_factory=VitalsOptions)
    profile: bool = False
    variables: dict[str, str | int | float | bool] = Field(default_factory=dict)
    storage_dir: str = ".vitalsguard"
    ci_mode: bool = False


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for vitalsguard.yaml or .vitalsguard/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the directory containing vitalsguard.yaml or .vitalsguard/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists() or (current / ".vitalsguard").exists():
            return current
        current = current.parent
    return Path.cwd()


def load_run_config(project_root: Path | None = None) -> RunConfig:
    """Load RunConfig from vitalsguard.yaml. Returns defaults if not found.

    Raises:
        pydantic.ValidationError: If the file contains unknown keys or
            invalid values.
        yaml.YAMLError: If the file is not valid YAML.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return RunConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return RunConfig()
    return RunConfig.model_validate(raw)
