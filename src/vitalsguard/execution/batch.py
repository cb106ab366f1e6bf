"""BatchRunner: runs every scenario once, isolating failures.

Scenarios run sequentially, one browser context at a time. A scenario
that raises (invalid file, failed step, crashed page) is logged and
counted as failed; the batch carries on. Budgets are evaluated once all
scenarios have run. Finding no scenarios at all is the only condition
that aborts the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path

from playwright.async_api import async_playwright

from vitalsguard.evaluation.budget import check_budget_violations
from vitalsguard.execution.orchestrator import ScenarioOrchestrator
from vitalsguard.loader.discovery import find_scenario_files
from vitalsguard.loader.validator import load_scenario_file
from vitalsguard.models.budget import merge_budgets
from vitalsguard.models.config import RunConfig
from vitalsguard.models.report import BatchResult, RunSummary, ScenarioReport
from vitalsguard.models.scenario import Scenario
from vitalsguard.storage.json_store import new_run_id

logger = logging.getLogger(__name__)

ScenarioSource = Scenario | Path

# progress_callback(position, total, scenario_name, succeeded)
ProgressCallback = Callable[[int, int, str, bool], None]


class NoScenariosFoundError(Exception):
    """Raised when a batch has no scenarios to run.

    Attributes:
        location: Where scenarios were looked for, if known.
    """

    def __init__(self, location: Path | None = None) -> None:
        self.location = location
        where = f" in {location}" if location is not None else ""
        super().__init__(f"No scenario files found{where}")


def _source_name(source: ScenarioSource) -> str:
    return source.name if isinstance(source, Scenario) else str(source)


class BatchRunner:
    """Runs scenarios through an orchestrator and summarizes the batch.

    Args:
        orchestrator: Runs a single scenario and returns its report.
        config: Supplies global budgets and template variables.
    """

    def __init__(self, orchestrator: ScenarioOrchestrator, config: RunConfig | None = None) -> None:
        self.orchestrator = orchestrator
        self.config = config or RunConfig()

    def _load(self, source: ScenarioSource) -> Scenario:
        if isinstance(source, Scenario):
            return source
        return load_scenario_file(source, self.config.variables)

    async def run(
        self,
        sources: Sequence[ScenarioSource],
        progress_callback: ProgressCallback | None = None,
    ) -> BatchResult:
        """Run each scenario once and build the batch result.

        Args:
            sources: Scenario objects or scenario file paths.
            progress_callback: Called after every scenario finishes.

        Raises:
            NoScenariosFoundError: If sources is empty.
        """
        if not sources:
            raise NoScenariosFoundError()

        started_at = datetime.now(timezone.utc)
        completed: list[tuple[Scenario, ScenarioReport]] = []
        total = len(sources)

        for position, source in enumerate(sources, start=1):
            name = _source_name(source)
            try:
                scenario = self._load(source)
                name = scenario.name
                report = await self.orchestrator.run(scenario)
            except Exception as e:
                logger.error(
                    "Scenario %s failed: %s",
                    name,
                    e,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
                if progress_callback is not None:
                    progress_callback(position, total, name, False)
                continue

            completed.append((scenario, report))
            if progress_callback is not None:
                progress_callback(position, total, name, True)

        violations: list[str] = []
        for scenario, report in completed:
            budgets = merge_budgets(self.config.budgets, scenario.budgets)
            violations.extend(
                f"{scenario.name}: {message}"
                for message in check_budget_violations(report.metrics, budgets)
            )

        return BatchResult(
            run_id=new_run_id(started_at),
            started_at=started_at,
            reports=[report for _, report in completed],
            summary=RunSummary(
                total_scenarios=total,
                passed=len(completed),
                failed=total - len(completed),
                budget_violations=violations,
            ),
        )


def resolve_scenarios_dir(config: RunConfig, project_root: Path) -> Path:
    scenarios_dir = Path(config.scenarios_dir)
    return scenarios_dir if scenarios_dir.is_absolute() else project_root / scenarios_dir


async def run_guardian(
    config: RunConfig,
    project_root: Path,
    progress_callback: ProgressCallback | None = None,
) -> BatchResult:
    """Discover scenario files, launch Chromium and run the batch.

    Raises:
        NoScenariosFoundError: If discovery finds no scenario files. The
            browser is not launched in that case.
    """
    scenarios_dir = resolve_scenarios_dir(config, project_root)
    files = find_scenario_files(scenarios_dir)
    if not files:
        raise NoScenariosFoundError(scenarios_dir)
    logger.info("Found %d scenario file(s) in %s", len(files), scenarios_dir)

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless)
        try:
            orchestrator = ScenarioOrchestrator(browser, config)
            return await BatchRunner(orchestrator, config).run(files, progress_callback)
        finally:
            await browser.close()
