"""Tests for BatchRunner failure isolation, budgets and discovery."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vitalsguard.execution.batch import (
    BatchRunner,
    NoScenariosFoundError,
    resolve_scenarios_dir,
    run_guardian,
)
from vitalsguard.execution.steps import StepExecutionError
from vitalsguard.models.config import RunConfig
from vitalsguard.models.report import ScenarioReport, VitalsMetricSet
from vitalsguard.models.scenario import Scenario


def _make_scenario(name: str, **kwargs: Any) -> Scenario:
    return Scenario.model_validate({"name": name, "url": f"https://example.com/{name}", **kwargs})


def _make_report(name: str, **metrics: float) -> ScenarioReport:
    return ScenarioReport(
        scenario=name,
        url=f"https://example.com/{name}",
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        metrics=VitalsMetricSet.model_validate(metrics),
    )


def _make_orchestrator(*outcomes: Any) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(side_effect=list(outcomes))
    return orchestrator


class TestBatchRunner:
    @pytest.mark.asyncio
    async def test_failed_scenario_does_not_stop_the_batch(self):
        orchestrator = _make_orchestrator(
            _make_report("a"),
            StepExecutionError(0, "click", "element not found"),
            _make_report("c"),
        )
        scenarios = [_make_scenario("a"), _make_scenario("b"), _make_scenario("c")]

        result = await BatchRunner(orchestrator).run(scenarios)

        assert [r.scenario for r in result.reports] == ["a", "c"]
        assert result.summary.total_scenarios == 3
        assert result.summary.passed == 2
        assert result.summary.failed == 1
        assert orchestrator.run.await_count == 3

    @pytest.mark.asyncio
    async def test_global_budget_violation(self):
        config = RunConfig.model_validate({"budgets": {"FCP": 1800}})
        orchestrator = _make_orchestrator(_make_report("home", FCP=2000))

        result = await BatchRunner(orchestrator, config).run([_make_scenario("home")])

        assert result.summary.budget_violations == ["home: FCP: 2000ms > 1800ms"]
        assert not result.summary.ok

    @pytest.mark.asyncio
    async def test_scenario_budget_overrides_global(self):
        config = RunConfig.model_validate({"budgets": {"FCP": 1800}})
        orchestrator = _make_orchestrator(_make_report("home", FCP=2000))
        scenario = _make_scenario("home", budgets={"FCP": 2500})

        result = await BatchRunner(orchestrator, config).run([scenario])

        assert result.summary.budget_violations == []
        assert result.summary.ok

    @pytest.mark.asyncio
    async def test_failed_scenarios_have_no_violations(self):
        config = RunConfig.model_validate({"budgets": {"FCP": 1}})
        orchestrator = _make_orchestrator(RuntimeError("page crashed"))
        result = await BatchRunner(orchestrator, config).run([_make_scenario("a")])
        assert result.summary.budget_violations == []
        assert result.summary.failed == 1

    @pytest.mark.asyncio
    async def test_empty_batch_raises(self):
        with pytest.raises(NoScenariosFoundError):
            await BatchRunner(_make_orchestrator()).run([])

    @pytest.mark.asyncio
    async def test_progress_callback(self):
        orchestrator = _make_orchestrator(RuntimeError("boom"), _make_report("b"))
        calls: list[tuple] = []

        await BatchRunner(orchestrator).run(
            [_make_scenario("a"), _make_scenario("b")],
            progress_callback=lambda *args: calls.append(args),
        )

        assert calls == [(1, 2, "a", False), (2, 2, "b", True)]

    @pytest.mark.asyncio
    async def test_loads_files_with_global_variables(self, tmp_path: Path):
        path = tmp_path / "home.scenario.yaml"
        path.write_text("name: home\nurl: ${base}/\n", encoding="utf-8")
        config = RunConfig(variables={"base": "https://staging.test"})
        orchestrator = _make_orchestrator(_make_report("home"))

        await BatchRunner(orchestrator, config).run([path])

        scenario = orchestrator.run.await_args.args[0]
        assert scenario.url == "https://staging.test/"

    @pytest.mark.asyncio
    async def test_invalid_file_counts_as_failed(self, tmp_path: Path):
        bad = tmp_path / "bad.scenario.yaml"
        bad.write_text("name: bad\nsteps:\n  - type: navigate\n", encoding="utf-8")
        orchestrator = _make_orchestrator(_make_report("good"))

        result = await BatchRunner(orchestrator).run([bad, _make_scenario("good")])

        assert result.summary.failed == 1
        assert result.summary.passed == 1
        assert orchestrator.run.await_count == 1

    @pytest.mark.asyncio
    async def test_result_has_run_id(self):
        result = await BatchRunner(_make_orchestrator(_make_report("a"))).run([_make_scenario("a")])
        assert result.run_id
        assert result.started_at is not None


class TestRunGuardian:
    def test_resolve_scenarios_dir(self, tmp_path: Path):
        assert resolve_scenarios_dir(RunConfig(), tmp_path) == tmp_path / "scenarios"
        absolute = tmp_path / "elsewhere"
        assert resolve_scenarios_dir(RunConfig(scenarios_dir=str(absolute)), tmp_path) == absolute

    @pytest.mark.asyncio
    async def test_no_scenarios_never_launches_browser(self, tmp_path: Path):
        (tmp_path / "scenarios").mkdir()
        with patch("vitalsguard.execution.batch.async_playwright") as mock_playwright:
            with pytest.raises(NoScenariosFoundError) as exc_info:
                await run_guardian(RunConfig(), tmp_path)
        mock_playwright.assert_not_called()
        assert exc_info.value.location == tmp_path / "scenarios"

    @pytest.mark.asyncio
    async def test_launches_chromium_and_closes_it(self, tmp_path: Path):
        scenarios = tmp_path / "scenarios"
        scenarios.mkdir()
        (scenarios / "home.scenario.yaml").write_text("name: home\nurl: https://example.com\n")

        browser = MagicMock()
        browser.close = AsyncMock()
        playwright = MagicMock()
        playwright.chromium.launch = AsyncMock(return_value=browser)
        manager = MagicMock()
        manager.__aenter__ = AsyncMock(return_value=playwright)
        manager.__aexit__ = AsyncMock(return_value=False)

        with (
            patch("vitalsguard.execution.batch.async_playwright", return_value=manager),
            patch("vitalsguard.execution.batch.ScenarioOrchestrator") as mock_orchestrator,
        ):
            mock_orchestrator.return_value.run = AsyncMock(return_value=_make_report("home"))
            result = await run_guardian(RunConfig(headless=False), tmp_path)

        playwright.chromium.launch.assert_awaited_once_with(headless=False)
        browser.close.assert_awaited_once()
        assert result.summary.passed == 1
