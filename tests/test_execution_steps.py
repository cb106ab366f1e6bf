"""Tests for StepExecutor step dispatch, timeouts and failure handling."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from vitalsguard.execution.steps import (
    INITIAL_NAVIGATION,
    SCROLL_TO_END_SCRIPT,
    StepExecutionError,
    StepExecutor,
)
from vitalsguard.loader.validator import validate_scenario_string
from vitalsguard.models.scenario import (
    ClickStep,
    HoverStep,
    NavigateStep,
    ScrollStep,
    TypeStep,
    WaitStep,
)


def _make_page() -> MagicMock:
    page = MagicMock()
    for method in ("goto", "click", "fill", "wait_for_selector", "wait_for_timeout", "evaluate", "hover"):
        setattr(page, method, AsyncMock())
    return page


class TestDispatch:
    @pytest.mark.asyncio
    async def test_navigate_waits_for_network_idle(self):
        page = _make_page()
        await StepExecutor().execute(page, NavigateStep(url="https://example.com/about"))
        page.goto.assert_awaited_once_with("https://example.com/about", wait_until="networkidle", timeout=30_000)

    @pytest.mark.asyncio
    async def test_click_uses_step_timeout(self):
        page = _make_page()
        await StepExecutor().execute(page, ClickStep(selector="#buy", timeout=5_000))
        page.click.assert_awaited_once_with("#buy", timeout=5_000)

    @pytest.mark.asyncio
    async def test_type_fills_text(self):
        page = _make_page()
        await StepExecutor().execute(page, TypeStep(selector="#q", text="running shoes"))
        page.fill.assert_awaited_once_with("#q", "running shoes", timeout=30_000)

    @pytest.mark.asyncio
    async def test_wait_for_selector(self):
        page = _make_page()
        await StepExecutor().execute(page, WaitStep(wait_for=".results"))
        page.wait_for_selector.assert_awaited_once_with(".results", timeout=30_000)
        page.wait_for_timeout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wait_without_selector_sleeps(self):
        page = _make_page()
        await StepExecutor().execute(page, WaitStep())
        page.wait_for_timeout.assert_awaited_once_with(1_000)

    @pytest.mark.asyncio
    async def test_scroll_to_end(self):
        page = _make_page()
        await StepExecutor().execute(page, ScrollStep())
        page.evaluate.assert_awaited_once_with(SCROLL_TO_END_SCRIPT)

    @pytest.mark.asyncio
    async def test_hover(self):
        page = _make_page()
        await StepExecutor().execute(page, HoverStep(selector="nav .menu"))
        page.hover.assert_awaited_once_with("nav .menu", timeout=30_000)


class TestFailures:
    @pytest.mark.asyncio
    async def test_playwright_error_becomes_step_error(self):
        page = _make_page()
        page.click = AsyncMock(side_effect=PlaywrightError("element not found"))

        with pytest.raises(StepExecutionError) as exc_info:
            await StepExecutor().execute(page, ClickStep(selector="#missing"), index=2)

        err = exc_info.value
        assert err.step_index == 2
        assert err.step_type == "click"
        assert "element not found" in err.reason
        assert str(err).startswith("Step 3 (click) failed")
        assert isinstance(err.__cause__, PlaywrightError)

    @pytest.mark.asyncio
    async def test_hung_step_is_cancelled_at_its_timeout(self):
        page = _make_page()

        async def _hang(*args, **kwargs):
            await asyncio.sleep(10)

        page.hover = AsyncMock(side_effect=_hang)

        with pytest.raises(StepExecutionError, match="timed out after 20 ms"):
            await StepExecutor(timeout_grace_ms=0).execute(page, HoverStep(selector="#x", timeout=20))

    @pytest.mark.asyncio
    async def test_initial_navigation_message(self):
        page = _make_page()
        page.goto = AsyncMock(side_effect=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        with pytest.raises(StepExecutionError, match="Initial navigation failed"):
            await StepExecutor().execute(page, NavigateStep(url="https://nope.invalid"), index=INITIAL_NAVIGATION)

    @pytest.mark.asyncio
    async def test_run_steps_aborts_on_first_failure(self):
        page = _make_page()
        page.click = AsyncMock(side_effect=PlaywrightError("detached"))
        steps = [WaitStep(wait_for="#a"), ClickStep(selector="#b"), HoverStep(selector="#c")]

        with pytest.raises(StepExecutionError) as exc_info:
            await StepExecutor().run_steps(page, steps)

        assert exc_info.value.step_index == 1
        page.wait_for_selector.assert_awaited_once()
        page.hover.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigate_without_url_never_reaches_the_page(self):
        page = _make_page()
        source = "name: broken\nurl: https://example.com\nsteps:\n  - type: navigate\n"

        scenario, errors = validate_scenario_string(source)
        if scenario is not None:
            await StepExecutor().run_steps(page, scenario.steps)

        assert scenario is None
        assert errors[0].field == "steps.0.url"
        page.goto.assert_not_called()
