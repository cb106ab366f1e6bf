"""StepExecutor: runs scripted scenario steps against a live page.

Every step is dispatched on its variant type and bounded by its own
timeout. The timeout is handed to Playwright and also enforced around
the whole dispatch, so a step can never outlive its budget. The first
failing step raises and the remaining steps are not attempted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import assert_never

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from vitalsguard.models.scenario import (
    ClickStep,
    HoverStep,
    NavigateStep,
    ScenarioStep,
    ScrollStep,
    TypeStep,
    WaitStep,
    step_timeout_ms,
)

logger = logging.getLogger(__name__)

SCROLL_TO_END_SCRIPT = "() => window.scrollTo(0, document.body.scrollHeight)"

# Extra time allowed beyond the Playwright timeout before the dispatch is cancelled.
TIMEOUT_GRACE_MS = 1_000

# Step index used for the scenario's own start-URL navigation.
INITIAL_NAVIGATION = -1


class StepExecutionError(Exception):
    """Raised when a step fails or exceeds its timeout.

    Attributes:
        step_index: Zero-based position of the step in the scenario, or
            INITIAL_NAVIGATION for the start-URL load.
        step_type: The step's type tag.
        reason: Human-readable cause.
    """

    def __init__(self, step_index: int, step_type: str, reason: str) -> None:
        self.step_index = step_index
        self.step_type = step_type
        self.reason = reason
        if step_index == INITIAL_NAVIGATION:
            super().__init__(f"Initial navigation failed: {reason}")
        else:
            super().__init__(f"Step {step_index + 1} ({step_type}) failed: {reason}")


class StepExecutor:
    """Executes scenario steps one at a time against a page."""

    def __init__(self, timeout_grace_ms: int = TIMEOUT_GRACE_MS) -> None:
        self._grace_ms = timeout_grace_ms

    async def _dispatch(self, page: Page, step: ScenarioStep, timeout_ms: int) -> None:
        if isinstance(step, NavigateStep):
            await page.goto(step.url, wait_until="networkidle", timeout=timeout_ms)
        elif isinstance(step, ClickStep):
            await page.click(step.selector, timeout=timeout_ms)
        elif isinstance(step, TypeStep):
            await page.fill(step.selector, step.text, timeout=timeout_ms)
        elif isinstance(step, WaitStep):
            if step.wait_for:
                await page.wait_for_selector(step.wait_for, timeout=timeout_ms)
            else:
                await page.wait_for_timeout(step.sleep_ms)
        elif isinstance(step, ScrollStep):
            await page.evaluate(SCROLL_TO_END_SCRIPT)
        elif isinstance(step, HoverStep):
            await page.hover(step.selector, timeout=timeout_ms)
        else:
            assert_never(step)

    async def execute(self, page: Page, step: ScenarioStep, index: int = 0) -> None:
        """Execute a single step.

        Raises:
            StepExecutionError: If Playwright reports an error or the
                step exceeds its timeout.
        """
        timeout_ms = step_timeout_ms(step)
        logger.debug("Step %d: %s", index + 1, step.type)
        try:
            await asyncio.wait_for(
                self._dispatch(page, step, timeout_ms),
                timeout=(timeout_ms + self._grace_ms) / 1000,
            )
        except asyncio.TimeoutError as e:
            raise StepExecutionError(index, step.type, f"timed out after {timeout_ms} ms") from e
        except PlaywrightError as e:
            raise StepExecutionError(index, step.type, e.message) from e

    async def run_steps(self, page: Page, steps: Sequence[ScenarioStep]) -> None:
        """Execute steps in order, aborting on the first failure."""
        for index, step in enumerate(steps):
            await self.execute(page, step, index)
