"""ScenarioOrchestrator: runs one scenario in an isolated browser context.

Per scenario the orchestrator opens a fresh context (CSP bypassed so the
measurement scripts can run), installs the vitals observer, attaches the
network correlator, navigates, runs the steps, waits for the page to
settle and then collects vitals, page timing and the network report.
The correlator is detached and the context closed on every exit path.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from playwright.async_api import Browser
from playwright.async_api import Error as PlaywrightError

from vitalsguard.execution.steps import INITIAL_NAVIGATION, StepExecutor
from vitalsguard.measurement.network import NetworkEventCorrelator, SessionUnavailable
from vitalsguard.measurement.performance import measure_performance_timing
from vitalsguard.measurement.profiler import capture_profile, summarize_profile
from vitalsguard.measurement.vitals import VitalsObserver
from vitalsguard.models.config import RunConfig
from vitalsguard.models.report import ScenarioReport
from vitalsguard.models.scenario import NavigateStep, Scenario

logger = logging.getLogger(__name__)


class ScenarioOrchestrator:
    """Composes step execution and measurement for one scenario at a time.

    Args:
        browser: A launched browser; each run opens its own context on it.
        config: Run configuration (timeouts, settle delay, vitals options,
            profiling).
        executor: Step executor to use. A default one is created if omitted.
    """

    def __init__(
        self,
        browser: Browser,
        config: RunConfig | None = None,
        executor: StepExecutor | None = None,
    ) -> None:
        self.browser = browser
        self.config = config or RunConfig()
        self.executor = executor or StepExecutor()

    async def run(self, scenario: Scenario) -> ScenarioReport:
        """Run scenario and return its report.

        Raises:
            StepExecutionError: If the initial navigation or a step fails.
        """
        config = self.config
        context = await self.browser.new_context(bypass_csp=True)
        correlator = NetworkEventCorrelator()
        try:
            page = await context.new_page()
            observer = VitalsObserver(page, config.vitals)
            await observer.install()

            try:
                await correlator.attach(page)
            except SessionUnavailable as e:
                logger.warning("%s: %s; using resource timing", scenario.name, e)

            logger.info("Running scenario %s (%s)", scenario.name, scenario.url)
            start = NavigateStep(url=scenario.url, timeout=scenario.timeout or config.timeout_ms)
            await self.executor.execute(page, start, index=INITIAL_NAVIGATION)

            if config.vitals.package_only:
                await observer.load_package()

            profile = None
            if config.profile:
                async with capture_profile(page) as capture:
                    await self.executor.run_steps(page, scenario.steps)
                profile = summarize_profile(capture.profile, scenario.url)
            else:
                await self.executor.run_steps(page, scenario.steps)

            await page.wait_for_timeout(config.settle_ms)

            metrics = await observer.collect()
            performance = await measure_performance_timing(page)
            network = await correlator.finalize(page)

            return ScenarioReport(
                scenario=scenario.name,
                url=scenario.url,
                timestamp=datetime.now(timezone.utc),
                metrics=metrics,
                performance=performance,
                network=network,
                profile=profile,
            )
        finally:
            await correlator.detach()
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug("Context close failed for %s: %s", scenario.name, e)
