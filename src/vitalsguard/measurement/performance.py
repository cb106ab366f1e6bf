"""Page performance timing read from the Navigation Timing API."""

from __future__ import annotations

import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from vitalsguard.models.report import PerformanceTiming

logger = logging.getLogger(__name__)

PERFORMANCE_TIMING_SCRIPT = """
() => {
  const nav = performance.getEntriesByType('navigation')[0];
  const paint = performance.getEntriesByType('paint').find((e) => e.name === 'first-paint');
  const since = (end) => (nav && end > 0 ? end - nav.fetchStart : 0);
  return {
    loadTime: nav ? since(nav.loadEventEnd) : 0,
    domContentLoaded: nav ? since(nav.domContentLoadedEventEnd) : 0,
    firstPaint: paint ? paint.startTime : 0,
  };
}
"""


async def measure_performance_timing(page: Page) -> PerformanceTiming:
    """Read load, DOMContentLoaded and first-paint milestones from page.

    Milestones that have not happened, or cannot be read, are 0.
    """
    try:
        raw = await page.evaluate(PERFORMANCE_TIMING_SCRIPT)
    except PlaywrightError as e:
        logger.warning("Performance timing unavailable: %s", e)
        return PerformanceTiming()
    if not isinstance(raw, dict):
        return PerformanceTiming()
    return PerformanceTiming.model_validate(
        {key: max(0.0, float(value or 0)) for key, value in raw.items()}
    )
