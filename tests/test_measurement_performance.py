"""Tests for navigation timing measurement."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from vitalsguard.measurement.performance import PERFORMANCE_TIMING_SCRIPT, measure_performance_timing


@pytest.mark.asyncio
async def test_reads_navigation_milestones():
    page = MagicMock()
    page.evaluate = AsyncMock(return_value={"loadTime": 1200.5, "domContentLoaded": 640, "firstPaint": 310})

    timing = await measure_performance_timing(page)

    page.evaluate.assert_awaited_once_with(PERFORMANCE_TIMING_SCRIPT)
    assert timing.load_time == 1200.5
    assert timing.dom_content_loaded == 640.0
    assert timing.first_paint == 310.0


@pytest.mark.asyncio
async def test_missing_milestones_are_zero():
    page = MagicMock()
    page.evaluate = AsyncMock(return_value={"loadTime": None, "domContentLoaded": -5, "firstPaint": 0})
    timing = await measure_performance_timing(page)
    assert timing.load_time == 0
    assert timing.dom_content_loaded == 0


@pytest.mark.asyncio
async def test_evaluation_failure_returns_defaults():
    page = MagicMock()
    page.evaluate = AsyncMock(side_effect=PlaywrightError("page closed"))
    timing = await measure_performance_timing(page)
    assert timing.model_dump() == {"load_time": 0.0, "dom_content_loaded": 0.0, "first_paint": 0.0}
