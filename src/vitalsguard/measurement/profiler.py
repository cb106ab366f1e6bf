"""Sampled CPU profile capture and summary.

:func:`capture_profile` wraps a block of page interaction in a CDP
``Profiler`` capture; the profiler is always stopped, even when the
block raises. :func:`summarize_profile` reduces the raw profile to
per-function statistics, third-party script time and the share of the
capture spent executing JavaScript.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from playwright.async_api import CDPSession, Page
from playwright.async_api import Error as PlaywrightError

from vitalsguard.models.report import (
    ExecutionEfficiency,
    FunctionProfile,
    ProfileSummary,
    ThirdPartyImpact,
    ThirdPartyScript,
)

logger = logging.getLogger(__name__)

TOP_FUNCTIONS = 10
IDLE_NODE = "(idle)"


@dataclass
class ProfileCapture:
    """Holds the raw profile once the capture block has exited."""

    profile: dict[str, Any] | None = None


async def _stop(session: CDPSession, capture: ProfileCapture) -> None:
    try:
        result = await session.send("Profiler.stop")
        capture.profile = result.get("profile")
        await session.send("Profiler.disable")
    except PlaywrightError as e:
        logger.warning("Could not stop CPU profiler: %s", e)
    finally:
        try:
            await session.detach()
        except PlaywrightError as e:
            logger.debug("Profiler session detach failed: %s", e)


@asynccontextmanager
async def capture_profile(page: Page) -> AsyncIterator[ProfileCapture]:
    """Profile everything the page executes inside the ``async with`` block.

    If the profiler cannot be started the block still runs and
    ``capture.profile`` stays None.
    """
    capture = ProfileCapture()
    session: CDPSession | None = None
    try:
        session = await page.context.new_cdp_session(page)
        await session.send("Profiler.enable")
        await session.send("Profiler.start")
    except PlaywrightError as e:
        logger.warning("CPU profiling unavailable: %s", e)
        session = None

    try:
        yield capture
    finally:
        if session is not None:
            await _stop(session, capture)


@dataclass
class _FunctionStats:
    name: str
    source: str
    line: int
    domain: str
    hit_count: int = 0
    samples: int = 0
    total_time: float = 0.0


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def _analyze(profile: Mapping[str, Any]) -> tuple[list[_FunctionStats], float]:
    nodes = profile.get("nodes") or []
    samples = profile.get("samples") or []
    # Profile timestamps are microseconds.
    duration_ms = max(0.0, (profile.get("endTime", 0) - profile.get("startTime", 0)) / 1000)
    per_sample = duration_ms / len(samples) if samples else 0.0

    stats: dict[str, _FunctionStats] = {}
    node_function: dict[Any, str] = {}
    for node in nodes:
        frame = node.get("callFrame") or {}
        name = frame.get("functionName") or "(anonymous)"
        source = frame.get("url") or ""
        if name not in stats:
            stats[name] = _FunctionStats(
                name=name,
                source=source,
                line=int(frame.get("lineNumber", 0) or 0),
                domain=urlparse(source).hostname or "",
            )
        stats[name].hit_count += int(node.get("hitCount", 0) or 0)
        node_function[node.get("id")] = name

    # Samples reference node ids, not positions in the node list.
    for node_id in samples:
        name = node_function.get(node_id)
        if name is not None:
            stats[name].samples += 1
            stats[name].total_time += per_sample

    ranked = sorted(stats.values(), key=lambda s: s.total_time, reverse=True)
    return ranked, duration_ms


def summarize_profile(profile: Mapping[str, Any] | None, page_url: str = "") -> ProfileSummary:
    """Summarize a CDP ``Profiler.Profile``.

    Args:
        profile: The ``profile`` object returned by ``Profiler.stop``.
        page_url: URL of the scenario; scripts served from another host
            count as third-party.

    Returns:
        ProfileSummary with all-zero fields for an empty or missing profile.
    """
    if not profile or not isinstance(profile.get("nodes"), list):
        return ProfileSummary()

    ranked, duration_ms = _analyze(profile)
    total_time = sum(s.total_time for s in ranked)
    page_host = urlparse(page_url).hostname or ""

    top = [
        FunctionProfile(
            name=s.name,
            time=s.total_time,
            percentage=_pct(s.total_time, total_time),
            calls=s.hit_count,
            average_time=s.total_time / s.hit_count if s.hit_count else 0.0,
            source=s.source,
            line=s.line,
        )
        for s in ranked[:TOP_FUNCTIONS]
    ]

    by_domain: dict[str, list[_FunctionStats]] = {}
    for s in ranked:
        if s.domain and s.domain != page_host:
            by_domain.setdefault(s.domain, []).append(s)
    scripts = sorted(
        (
            ThirdPartyScript(
                domain=domain,
                time=sum(f.total_time for f in funcs),
                percentage=_pct(sum(f.total_time for f in funcs), total_time),
                functions=len(funcs),
            )
            for domain, funcs in by_domain.items()
        ),
        key=lambda script: script.time,
        reverse=True,
    )
    third_party_time = sum(script.time for script in scripts)

    idle = next((s.total_time for s in ranked if s.name == IDLE_NODE), 0.0)
    busy = total_time - idle

    return ProfileSummary(
        profile_duration=duration_ms,
        total_execution_time=total_time,
        total_functions=len(ranked),
        total_calls=sum(s.hit_count for s in ranked),
        longest_function_time=ranked[0].total_time if ranked else 0.0,
        top_functions=top,
        function_call_frequency={s.name: s.hit_count for s in ranked if s.hit_count > 0},
        third_party_impact=ThirdPartyImpact(
            total_time=third_party_time,
            percentage=_pct(third_party_time, total_time),
            scripts=scripts,
        ),
        execution_efficiency=ExecutionEfficiency(
            js_execution_percentage=_pct(busy, duration_ms),
            idle_time_percentage=_pct(idle, duration_ms),
            main_thread_blocking_time=busy,
        ),
    )
