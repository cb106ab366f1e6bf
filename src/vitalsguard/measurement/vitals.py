"""In-page Core Web Vitals observation.

Observation is two-phase. :meth:`VitalsObserver.install` registers an
init script before the first navigation so paint signals from the
initial document load are not missed. The script keeps a measurement
session at ``window.__vitalsguard`` with one PerformanceObserver per
metric. FCP disconnects on its first match. LCP, CLS and INP keep
updating and disconnect once their signal has been quiet for a settle
window.

:meth:`VitalsObserver.collect` snapshots the session after the steps
have run, force-disconnects what is still observing, and reads TTFB from
navigation timing. When nothing was observed it can degrade to the
packaged web-vitals script, if configuration permits.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from vitalsguard.models.budget import METRIC_NAMES
from vitalsguard.models.config import VitalsOptions
from vitalsguard.models.report import VitalsMetricSet

logger = logging.getLogger(__name__)

SESSION_KEY = "__vitalsguard"

# Quiet period in ms after which a still-updating metric is final.
DEFAULT_SETTLE_WINDOWS: dict[str, int] = {"LCP": 2_000, "CLS": 3_000, "INP": 2_000}

PACKAGE_LOAD_TIMEOUT_MS = 5_000

OBSERVER_INIT_SCRIPT = """
(() => {
  const ns = '__SESSION_KEY__';
  if (window[ns] && window[ns].started) return;
  const session = window[ns] = {
    started: true, results: {}, errors: {}, observers: {}, timers: {},
  };
  const settle = __SETTLE_WINDOWS__;

  const finalize = (metric) => {
    const obs = session.observers[metric];
    if (obs) {
      try { obs.disconnect(); } catch (e) { session.errors[metric] = String(e); }
      delete session.observers[metric];
    }
    clearTimeout(session.timers[metric]);
    delete session.timers[metric];
  };
  const touch = (metric) => {
    clearTimeout(session.timers[metric]);
    session.timers[metric] = setTimeout(() => finalize(metric), settle[metric]);
  };
  const observe = (metric, options, onEntries) => {
    try {
      const obs = new PerformanceObserver((list) => {
        try { onEntries(list.getEntries()); } catch (e) { session.errors[metric] = String(e); }
      });
      obs.observe(Object.assign({ buffered: true }, options));
      session.observers[metric] = obs;
    } catch (e) {
      session.errors[metric] = String(e);
    }
  };

  observe('FCP', { type: 'paint' }, (entries) => {
    const fcp = entries.find((e) => e.name === 'first-contentful-paint');
    if (fcp) { session.results.FCP = fcp.startTime; finalize('FCP'); }
  });

  observe('LCP', { type: 'largest-contentful-paint' }, (entries) => {
    const last = entries[entries.length - 1];
    if (last) { session.results.LCP = last.renderTime || last.startTime; touch('LCP'); }
  });

  let cls = 0;
  observe('CLS', { type: 'layout-shift' }, (entries) => {
    for (const e of entries) { if (!e.hadRecentInput) cls += e.value || 0; }
    session.results.CLS = cls;
    touch('CLS');
  });

  let maxDelay = 0;
  observe('INP', { type: 'event', durationThreshold: 16 }, (entries) => {
    for (const e of entries) {
      if (e.processingStart && e.startTime) maxDelay = Math.max(maxDelay, e.processingStart - e.startTime);
    }
    session.results.INP = maxDelay;
    touch('INP');
  });
})();
"""

PACKAGE_INIT_SCRIPT = """
(() => {
  const ns = '__SESSION_KEY__';
  if (window[ns] && window[ns].started) return;
  window[ns] = { started: true, results: {}, errors: {}, observers: {}, timers: {}, packageLoaded: false };
})();
"""

REGISTER_PACKAGE_SCRIPT = """
(ns) => {
  const session = window[ns];
  const wv = window.webVitals;
  if (!session || !wv) return false;
  if (session.packageLoaded) return true;
  session.packageLoaded = true;
  const record = (name) => (metric) => { session.results[name] = metric.value; };
  wv.onFCP(record('FCP'));
  wv.onLCP(record('LCP'));
  wv.onCLS(record('CLS'));
  wv.onINP(record('INP'));
  return true;
}
"""

HAS_RESULTS_SCRIPT = """
(ns) => !!window[ns] && Object.keys(window[ns].results || {}).length > 0
"""

COLLECT_SCRIPT = """
(ns) => {
  const session = window[ns];
  if (!session) return { results: {}, errors: {} };
  const out = { results: Object.assign({}, session.results), errors: Object.assign({}, session.errors) };
  for (const [metric, obs] of Object.entries(session.observers || {})) {
    try { obs.disconnect(); } catch (e) { out.errors[metric] = String(e); }
  }
  for (const timer of Object.values(session.timers || {})) clearTimeout(timer);
  session.observers = {};
  session.timers = {};
  session.started = false;
  return out;
}
"""

TTFB_SCRIPT = """
() => {
  const nav = performance.getEntriesByType('navigation')[0];
  if (!nav || !(nav.responseStart > 0)) return null;
  return nav.responseStart - nav.requestStart;
}
"""


class ObserverError(Exception):
    """Raised when the in-page measurement session cannot be read."""


def render_observer_script(settle_windows: dict[str, int] | None = None) -> str:
    windows = {**DEFAULT_SETTLE_WINDOWS, **(settle_windows or {})}
    return OBSERVER_INIT_SCRIPT.replace("__SESSION_KEY__", SESSION_KEY).replace(
        "__SETTLE_WINDOWS__", json.dumps(windows)
    )


def _metric_values(raw: Any) -> dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    return {
        name: float(raw[name])
        for name in METRIC_NAMES
        if isinstance(raw.get(name), (int, float)) and not isinstance(raw.get(name), bool)
    }


class VitalsObserver:
    """Installs and later collects in-page vitals measurement for one page.

    Args:
        page: The page to observe. One observer serves one page.
        options: Observer and fallback settings from the run configuration.
        settle_windows: Overrides for the LCP/CLS/INP quiet periods (ms).
    """

    def __init__(
        self,
        page: Page,
        options: VitalsOptions | None = None,
        settle_windows: dict[str, int] | None = None,
    ) -> None:
        self.page = page
        self.options = options or VitalsOptions()
        self.settle_windows = settle_windows
        self.hook_errors: dict[str, str] = {}

    async def install(self) -> None:
        """Register the measurement session script. Call before navigating."""
        if self.options.use_performance_observer:
            await self.page.add_init_script(script=render_observer_script(self.settle_windows))
        elif self.options.fallback_to_package:
            await self.page.add_init_script(
                script=PACKAGE_INIT_SCRIPT.replace("__SESSION_KEY__", SESSION_KEY)
            )

    async def load_package(self) -> bool:
        """Load the web-vitals package into the page and register its callbacks.

        Returns:
            True if the package registered, False if it could not load.
        """
        try:
            await self.page.add_script_tag(url=self.options.package_url)
            await self.page.wait_for_function(
                "() => !!window.webVitals", timeout=PACKAGE_LOAD_TIMEOUT_MS
            )
            registered = await self.page.evaluate(REGISTER_PACKAGE_SCRIPT, SESSION_KEY)
        except PlaywrightError as e:
            logger.warning("Could not load web-vitals package from %s: %s", self.options.package_url, e)
            return False
        if not registered:
            logger.warning("web-vitals package loaded but no measurement session to register into")
        return bool(registered)

    async def _wait_for_any_metric(self) -> bool:
        try:
            await self.page.wait_for_function(
                HAS_RESULTS_SCRIPT, arg=SESSION_KEY, timeout=self.options.fallback_wait_ms
            )
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            raise ObserverError(f"Wait for vitals failed: {e}") from e
        return True

    async def _degrade(self) -> None:
        """Give observers a bounded wait, then fall back to the package."""
        try:
            if await self.page.evaluate(HAS_RESULTS_SCRIPT, SESSION_KEY):
                return
        except PlaywrightError as e:
            raise ObserverError(str(e)) from e
        if await self._wait_for_any_metric():
            return
        logger.info("No vitals observed after %d ms; loading web-vitals package", self.options.fallback_wait_ms)
        if await self.load_package():
            await self._wait_for_any_metric()

    async def _snapshot(self) -> dict[str, Any]:
        try:
            snapshot = await self.page.evaluate(COLLECT_SCRIPT, SESSION_KEY)
        except PlaywrightError as e:
            raise ObserverError(f"Could not read measurement session: {e}") from e
        return snapshot if isinstance(snapshot, dict) else {}

    async def _ttfb(self) -> float | None:
        try:
            value = await self.page.evaluate(TTFB_SCRIPT)
        except PlaywrightError as e:
            logger.debug("TTFB unavailable: %s", e)
            return None
        return float(value) if isinstance(value, (int, float)) else None

    async def collect(self) -> VitalsMetricSet:
        """Snapshot and tear down the measurement session.

        Never raises for measurement problems: a failing hook only omits
        its metric, and an unreadable session yields an empty set.
        """
        try:
            if self.options.fallback_to_package:
                await self._degrade()
            snapshot = await self._snapshot()
        except ObserverError as e:
            logger.warning("Vitals collection failed: %s", e)
            return VitalsMetricSet()

        errors = snapshot.get("errors")
        if isinstance(errors, dict):
            for metric, message in errors.items():
                logger.debug("Vitals hook %s failed: %s", metric, message)
            self.hook_errors = {str(k): str(v) for k, v in errors.items()}

        values = _metric_values(snapshot.get("results"))
        values.pop("TTFB", None)
        ttfb = await self._ttfb()
        if ttfb is not None:
            values["TTFB"] = ttfb
        return VitalsMetricSet.model_validate(values)
