"""Network request correlation over the Chrome DevTools Protocol.

The correlator subscribes to three CDP channels on one page session:
``Network.requestWillBeSent``, ``Network.responseReceived`` and
``Network.loadingFinished``. Each handler appends to its own map keyed
by request id; nothing is joined until :meth:`finalize`, so no handler
ever touches another handler's entries.

When a CDP session cannot be opened (non-Chromium browser, closed page)
the correlator degrades to records built from the page's own resource
timing entries. Those carry no headers, status or connection detail but
are always available.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlparse

from playwright.async_api import CDPSession, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from vitalsguard.models.report import (
    ConnectionInfo,
    NetworkReport,
    NetworkRequestRecord,
    NetworkSummary,
    NetworkTiming,
    RequestHeaders,
    SecurityInfo,
    SlowestRequest,
    TimingDiscrepancy,
)

logger = logging.getLogger(__name__)

REQUEST_WILL_BE_SENT = "Network.requestWillBeSent"
RESPONSE_RECEIVED = "Network.responseReceived"
LOADING_FINISHED = "Network.loadingFinished"

# Phase sums within this many ms of the wall-clock total count as consistent.
DISCREPANCY_TOLERANCE_MS = 1.0

DEFAULT_IDLE_TIMEOUT_MS = 5_000

RESOURCE_ENTRIES_SCRIPT = """
() => performance.getEntriesByType('resource').map((e) => e.toJSON())
"""

_EXTENSION_TYPES = {
    "js": "script",
    "mjs": "script",
    "css": "stylesheet",
    "png": "image",
    "jpg": "image",
    "jpeg": "image",
    "gif": "image",
    "svg": "image",
    "webp": "image",
    "avif": "image",
    "ico": "image",
    "woff": "font",
    "woff2": "font",
    "ttf": "font",
    "otf": "font",
    "mp4": "media",
    "webm": "media",
    "ogg": "media",
    "mp3": "media",
    "json": "json",
    "xml": "xml",
}


class SessionUnavailable(Exception):
    """Raised when a CDP session cannot be opened for a page."""


def _num(mapping: Mapping[str, Any], key: str) -> float:
    value = mapping.get(key)
    return float(value) if isinstance(value, (int, float)) else 0.0


def _span(timing: Mapping[str, Any], start: str, end: str) -> float:
    return max(0.0, _num(timing, end) - _num(timing, start))


def classify_discrepancy(timing_sum: float, total_time: float) -> TimingDiscrepancy:
    """Label how the phase sum relates to the wall-clock total.

    Reused connections and cached responses skip phases, and CDP phase
    boundaries overlap, so a mismatch is normal and only informational.
    """
    delta = timing_sum - total_time
    if abs(delta) <= DISCREPANCY_TOLERANCE_MS:
        return "consistent"
    return "overlap" if delta > 0 else "undercount"


def decompose_timing(
    timing: Mapping[str, Any],
    request_ts: float,
    finished_ts: float,
    *,
    from_cache: bool = False,
    connection_reused: bool = False,
) -> NetworkTiming:
    """Split a CDP response timing block into non-negative phase durations.

    Args:
        timing: The ``response.timing`` object. Phase boundaries are ms
            relative to ``requestTime``; skipped phases report -1.
        request_ts: ``requestWillBeSent`` timestamp, seconds.
        finished_ts: ``loadingFinished`` timestamp, seconds.
        from_cache: Whether the response came from a cache.
        connection_reused: Whether an existing connection was reused.

    Returns:
        NetworkTiming where each phase is clamped at zero and
        ``total_time`` is the wall-clock request-to-finish delta.
    """
    total_time = max(0.0, (finished_ts - request_ts) * 1000)
    headers_end = _num(timing, "receiveHeadersEnd")
    phases = {
        "dns_lookup": _span(timing, "dnsStart", "dnsEnd"),
        "tcp_connect": _span(timing, "connectStart", "connectEnd"),
        "ssl_handshake": _span(timing, "sslStart", "sslEnd"),
        "request_send": _span(timing, "sendStart", "sendEnd"),
        "wait_time": _span(timing, "sendEnd", "receiveHeadersEnd"),
        "response_receive": _span(timing, "receiveHeadersStart", "receiveHeadersEnd"),
        "redirect_time": _span(timing, "redirectStart", "redirectEnd"),
        "content_download_time": max(0.0, total_time - headers_end),
    }
    timing_sum = sum(phases.values())
    return NetworkTiming(
        **phases,
        total_time=total_time,
        timing_sum=timing_sum,
        from_cache=from_cache,
        connection_reused=connection_reused,
        discrepancy=classify_discrepancy(timing_sum, total_time),
    )


def _url_parts(url: str) -> tuple[str, str]:
    parsed = urlparse(url)
    return parsed.scheme, parsed.hostname or ""


def guess_resource_type(url: str) -> str:
    """Infer a resource type from a URL path when the protocol gives none."""
    path = urlparse(url).path.lower()
    if "/api/" in path or "/graphql" in path:
        return "api"
    last = path.rsplit("/", 1)[-1]
    extension = last.rsplit(".", 1)[-1] if "." in last else ""
    return _EXTENSION_TYPES.get(extension, "other")


def summarize_requests(
    records: Iterable[NetworkRequestRecord], pending: int = 0
) -> NetworkSummary:
    """Aggregate finalized records into summary statistics."""
    records = list(records)
    if not records:
        return NetworkSummary(pending_requests=pending)

    slowest = max(records, key=lambda r: r.response_time)
    return NetworkSummary(
        total_requests=len(records),
        total_transfer_size=sum(r.transfer_size for r in records),
        total_encoded_size=sum(r.encoded_body_size for r in records),
        total_decoded_size=sum(r.decoded_body_size or 0 for r in records),
        average_response_time=sum(r.response_time for r in records) / len(records),
        slowest_request=SlowestRequest(url=slowest.url, response_time=slowest.response_time),
        failed_requests=sum(1 for r in records if r.status is not None and r.status >= 400),
        requests_by_type=dict(Counter(r.resource_type for r in records)),
        requests_by_domain=dict(Counter(r.domain for r in records)),
        pending_requests=pending,
    )


def build_fallback_records(entries: Iterable[Mapping[str, Any]]) -> list[NetworkRequestRecord]:
    """Build request records from ``PerformanceResourceTiming`` entries.

    Method and status are unknown on this path. Resource timing folds TLS
    into the connect span, so TCP time stops where the secure handshake
    begins.
    """
    records = []
    for index, entry in enumerate(entries):
        url = str(entry.get("name", ""))
        protocol, domain = _url_parts(url)
        transfer = int(_num(entry, "transferSize"))
        encoded = int(_num(entry, "encodedBodySize"))
        from_cache = transfer == 0 and encoded > 0
        secure_start = _num(entry, "secureConnectionStart")
        connect_end = _num(entry, "connectEnd")
        tcp_end = secure_start if secure_start > 0 else connect_end

        phases = {
            "dns_lookup": _span(entry, "domainLookupStart", "domainLookupEnd"),
            "tcp_connect": max(0.0, tcp_end - _num(entry, "connectStart")),
            "ssl_handshake": max(0.0, connect_end - secure_start) if secure_start > 0 else 0.0,
            "wait_time": _span(entry, "requestStart", "responseStart"),
            "redirect_time": _span(entry, "redirectStart", "redirectEnd"),
            "content_download_time": _span(entry, "responseStart", "responseEnd"),
        }
        total_time = _span(entry, "startTime", "responseEnd")
        timing_sum = sum(phases.values())
        # resource timing carries no connection-reuse detail
        timing = NetworkTiming(
            **phases,
            total_time=total_time,
            timing_sum=timing_sum,
            from_cache=from_cache,
            discrepancy=classify_discrepancy(timing_sum, total_time),
        )
        records.append(
            NetworkRequestRecord(
                request_id=f"resource-{index}",
                url=url,
                response_time=total_time,
                transfer_size=max(0, transfer),
                encoded_body_size=max(0, encoded),
                decoded_body_size=max(0, int(_num(entry, "decodedBodySize"))),
                start_time=_num(entry, "startTime"),
                end_time=_num(entry, "responseEnd"),
                duration=max(0.0, _num(entry, "duration")),
                resource_type=guess_resource_type(url),
                from_cache=from_cache,
                protocol=protocol,
                domain=domain,
                timing=timing,
            )
        )
    return records


class NetworkEventCorrelator:
    """Joins CDP network lifecycle events into per-request records.

    Event handlers run on the Playwright event loop one at a time, so the
    three maps need no locking. A response or finish event for an id that
    was never announced is a dropped event; it is counted in ``gaps`` and
    otherwise ignored.
    """

    def __init__(self) -> None:
        self.requests: dict[str, dict[str, Any]] = {}
        self.responses: dict[str, dict[str, Any]] = {}
        self.finished: dict[str, dict[str, Any]] = {}
        self.gaps = 0
        self._session: CDPSession | None = None

    @property
    def attached(self) -> bool:
        return self._session is not None

    async def attach(self, page: Page) -> None:
        """Open a CDP session for page and subscribe to network events.

        Raises:
            SessionUnavailable: If the session cannot be created or the
                Network domain cannot be enabled.
        """
        try:
            session = await page.context.new_cdp_session(page)
            await session.send("Network.enable")
        except PlaywrightError as e:
            raise SessionUnavailable(f"CDP session unavailable: {e}") from e

        session.on(REQUEST_WILL_BE_SENT, self.on_request_will_be_sent)
        session.on(RESPONSE_RECEIVED, self.on_response_received)
        session.on(LOADING_FINISHED, self.on_loading_finished)
        self._session = session

    def on_request_will_be_sent(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        request = params.get("request")
        if not isinstance(request_id, str) or not isinstance(request, dict):
            return

        existing = self.requests.get(request_id)
        if existing is not None:
            # Redirect hop: same id, first hop's start time is kept.
            hop = params.get("redirectResponse")
            existing["redirect_chain"].append(
                {"url": existing["url"], "status": hop.get("status") if isinstance(hop, dict) else None}
            )
            existing["url"] = request.get("url", existing["url"])
            existing["method"] = request.get("method", existing["method"])
            existing["headers"] = request.get("headers") or {}
            return

        self.requests[request_id] = {
            "url": request.get("url", ""),
            "method": request.get("method"),
            "headers": request.get("headers") or {},
            "timestamp": _num(params, "timestamp"),
            "type": params.get("type"),
            "initiator": params.get("initiator"),
            "redirect_chain": [],
        }

    def on_response_received(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if request_id not in self.requests:
            self._gap(RESPONSE_RECEIVED, request_id)
            return
        response = params.get("response")
        self.responses[request_id] = response if isinstance(response, dict) else {}

    def on_loading_finished(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if request_id not in self.requests:
            self._gap(LOADING_FINISHED, request_id)
            return
        self.finished[request_id] = params

    def _gap(self, channel: str, request_id: Any) -> None:
        self.gaps += 1
        logger.debug("Ignoring %s for unknown request %r", channel, request_id)

    def _build_record(self, request_id: str) -> NetworkRequestRecord | None:
        request = self.requests[request_id]
        response = self.responses.get(request_id)
        finished = self.finished.get(request_id)
        if response is None or finished is None:
            return None

        from_cache = bool(response.get("fromDiskCache") or response.get("fromPrefetchCache"))
        reused = bool(response.get("connectionReused"))
        start_ts = request["timestamp"]
        end_ts = _num(finished, "timestamp")
        timing = decompose_timing(
            response.get("timing") or {},
            start_ts,
            end_ts,
            from_cache=from_cache,
            connection_reused=reused,
        )
        protocol, domain = _url_parts(request["url"])
        status = response.get("status")
        resource_type = request.get("type")

        return NetworkRequestRecord(
            request_id=request_id,
            url=request["url"],
            method=request["method"],
            status=int(status) if isinstance(status, (int, float)) else None,
            status_text=response.get("statusText"),
            response_time=timing.total_time,
            transfer_size=max(0, int(_num(finished, "encodedDataLength"))),
            encoded_body_size=max(0, int(_num(response, "encodedDataLength"))),
            start_time=start_ts * 1000,
            end_time=max(start_ts, end_ts) * 1000,
            duration=timing.total_time,
            resource_type=resource_type.lower() if isinstance(resource_type, str) else "other",
            from_cache=from_cache,
            protocol=protocol,
            domain=domain,
            timing=timing,
            headers=RequestHeaders(
                request=request["headers"],
                response=response.get("headers") or {},
            ),
            security=SecurityInfo(
                state=response.get("securityState"),
                details=response.get("securityDetails"),
            ),
            connection=ConnectionInfo(
                id=response.get("connectionId"),
                remote_ip=response.get("remoteIPAddress"),
                remote_port=response.get("remotePort"),
                reused=reused,
            ),
            initiator=request.get("initiator"),
            redirect_chain=request["redirect_chain"],
        )

    def join(self) -> NetworkReport:
        """Join the collected events into a report.

        Only requests with both a response and a finish event become
        records; the rest are counted as pending.
        """
        records = []
        pending = 0
        for request_id in self.requests:
            record = self._build_record(request_id)
            if record is None:
                pending += 1
            else:
                records.append(record)
        return NetworkReport(
            source="cdp",
            requests=records,
            summary=summarize_requests(records, pending=pending),
        )

    async def finalize(self, page: Page, idle_timeout_ms: int = DEFAULT_IDLE_TIMEOUT_MS) -> NetworkReport:
        """Produce the network report for page.

        With a live CDP session, waits (bounded) for the network to go
        idle and then joins the event maps. Without one, reads resource
        timing entries from the page instead.
        """
        if not self.attached:
            entries = await page.evaluate(RESOURCE_ENTRIES_SCRIPT)
            records = build_fallback_records(entries or [])
            return NetworkReport(
                source="resource-timing",
                requests=records,
                summary=summarize_requests(records),
            )

        try:
            await page.wait_for_load_state("networkidle", timeout=idle_timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug("Network did not go idle within %d ms; joining anyway", idle_timeout_ms)
        return self.join()

    async def detach(self) -> None:
        """Close the CDP session and drop requests that never finished."""
        session, self._session = self._session, None
        for request_id in [rid for rid in self.requests if rid not in self.finished]:
            del self.requests[request_id]
            self.responses.pop(request_id, None)
        if session is None:
            return
        try:
            await session.detach()
        except PlaywrightError as e:
            logger.debug("CDP session detach failed: %s", e)
