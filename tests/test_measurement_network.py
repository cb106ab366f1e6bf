"""Tests for CDP network event correlation and the resource-timing fallback."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from vitalsguard.measurement.network import (
    LOADING_FINISHED,
    REQUEST_WILL_BE_SENT,
    RESPONSE_RECEIVED,
    NetworkEventCorrelator,
    SessionUnavailable,
    build_fallback_records,
    classify_discrepancy,
    decompose_timing,
    guess_resource_type,
    summarize_requests,
)
from vitalsguard.models.report import NetworkRequestRecord


class FakeCDPSession:
    """Captures handlers registered with ``on`` so tests can emit events."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.send = AsyncMock(return_value={})
        self.detach = AsyncMock()

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    def emit(self, event: str, params: dict[str, Any]) -> None:
        self.handlers[event](params)


def _make_page(session: FakeCDPSession | None = None) -> MagicMock:
    page = MagicMock()
    page.context.new_cdp_session = AsyncMock(return_value=session or FakeCDPSession())
    page.wait_for_load_state = AsyncMock()
    page.evaluate = AsyncMock(return_value=[])
    return page


def _request(request_id: str, url: str = "https://example.com/app.js", ts: float = 100.0, **extra) -> dict:
    params = {
        "requestId": request_id,
        "request": {"url": url, "method": "GET", "headers": {"Accept": "*/*"}},
        "timestamp": ts,
        "type": "Script",
    }
    params.update(extra)
    return params


def _response(request_id: str, timing: dict | None = None, **extra) -> dict:
    response = {
        "status": 200,
        "statusText": "OK",
        "headers": {"content-type": "text/javascript"},
        "encodedDataLength": 300,
        "connectionReused": False,
        "connectionId": 12,
        "remoteIPAddress": "93.184.216.34",
        "remotePort": 443,
        "securityState": "secure",
        "timing": timing or {},
    }
    response.update(extra)
    return {"requestId": request_id, "response": response}


def _finished(request_id: str, ts: float = 100.5, length: int = 5_000) -> dict:
    return {"requestId": request_id, "timestamp": ts, "encodedDataLength": length}


async def _attached() -> tuple[NetworkEventCorrelator, FakeCDPSession, MagicMock]:
    session = FakeCDPSession()
    page = _make_page(session)
    correlator = NetworkEventCorrelator()
    await correlator.attach(page)
    return correlator, session, page


class TestDecomposeTiming:
    def test_phases_from_cdp_timing(self):
        timing = {
            "dnsStart": 0,
            "dnsEnd": 10,
            "connectStart": 10,
            "connectEnd": 40,
            "sslStart": 20,
            "sslEnd": 40,
            "sendStart": 41,
            "sendEnd": 42,
            "receiveHeadersStart": 140,
            "receiveHeadersEnd": 150,
        }
        result = decompose_timing(timing, 100.0, 100.5)
        assert result.dns_lookup == 10
        assert result.tcp_connect == 30
        assert result.ssl_handshake == 20
        assert result.request_send == 1
        assert result.wait_time == 108
        assert result.response_receive == 10
        assert result.redirect_time == 0
        assert result.content_download_time == 350
        assert result.total_time == 500
        assert result.timing_sum == 529

    def test_out_of_order_timestamps_clamp_to_zero(self):
        timing = {
            "dnsStart": 50,
            "dnsEnd": 10,
            "connectStart": -1,
            "connectEnd": -1,
            "sendStart": 30,
            "sendEnd": 20,
            "receiveHeadersEnd": 5,
        }
        result = decompose_timing(timing, 10.0, 9.0)
        phases = result.model_dump(exclude={"from_cache", "connection_reused", "discrepancy"})
        assert all(value >= 0 for value in phases.values())
        assert result.total_time == 0

    def test_missing_timing_block(self):
        result = decompose_timing({}, 1.0, 1.2, from_cache=True)
        assert result.from_cache is True
        assert result.content_download_time == pytest.approx(200)

    def test_discrepancy_is_flagged_not_raised(self):
        overlap = decompose_timing({"dnsStart": 0, "dnsEnd": 400, "receiveHeadersEnd": 0}, 0.0, 0.1)
        assert overlap.discrepancy == "overlap"
        undercount = decompose_timing(
            {"sendStart": 50, "sendEnd": 50, "receiveHeadersStart": 100, "receiveHeadersEnd": 100}, 0.0, 0.3
        )
        assert undercount.discrepancy == "undercount"

    def test_classify_discrepancy_tolerance(self):
        assert classify_discrepancy(100.5, 100.0) == "consistent"
        assert classify_discrepancy(110.0, 100.0) == "overlap"
        assert classify_discrepancy(90.0, 100.0) == "undercount"


class TestCorrelator:
    @pytest.mark.asyncio
    async def test_attach_subscribes_to_network_channels(self):
        correlator, session, _ = await _attached()
        assert correlator.attached
        session.send.assert_awaited_once_with("Network.enable")
        assert set(session.handlers) == {REQUEST_WILL_BE_SENT, RESPONSE_RECEIVED, LOADING_FINISHED}

    @pytest.mark.asyncio
    async def test_attach_failure_raises_session_unavailable(self):
        page = _make_page()
        page.context.new_cdp_session = AsyncMock(side_effect=PlaywrightError("not chromium"))
        correlator = NetworkEventCorrelator()
        with pytest.raises(SessionUnavailable):
            await correlator.attach(page)
        assert not correlator.attached

    @pytest.mark.asyncio
    async def test_full_lifecycle_builds_record(self):
        correlator, session, _ = await _attached()
        session.emit(REQUEST_WILL_BE_SENT, _request("1"))
        session.emit(RESPONSE_RECEIVED, _response("1", timing={"receiveHeadersEnd": 150}))
        session.emit(LOADING_FINISHED, _finished("1"))

        report = correlator.join()

        assert report.source == "cdp"
        [record] = report.requests
        assert record.request_id == "1"
        assert record.url == "https://example.com/app.js"
        assert record.method == "GET"
        assert record.status == 200
        assert record.resource_type == "script"
        assert record.domain == "example.com"
        assert record.protocol == "https"
        assert record.transfer_size == 5_000
        assert record.encoded_body_size == 300
        assert record.decoded_body_size is None
        assert record.response_time == 500.0
        assert record.start_time == 100_000.0
        assert record.end_time == 100_500.0
        assert record.timing.content_download_time == 350.0
        assert record.headers.request == {"Accept": "*/*"}
        assert record.connection.remote_ip == "93.184.216.34"
        assert record.security.state == "secure"
        assert report.summary.total_requests == 1

    @pytest.mark.asyncio
    async def test_events_for_unknown_ids_are_ignored(self):
        correlator, session, _ = await _attached()
        session.emit(RESPONSE_RECEIVED, _response("ghost"))
        session.emit(LOADING_FINISHED, _finished("ghost"))

        assert correlator.gaps == 2
        assert "ghost" not in correlator.responses
        assert correlator.join().requests == []

    @pytest.mark.asyncio
    async def test_unfinished_requests_are_pending(self):
        correlator, session, _ = await _attached()
        session.emit(REQUEST_WILL_BE_SENT, _request("1"))
        session.emit(REQUEST_WILL_BE_SENT, _request("2", url="https://example.com/slow"))
        session.emit(RESPONSE_RECEIVED, _response("1"))
        session.emit(LOADING_FINISHED, _finished("1"))
        session.emit(RESPONSE_RECEIVED, _response("2"))

        report = correlator.join()

        assert [r.request_id for r in report.requests] == ["1"]
        assert report.summary.pending_requests == 1

    @pytest.mark.asyncio
    async def test_redirect_keeps_first_start_time(self):
        correlator, session, _ = await _attached()
        session.emit(REQUEST_WILL_BE_SENT, _request("1", url="http://example.com/", ts=10.0))
        session.emit(
            REQUEST_WILL_BE_SENT,
            _request("1", url="https://example.com/", ts=10.2, redirectResponse={"status": 301}),
        )
        session.emit(RESPONSE_RECEIVED, _response("1"))
        session.emit(LOADING_FINISHED, _finished("1", ts=10.5))

        [record] = correlator.join().requests
        assert record.url == "https://example.com/"
        assert record.redirect_chain == [{"url": "http://example.com/", "status": 301}]
        assert record.start_time == 10_000.0
        assert record.response_time == pytest.approx(500.0)

    @pytest.mark.asyncio
    async def test_cached_response_is_flagged(self):
        correlator, session, _ = await _attached()
        session.emit(REQUEST_WILL_BE_SENT, _request("1"))
        session.emit(RESPONSE_RECEIVED, _response("1", fromDiskCache=True, connectionReused=True))
        session.emit(LOADING_FINISHED, _finished("1", length=0))

        [record] = correlator.join().requests
        assert record.from_cache is True
        assert record.timing.connection_reused is True
        assert record.connection.reused is True

    @pytest.mark.asyncio
    async def test_finalize_waits_for_network_idle(self):
        correlator, session, page = await _attached()
        session.emit(REQUEST_WILL_BE_SENT, _request("1"))
        session.emit(RESPONSE_RECEIVED, _response("1"))
        session.emit(LOADING_FINISHED, _finished("1"))

        report = await correlator.finalize(page, idle_timeout_ms=1_000)

        page.wait_for_load_state.assert_awaited_once_with("networkidle", timeout=1_000)
        assert len(report.requests) == 1

    @pytest.mark.asyncio
    async def test_finalize_joins_after_idle_timeout(self):
        correlator, _, page = await _attached()
        page.wait_for_load_state = AsyncMock(side_effect=PlaywrightTimeoutError("busy"))
        report = await correlator.finalize(page)
        assert report.source == "cdp"

    @pytest.mark.asyncio
    async def test_finalize_without_session_uses_resource_timing(self):
        page = _make_page()
        page.evaluate = AsyncMock(
            return_value=[{"name": "https://cdn.test/a.css", "startTime": 5, "responseEnd": 25, "transferSize": 100}]
        )
        report = await NetworkEventCorrelator().finalize(page)

        assert report.source == "resource-timing"
        assert report.requests[0].resource_type == "stylesheet"
        assert report.requests[0].method is None
        page.wait_for_load_state.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_detach_drops_unfinished_and_closes_session(self):
        correlator, session, _ = await _attached()
        session.emit(REQUEST_WILL_BE_SENT, _request("1"))
        session.emit(REQUEST_WILL_BE_SENT, _request("2"))
        session.emit(RESPONSE_RECEIVED, _response("2"))
        session.emit(LOADING_FINISHED, _finished("2"))

        await correlator.detach()

        session.detach.assert_awaited_once()
        assert list(correlator.requests) == ["2"]
        assert not correlator.attached

    @pytest.mark.asyncio
    async def test_detach_error_is_not_raised(self):
        correlator, session, _ = await _attached()
        session.detach = AsyncMock(side_effect=PlaywrightError("target closed"))
        await correlator.detach()
        assert not correlator.attached


class TestFallbackRecords:
    def test_resource_entry_phases(self):
        entry = {
            "name": "https://example.com/api/items",
            "startTime": 10,
            "domainLookupStart": 10,
            "domainLookupEnd": 15,
            "connectStart": 15,
            "secureConnectionStart": 25,
            "connectEnd": 40,
            "requestStart": 41,
            "responseStart": 91,
            "responseEnd": 111,
            "duration": 101,
            "transferSize": 900,
            "encodedBodySize": 600,
            "decodedBodySize": 2400,
        }
        [record] = build_fallback_records([entry])

        assert record.request_id == "resource-0"
        assert record.status is None
        assert record.resource_type == "api"
        assert record.decoded_body_size == 2400
        assert record.timing.dns_lookup == 5
        assert record.timing.tcp_connect == 10
        assert record.timing.ssl_handshake == 15
        assert record.timing.wait_time == 50
        assert record.timing.content_download_time == 20
        assert record.response_time == 101
        assert record.from_cache is False

    def test_cached_entry(self):
        [record] = build_fallback_records([{"name": "https://a.test/x.png", "transferSize": 0, "encodedBodySize": 50}])
        assert record.from_cache is True

    def test_connection_reuse_is_never_guessed(self):
        same_origin = {
            "name": "https://a.test/app.js",
            "startTime": 5,
            "fetchStart": 5,
            "connectStart": 5,
            "connectEnd": 5,
            "responseEnd": 40,
        }
        restricted = {"name": "https://cdn.other.test/lib.js", "startTime": 8, "responseEnd": 60}

        records = build_fallback_records([same_origin, restricted])

        assert [r.timing.connection_reused for r in records] == [False, False]


class TestSummaries:
    def _record(self, request_id: str, **kwargs) -> NetworkRequestRecord:
        defaults = {"url": f"https://a.test/{request_id}", "domain": "a.test"}
        defaults.update(kwargs)
        return NetworkRequestRecord(request_id=request_id, **defaults)

    def test_summary_statistics(self):
        records = [
            self._record("1", status=200, response_time=100, transfer_size=10, resource_type="script"),
            self._record("2", status=404, response_time=300, transfer_size=20, resource_type="image"),
            self._record("3", status=None, response_time=200, resource_type="image", domain="cdn.test"),
        ]
        summary = summarize_requests(records, pending=2)

        assert summary.total_requests == 3
        assert summary.total_transfer_size == 30
        assert summary.average_response_time == 200
        assert summary.slowest_request.url == "https://a.test/2"
        assert summary.failed_requests == 1
        assert summary.requests_by_type == {"script": 1, "image": 2}
        assert summary.requests_by_domain == {"a.test": 2, "cdn.test": 1}
        assert summary.pending_requests == 2

    def test_empty_summary(self):
        summary = summarize_requests([])
        assert summary.total_requests == 0
        assert summary.slowest_request is None


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://a.test/static/app.js", "script"),
        ("https://a.test/site.css?v=2", "stylesheet"),
        ("https://a.test/logo.svg", "image"),
        ("https://a.test/fonts/x.woff2", "font"),
        ("https://a.test/api/v1/items", "api"),
        ("https://a.test/graphql", "api"),
        ("https://a.test/", "other"),
    ],
)
def test_guess_resource_type(url, expected):
    assert guess_resource_type(url) == expected
