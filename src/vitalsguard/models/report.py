"""Report data models for vitalsguard run outputs.

These models encode the produced output contract: per-scenario
reports (vitals, page timing, network records and summary, optional
execution profile) and the batch result with its run summary.

Models serialize with camelCase keys (metric keys stay upper-case) and
are frozen once assembled. Dump with ``by_alias=True`` to get the
published JSON shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

_REPORT_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "frozen": True,
}


class VitalsMetricSet(BaseModel):
    """Core Web Vitals observed for one scenario run (all optional)."""

    model_config = {"populate_by_name": True, "frozen": True}

    fcp: float | None = Field(default=None, alias="FCP")
    lcp: float | None = Field(default=None, alias="LCP")
    fid: float | None = Field(default=None, alias="FID")
    cls: float | None = Field(default=None, alias="CLS")
    inp: float | None = Field(default=None, alias="INP")
    ttfb: float | None = Field(default=None, alias="TTFB")

    def get(self, metric: str) -> float | None:
        """Look up an observed value by metric name such as ``"CLS"``."""
        return getattr(self, metric.lower(), None)

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class PerformanceTiming(BaseModel):
    """Navigation-timing derived page milestones, in milliseconds."""

    model_config = _REPORT_CONFIG

    load_time: float = 0.0
    dom_content_loaded: float = 0.0
    first_paint: float = 0.0


TimingDiscrepancy = Literal["consistent", "overlap", "undercount"]


class NetworkTiming(BaseModel):
    """Decomposed request timing, in milliseconds.

    ``total_time`` is the wall-clock delta between request start and
    loading finished. ``timing_sum`` is the arithmetic sum of the
    decomposed phases; the two legitimately differ for reused
    connections and cached responses, which ``discrepancy`` labels.
    """

    model_config = _REPORT_CONFIG

    dns_lookup: float = 0.0
    tcp_connect: float = 0.0
    ssl_handshake: float = 0.0
    request_send: float = 0.0
    wait_time: float = 0.0
    response_receive: float = 0.0
    redirect_time: float = 0.0
    content_download_time: float = 0.0
    total_time: float = 0.0
    timing_sum: float = 0.0
    from_cache: bool = False
    connection_reused: bool = False
    discrepancy: TimingDiscrepancy = "consistent"


class RequestHeaders(BaseModel):
    model_config = _REPORT_CONFIG

    request: dict[str, Any] = Field(default_factory=dict)
    response: dict[str, Any] = Field(default_factory=dict)


class SecurityInfo(BaseModel):
    model_config = _REPORT_CONFIG

    state: str | None = None
    details: dict[str, Any] | None = None


class ConnectionInfo(BaseModel):
    model_config = _REPORT_CONFIG

    id: float | int | None = None
    remote_ip: str | None = Field(default=None, alias="remoteIP")
    remote_port: int | None = None
    reused: bool = False


class NetworkRequestRecord(BaseModel):
    """A finalized network request joined from its lifecycle events.

    Headers, security and connection detail are only available when the
    record came from the protocol session; resource-timing records leave
    them unset along with method and status.
    """

    model_config = _REPORT_CONFIG

    request_id: str
    url: str
    method: str | None = None
    status: int | None = None
    status_text: str | None = None
    response_time: float = Field(default=0.0, ge=0)
    transfer_size: int = Field(default=0, ge=0)
    encoded_body_size: int = Field(default=0, ge=0)
    decoded_body_size: int | None = Field(default=None, ge=0)
    start_time: float = 0.0
    end_time: float = 0.0
    duration: float = Field(default=0.0, ge=0)
    resource_type: str = "other"
    from_cache: bool = False
    protocol: str = ""
    domain: str = ""
    timing: NetworkTiming = Field(default_factory=NetworkTiming)
    headers: RequestHeaders | None = None
    security: SecurityInfo | None = None
    connection: ConnectionInfo | None = None
    initiator: dict[str, Any] | None = None
    redirect_chain: list[dict[str, Any]] = Field(default_factory=list)


class SlowestRequest(BaseModel):
    model_config = _REPORT_CONFIG

    url: str
    response_time: float


class NetworkSummary(BaseModel):
    """Aggregate statistics over the finalized request records."""

    model_config = _REPORT_CONFIG

    total_requests: int = 0
    total_transfer_size: int = 0
    total_encoded_size: int = 0
    total_decoded_size: int = 0
    average_response_time: float = 0.0
    slowest_request: SlowestRequest | None = None
    failed_requests: int = 0
    requests_by_type: dict[str, int] = Field(default_factory=dict)
    requests_by_domain: dict[str, int] = Field(default_factory=dict)
    pending_requests: int = 0


NetworkSource = Literal["cdp", "resource-timing"]


class NetworkReport(BaseModel):
    """Network section of a scenario report."""

    model_config = _REPORT_CONFIG

    source: NetworkSource = "cdp"
    requests: list[NetworkRequestRecord] = Field(default_factory=list)
    summary: NetworkSummary = Field(default_factory=NetworkSummary)


class FunctionProfile(BaseModel):
    model_config = _REPORT_CONFIG

    name: str
    time: float
    percentage: float
    calls: int
    average_time: float
    source: str
    line: int


class ThirdPartyScript(BaseModel):
    model_config = _REPORT_CONFIG

    domain: str
    time: float
    percentage: float
    functions: int


class ThirdPartyImpact(BaseModel):
    model_config = _REPORT_CONFIG

    total_time: float = 0.0
    percentage: float = 0.0
    scripts: list[ThirdPartyScript] = Field(default_factory=list)


class ExecutionEfficiency(BaseModel):
    model_config = _REPORT_CONFIG

    js_execution_percentage: float = 0.0
    idle_time_percentage: float = 0.0
    main_thread_blocking_time: float = 0.0


class ProfileSummary(BaseModel):
    """Summary of a sampled CPU profile captured around scenario steps."""

    model_config = _REPORT_CONFIG

    profile_duration: float = 0.0
    total_execution_time: float = 0.0
    total_functions: int = 0
    total_calls: int = 0
    longest_function_time: float = 0.0
    top_functions: list[FunctionProfile] = Field(default_factory=list)
    function_call_frequency: dict[str, int] = Field(default_factory=dict)
    third_party_impact: ThirdPartyImpact = Field(default_factory=ThirdPartyImpact)
    execution_efficiency: ExecutionEfficiency = Field(default_factory=ExecutionEfficiency)


class ScenarioReport(BaseModel):
    """Complete telemetry for a single scenario run."""

    model_config = _REPORT_CONFIG

    scenario: str
    url: str
    timestamp: datetime
    metrics: VitalsMetricSet = Field(default_factory=VitalsMetricSet)
    performance: PerformanceTiming = Field(default_factory=PerformanceTiming)
    network: NetworkReport = Field(default_factory=NetworkReport)
    profile: ProfileSummary | None = None


class RunSummary(BaseModel):
    """Scenario counts and flattened budget violations for a batch."""

    model_config = _REPORT_CONFIG

    total_scenarios: int = 0
    passed: int = 0
    failed: int = 0
    budget_violations: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.budget_violations


class BatchResult(BaseModel):
    """Result of running every discovered scenario once."""

    model_config = _REPORT_CONFIG

    run_id: str = ""
    started_at: datetime | None = None
    reports: list[ScenarioReport] = Field(default_factory=list)
    summary: RunSummary = Field(default_factory=RunSummary)
