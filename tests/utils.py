"""Test utilities for Observability Query Server."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from obs_query_server.drivers.base import (
    AlertsClient,
    LogsClient,
    MetricsClient,
    TraceNotFoundError,
    TracesClient,
)
from obs_query_server.models import (
    Alert,
    LogEntry,
    LogQuery,
    Silence,
    Trace,
    TraceQuery,
    TraceSpan,
    TraceSummary,
)
from obs_query_server.timeutil import unix_nano_to_datetime

BASE_TIME_NS = 1735689600000000000  # 2025-01-01T00:00:00Z

RouteResult = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class MockBackend:
    """In-memory HTTP backend for driver tests, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: Dict[str, RouteResult] = {}
        self.requests: List[httpx.Request] = []

    def add_json(self, path: str, body: Any, status_code: int = 200) -> None:
        self.routes[path] = httpx.Response(status_code, json=body)

    def add_text(self, path: str, text: str, status_code: int = 200) -> None:
        self.routes[path] = httpx.Response(status_code, text=text)

    def add_error(self, path: str, error: Exception) -> None:
        self.routes[path] = error

    def add_handler(self, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[path] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text=f"no route for {request.url.path}")
        if isinstance(route, Exception):
            raise route
        if callable(route) and not isinstance(route, httpx.Response):
            return route(request)
        return route

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def last_request(self) -> httpx.Request:
        assert self.requests, "no requests recorded"
        return self.requests[-1]

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


def make_log_entry(message: str = "hello", ts_ns: int = BASE_TIME_NS, **kwargs: Any) -> LogEntry:
    """Create a log entry."""
    return LogEntry(
        id=f"{ts_ns}_{len(message)}",
        timestamp=unix_nano_to_datetime(ts_ns),
        timestamp_unix_nano=ts_ns,
        message=message,
        **kwargs,
    )


def make_span(
    trace_id: str,
    span_id: str,
    parent_span_id: Optional[str] = None,
    service_name: str = "api",
    start_ns: int = BASE_TIME_NS,
    duration_ns: int = 1_000_000,
) -> TraceSpan:
    """Create a span."""
    return TraceSpan(
        trace_id=trace_id,
        span_id=span_id,
        parent_span_id=parent_span_id,
        operation_name=f"op-{span_id}",
        service_name=service_name,
        start_time=unix_nano_to_datetime(start_ns),
        start_time_unix_nano=start_ns,
        duration_ns=duration_ns,
    )


def make_trace(trace_id: str, span_count: int, service_name: str = "api") -> Trace:
    """Create a trace whose spans form a chain."""
    spans = []
    for i in range(span_count):
        spans.append(make_span(
            trace_id,
            f"{trace_id}-s{i}",
            parent_span_id=f"{trace_id}-s{i - 1}" if i > 0 else None,
            service_name=service_name,
            start_ns=BASE_TIME_NS + i * 1_000_000,
        ))
    return Trace.from_spans(trace_id, spans)


def make_summary(trace_id: str, span_count: int = 1) -> TraceSummary:
    """Create a trace summary."""
    return TraceSummary(
        trace_id=trace_id,
        root_service="api",
        root_operation="GET /",
        start_time=datetime(2025, 1, 1, tzinfo=timezone.utc),
        duration_ns=5_000_000,
        span_count=span_count,
    )


class FakeLogsClient(LogsClient):
    """LogsClient returning canned entries and recording queries."""

    def __init__(
        self,
        entries: Optional[List[LogEntry]] = None,
        labels: Optional[List[str]] = None,
        levels: Optional[List[str]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.entries = entries or []
        self.labels = labels or []
        self.levels = levels or []
        self.error = error
        self.queries: List[LogQuery] = []
        self.health_checks = 0

    async def query_logs(self, query: LogQuery) -> List[LogEntry]:
        self.queries.append(query)
        if self.error:
            raise self.error
        return list(self.entries)

    async def get_log_labels(self) -> List[str]:
        if self.error:
            raise self.error
        return list(self.labels)

    async def get_log_levels(self) -> List[str]:
        if self.error:
            raise self.error
        return list(self.levels)

    async def health_check(self) -> None:
        self.health_checks += 1
        if self.error:
            raise self.error


class FakeTracesClient(TracesClient):
    """TracesClient returning canned summaries and traces.

    ``failures`` maps trace IDs to the error their detail fetch raises and
    ``delays`` to a sleep before answering.
    """

    def __init__(
        self,
        summaries: Optional[List[TraceSummary]] = None,
        traces: Optional[Dict[str, Trace]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        delays: Optional[Dict[str, float]] = None,
        search_error: Optional[Exception] = None,
        services: Optional[List[str]] = None,
    ) -> None:
        self.summaries = summaries or []
        self.traces = traces or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.search_error = search_error
        self.services = services or []
        self.queries: List[TraceQuery] = []
        self.detail_calls: List[str] = []

    async def query_traces(self, query: TraceQuery) -> List[TraceSummary]:
        self.queries.append(query)
        if self.search_error:
            raise self.search_error
        return list(self.summaries)

    async def get_trace_detail(self, trace_id: str) -> Trace:
        self.detail_calls.append(trace_id)
        if trace_id in self.delays:
            await asyncio.sleep(self.delays[trace_id])
        if trace_id in self.failures:
            raise self.failures[trace_id]
        if trace_id not in self.traces:
            raise TraceNotFoundError(f"trace not found: {trace_id}")
        return self.traces[trace_id]

    async def get_services(self) -> List[str]:
        return list(self.services)

    async def health_check(self) -> None:
        if self.search_error:
            raise self.search_error


class FakeMetricsClient(MetricsClient):
    """MetricsClient returning canned metric names."""

    def __init__(self, names: Optional[List[str]] = None) -> None:
        self.names = names or []

    async def get_metric_names(self) -> List[str]:
        return list(self.names)

    async def health_check(self) -> None:
        return None


class FakeAlertsClient(AlertsClient):
    """AlertsClient returning canned alerts and recording the requested states."""

    def __init__(
        self,
        alerts: Optional[List[Alert]] = None,
        silences: Optional[List[Silence]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.alerts = alerts or []
        self.silences = silences or []
        self.error = error
        self.states: List[Optional[str]] = []

    async def get_alerts(self, state: Optional[str] = None) -> List[Alert]:
        self.states.append(state)
        if self.error:
            raise self.error
        return list(self.alerts)

    async def get_silences(self) -> List[Silence]:
        if self.error:
            raise self.error
        return list(self.silences)

    async def health_check(self) -> None:
        if self.error:
            raise self.error
