"""Explorer controller: provider selection and query execution."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import structlog
from pydantic import ValidationError

from obs_query_server.config import ObservabilityConfig
from obs_query_server.drivers.base import (
    AlertsClient,
    BackendError,
    InvalidRequestError,
    LogsClient,
    MetricsClient,
    TimeoutError,
    TraceNotFoundError,
    TracesClient,
)
from obs_query_server.drivers.registry import ProviderRegistries
from obs_query_server.enrichment import enrich_log_entries
from obs_query_server.errors import (
    InvalidArgumentError,
    NotImplementedQueryError,
    ProviderNotFoundError,
    QueryParseError,
    ResourceNotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
)
from obs_query_server.models import (
    Alert,
    DataSource,
    LogEntry,
    LogQuery,
    ParsedQuery,
    Silence,
    Trace,
    TraceQuery,
    TraceSpan,
    TraceSummary,
)
from obs_query_server.query_parser import QueryParser
from obs_query_server.timeutil import parse_duration, to_utc

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 100
DEFAULT_LOOKBACK = timedelta(hours=1)
MAX_LOG_LIMIT = 10000

ExplorerResults = List[Union[LogEntry, TraceSpan]]


@dataclass
class ExplorerResult:
    """Outcome of an explorer query."""

    data_source: DataSource
    results: ExplorerResults
    total: int
    execution_time_ms: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def upstream_error(action: str, error: BackendError, data_source: Optional[str] = None) -> UpstreamError:
    """Wrap a driver error, keeping timeouts distinguishable."""
    error_class = UpstreamTimeoutError if isinstance(error, TimeoutError) else UpstreamError
    return error_class(f"failed to {action}: {error}", data_source=data_source)


class ExplorerController:
    """Executes explorer queries against the registered providers.

    The controller holds read-only maps from provider name to client and
    never mutates them. Logs queries are a single provider call; traces
    queries search first and then fetch each matching trace, skipping traces
    whose detail fetch fails.
    """

    def __init__(
        self,
        logs_providers: Mapping[str, LogsClient],
        traces_providers: Mapping[str, TracesClient],
        metrics_providers: Optional[Mapping[str, MetricsClient]] = None,
        alerts_providers: Optional[Mapping[str, AlertsClient]] = None,
        parser: Optional[QueryParser] = None,
        default_limit: int = DEFAULT_LIMIT,
        default_lookback: timedelta = DEFAULT_LOOKBACK,
        trace_fetch_concurrency: int = 4,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.logs_providers = logs_providers
        self.traces_providers = traces_providers
        self.metrics_providers = metrics_providers or {}
        self.alerts_providers = alerts_providers or {}
        self.parser = parser or QueryParser()
        self.default_limit = default_limit
        self.default_lookback = default_lookback
        self.trace_fetch_concurrency = max(1, trace_fetch_concurrency)
        self.clock = clock
        self.logger = logger.bind(component="explorer")

    @classmethod
    def from_registries(
        cls,
        registries: ProviderRegistries,
        config: Optional[ObservabilityConfig] = None
    ) -> "ExplorerController":
        """Create a controller over built provider registries."""
        config = config or ObservabilityConfig()
        return cls(
            logs_providers=registries.logs,
            traces_providers=registries.traces,
            metrics_providers=registries.metrics,
            alerts_providers=registries.alerts,
            default_limit=config.default_limit,
            default_lookback=parse_duration(config.default_lookback),
            trace_fetch_concurrency=config.trace_fetch_concurrency,
        )

    def resolve_window(
        self,
        time_from: Optional[datetime],
        time_to: Optional[datetime]
    ) -> Tuple[datetime, datetime]:
        """Fill in the default window and normalize both ends to UTC.

        An inverted window is returned unchanged for the provider to reject.
        """
        now = self.clock()
        end = to_utc(time_to) if time_to else to_utc(now)
        start = to_utc(time_from) if time_from else to_utc(now) - self.default_lookback
        return start, end

    async def execute(
        self,
        query: str,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        provider: str = ""
    ) -> ExplorerResult:
        """Parse and run an explorer query.

        Args:
            query: Query text
            time_from: Window start; defaults to the lookback before now
            time_to: Window end; defaults to now
            provider: Name of the provider to query

        Returns:
            ExplorerResult with results, total and execution time

        Raises:
            QueryParseError: If the query cannot be parsed
            InvalidArgumentError: If the provider name is missing
            ProviderNotFoundError: If no provider of that name serves the data source
            NotImplementedQueryError: For metrics queries
            UpstreamError: If the provider call fails
        """
        started = time.perf_counter()

        try:
            parsed = self.parser.parse(query)
        except QueryParseError as e:
            raise QueryParseError(f"failed to parse query: {e}", reason=e.reason) from e

        if not provider:
            raise InvalidArgumentError("provider is required", data_source=parsed.data_source.value)

        start, end = self.resolve_window(time_from, time_to)

        if parsed.data_source == DataSource.LOGS:
            results, total = await self.execute_logs(parsed, start, end, provider)
        elif parsed.data_source == DataSource.TRACES:
            results, total = await self.execute_traces(parsed, start, end, provider)
        else:
            raise NotImplementedQueryError(
                "metrics queries not yet implemented",
                data_source=DataSource.METRICS.value
            )

        execution_time_ms = max(0, round((time.perf_counter() - started) * 1000))

        self.logger.info(
            "Explorer query executed",
            data_source=parsed.data_source.value,
            provider=provider,
            total=total,
            execution_time_ms=execution_time_ms
        )

        return ExplorerResult(
            data_source=parsed.data_source,
            results=results,
            total=total,
            execution_time_ms=execution_time_ms,
        )

    async def execute_logs(
        self,
        parsed: ParsedQuery,
        start: datetime,
        end: datetime,
        provider: str
    ) -> Tuple[List[LogEntry], int]:
        """Run a logs query; total is the number of entries returned."""
        client = self.get_logs_client(provider)

        log_query = LogQuery(
            service=parsed.string_filter("service"),
            level=parsed.string_filter("level"),
            query=parsed.raw_query or None,
            start_time=start,
            end_time=end,
            limit=self.default_limit,
        )

        try:
            entries = await client.query_logs(log_query)
        except BackendError as e:
            raise upstream_error("query logs", e, DataSource.LOGS.value) from e

        return entries, len(entries)

    async def execute_traces(
        self,
        parsed: ParsedQuery,
        start: datetime,
        end: datetime,
        provider: str
    ) -> Tuple[List[TraceSpan], int]:
        """Search traces, then fetch each one; total is the number of spans returned."""
        client = self.get_traces_client(provider)

        try:
            trace_query = TraceQuery(
                service=parsed.string_filter("service"),
                operation=parsed.string_filter("operation"),
                min_duration=parsed.string_filter("min_duration"),
                max_duration=parsed.string_filter("max_duration"),
                start_time=start,
                end_time=end,
                limit=self.default_limit,
            )
        except ValidationError as e:
            raise InvalidArgumentError(
                f"invalid trace query: {e.errors()[0]['msg']}",
                data_source=DataSource.TRACES.value
            ) from e

        try:
            summaries = await client.query_traces(trace_query)
        except BackendError as e:
            raise upstream_error("query traces", e, DataSource.TRACES.value) from e

        traces = await self.fetch_trace_details(client, summaries, provider)
        spans = [span for trace in traces for span in trace.spans]
        return spans, len(spans)

    async def fetch_trace_details(
        self,
        client: TracesClient,
        summaries: Sequence[TraceSummary],
        provider: str = ""
    ) -> List[Trace]:
        """Fetch full traces in search order, dropping those that fail."""
        semaphore = asyncio.Semaphore(self.trace_fetch_concurrency)

        async def fetch(summary: TraceSummary) -> Optional[Trace]:
            async with semaphore:
                try:
                    trace = await client.get_trace_detail(summary.trace_id)
                except BackendError as e:
                    self.logger.warning(
                        "Skipping trace, detail fetch failed",
                        provider=provider,
                        trace_id=summary.trace_id,
                        error=str(e)
                    )
                    return None
            self._log_orphan_spans(trace)
            return trace

        fetched = await asyncio.gather(*(fetch(summary) for summary in summaries))
        return [trace for trace in fetched if trace is not None]

    async def get_trace_detail(self, provider: str, trace_id: str) -> Trace:
        """Fetch one full trace."""
        if not trace_id:
            raise InvalidArgumentError("trace_id is required")
        client = self.get_traces_client(provider)
        try:
            trace = await client.get_trace_detail(trace_id)
        except TraceNotFoundError as e:
            raise ResourceNotFoundError(f"trace not found: {trace_id}") from e
        except InvalidRequestError as e:
            raise InvalidArgumentError(str(e)) from e
        except BackendError as e:
            raise upstream_error("get trace", e) from e
        self._log_orphan_spans(trace)
        return trace

    async def query_logs(
        self,
        provider: str,
        service: Optional[str] = None,
        level: Optional[str] = None,
        query: Optional[str] = None,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[LogEntry]:
        """Query a logs provider directly and enrich the entries.

        Args:
            provider: Name of the logs provider
            service: Service filter
            level: Level filter
            query: Raw provider-dialect query; wins over the filters
            time_from: Window start; defaults to the lookback before now
            time_to: Window end; defaults to now
            limit: Maximum number of entries; 0 or None uses the default limit

        Returns:
            Enriched log entries in provider order

        Raises:
            InvalidArgumentError: If the limit or window is invalid
            ProviderNotFoundError: If no logs provider has that name
            UpstreamError: If the provider call fails
        """
        client = self.get_logs_client(provider)
        start, end = self.resolve_window(time_from, time_to)

        if limit is not None and limit < 0:
            raise InvalidArgumentError("invalid query: limit cannot be negative")
        if limit is not None and limit > MAX_LOG_LIMIT:
            raise InvalidArgumentError(f"invalid query: limit cannot exceed {MAX_LOG_LIMIT}")
        if start > end:
            raise InvalidArgumentError("invalid query: start time cannot be after end time")

        log_query = LogQuery(
            service=service or None,
            level=level or None,
            query=query or None,
            start_time=start,
            end_time=end,
            limit=limit or self.default_limit,
        )

        try:
            entries = await client.query_logs(log_query)
        except BackendError as e:
            raise upstream_error("query logs", e) from e

        return enrich_log_entries(entries)

    async def get_alerts(self, provider: str, state: Optional[str] = None) -> List[Alert]:
        """List alerts of an alerts provider, optionally in one state."""
        client = self.get_alerts_client(provider)
        try:
            return await client.get_alerts(state or None)
        except InvalidRequestError as e:
            raise InvalidArgumentError(str(e)) from e
        except BackendError as e:
            raise upstream_error("get alerts", e) from e

    async def get_silences(self, provider: str) -> List[Silence]:
        """List silences of an alerts provider."""
        client = self.get_alerts_client(provider)
        try:
            return await client.get_silences()
        except BackendError as e:
            raise upstream_error("get silences", e) from e

    async def get_log_labels(self, provider: str) -> List[str]:
        """List label names of a logs provider."""
        client = self.get_logs_client(provider)
        try:
            return await client.get_log_labels()
        except BackendError as e:
            raise upstream_error("get log labels", e) from e

    async def get_log_levels(self, provider: str) -> List[str]:
        """List level values of a logs provider."""
        client = self.get_logs_client(provider)
        try:
            return await client.get_log_levels()
        except BackendError as e:
            raise upstream_error("get log levels", e) from e

    async def get_trace_services(self, provider: str) -> List[str]:
        """List service names of a traces provider."""
        client = self.get_traces_client(provider)
        try:
            return await client.get_services()
        except BackendError as e:
            raise upstream_error("get services", e) from e

    async def get_metric_names(self, provider: str) -> List[str]:
        """List metric names of a metrics provider."""
        client = self._lookup(self.metrics_providers, DataSource.METRICS.value, provider)
        try:
            return await client.get_metric_names()
        except BackendError as e:
            raise upstream_error("get metric names", e) from e

    async def check_health(self) -> Dict[str, str]:
        """Run every provider health check concurrently.

        Returns:
            Mapping of ``kind/name`` to ``"ok"`` or the error message
        """
        checks = []
        for kind, providers in (
            ("logs", self.logs_providers),
            ("traces", self.traces_providers),
            ("metrics", self.metrics_providers),
            ("alerts", self.alerts_providers),
        ):
            for name, client in providers.items():
                checks.append((f"{kind}/{name}", client))

        async def check(client) -> str:
            try:
                await client.health_check()
            except BackendError as e:
                return str(e)
            return "ok"

        outcomes = await asyncio.gather(*(check(client) for _, client in checks))
        status = {key: outcome for (key, _), outcome in zip(checks, outcomes)}

        unhealthy = [key for key, outcome in status.items() if outcome != "ok"]
        if unhealthy:
            self.logger.warning("Unhealthy providers", providers=unhealthy)
        return status

    def get_logs_client(self, provider: str) -> LogsClient:
        return self._lookup(self.logs_providers, DataSource.LOGS.value, provider)

    def get_traces_client(self, provider: str) -> TracesClient:
        return self._lookup(self.traces_providers, DataSource.TRACES.value, provider)

    def get_alerts_client(self, provider: str) -> AlertsClient:
        return self._lookup(self.alerts_providers, "alerts", provider)

    def _lookup(self, providers: Mapping, kind: str, provider: str):
        if not provider:
            raise InvalidArgumentError("provider is required", data_source=kind)
        client = providers.get(provider)
        if client is None:
            raise ProviderNotFoundError(f"{kind} provider not found: {provider}", data_source=kind)
        return client

    def _log_orphan_spans(self, trace: Trace) -> None:
        orphans = trace.orphan_spans()
        if orphans:
            self.logger.warning(
                "Trace has spans with unknown parents",
                trace_id=trace.trace_id,
                orphan_count=len(orphans),
                span_ids=[span.span_id for span in orphans[:10]]
            )
