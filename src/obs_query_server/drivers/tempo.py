"""Grafana Tempo driver for trace queries."""

import re
from typing import Any, Dict, List, Union
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from obs_query_server.drivers.base import (
    BackendError,
    BaseDriver,
    InvalidRequestError,
    QueryError,
    TraceNotFoundError,
    TracesClient,
)
from obs_query_server.drivers.otlp import (
    SearchResponse,
    SearchTrace,
    Span,
    TraceByIDResponse,
    attributes_to_dict,
    normalize_id,
)
from obs_query_server.models import (
    SpanLog,
    SpanReference,
    SpanStatus,
    Trace,
    TraceQuery,
    TraceSpan,
    TraceSummary,
)
from obs_query_server.timeutil import to_utc, unix_nano_to_datetime

SERVICE_NAME_ATTRIBUTE = "service.name"

# Tempo drops leading zeros, so odd lengths are valid
_TRACE_ID = re.compile(r"[0-9a-fA-F]{1,32}")


class TagValue(BaseModel):
    type: str = Field(default="")
    value: str = Field(default="")


class TagValuesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tag_values: List[Union[str, TagValue]] = Field(default_factory=list, alias="tagValues")


def escape_traceql_value(value: str) -> str:
    """Escape a value for use inside a double-quoted TraceQL string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


class TempoDriver(BaseDriver, TracesClient):
    """Driver for Grafana Tempo.

    Searches with TraceQL, then materializes full traces from the OTLP JSON
    returned by the trace-by-id API.
    """

    DRIVER_NAME = "tempo"

    @staticmethod
    def build_traceql(query: TraceQuery) -> str:
        """Build a TraceQL span selector; no conditions selects every span."""
        conditions = []
        if query.service:
            conditions.append(f'resource.service.name="{escape_traceql_value(query.service)}"')
        if query.operation:
            conditions.append(f'name="{escape_traceql_value(query.operation)}"')
        for key, value in query.tags.items():
            conditions.append(f'span.{key}="{escape_traceql_value(value)}"')
        if query.min_duration:
            conditions.append(f"duration>={query.min_duration}")
        if query.max_duration:
            conditions.append(f"duration<={query.max_duration}")

        if not conditions:
            return "{}"
        return "{" + " && ".join(conditions) + "}"

    def build_search_params(self, query: TraceQuery) -> Dict[str, Any]:
        """Build /api/search parameters; start and end are Unix seconds."""
        params: Dict[str, Any] = {"q": self.build_traceql(query)}
        if query.start_time:
            params["start"] = int(to_utc(query.start_time).timestamp())
        if query.end_time:
            params["end"] = int(to_utc(query.end_time).timestamp())
        if query.limit:
            params["limit"] = query.limit
        if query.spss:
            params["spss"] = query.spss
        return params

    async def query_traces(self, query: TraceQuery) -> List[TraceSummary]:
        """Search traces with TraceQL."""
        data = await self._get_json("/api/search", params=self.build_search_params(query))
        response = self._parse_response(SearchResponse, data)
        try:
            return [self._build_summary(trace) for trace in response.traces]
        except OverflowError as e:
            raise QueryError(f"tempo error: timestamp out of range: {e}") from e

    async def get_trace_detail(self, trace_id: str) -> Trace:
        """Fetch a trace by ID and convert every span of every batch."""
        hex_id = normalize_id(trace_id.strip())
        if not hex_id:
            raise InvalidRequestError("tempo error: trace id is required")
        if not _TRACE_ID.fullmatch(hex_id):
            raise InvalidRequestError(f"tempo error: invalid trace id {trace_id!r}")
        hex_id = hex_id.lower()

        data = await self._get_json(f"/api/traces/{hex_id}")
        response = self._parse_response(TraceByIDResponse, data)

        spans: List[TraceSpan] = []
        try:
            for batch in response.all_batches():
                resource_attributes = attributes_to_dict(batch.resource.attributes)
                service_name = str(resource_attributes.get(SERVICE_NAME_ATTRIBUTE) or "")
                for span in batch.iter_spans():
                    spans.append(self._build_span(span, service_name, hex_id))
        except OverflowError as e:
            raise QueryError(f"tempo error: timestamp out of range: {e}") from e

        if not spans:
            raise TraceNotFoundError(f"tempo error: trace not found: {trace_id}")

        return Trace.from_spans(spans[0].trace_id or hex_id, spans)

    async def get_tag_values(self, tag: str) -> List[str]:
        """List the values of one tag."""
        data = await self._get_json(f"/api/search/tag/{quote(tag, safe='')}/values")
        response = self._parse_response(TagValuesResponse, data)
        return [v if isinstance(v, str) else v.value for v in response.tag_values]

    async def get_services(self) -> List[str]:
        """List service names."""
        return await self.get_tag_values(SERVICE_NAME_ATTRIBUTE)

    async def health_check(self) -> None:
        """Tempo is healthy when it can list search tags."""
        await self._get_json("/api/search/tags")

    def _error_from_response(self, response: httpx.Response) -> BackendError:
        message = ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = str(body.get("message") or body.get("error") or "")
        if not message:
            message = response.text.strip() or response.reason_phrase

        text = f"tempo error (HTTP {response.status_code}): {message}"
        if response.status_code == 404 and "/api/traces/" in response.request.url.path:
            return TraceNotFoundError(text)
        return QueryError(text)

    def _build_summary(self, trace: SearchTrace) -> TraceSummary:
        """Convert a search result; services and span count come from matched span sets."""
        services: List[str] = []
        span_count = 0
        for span_set in trace.all_span_sets():
            span_count += span_set.matched or len(span_set.spans)
            for span in span_set.spans:
                service = attributes_to_dict(span.attributes).get(SERVICE_NAME_ATTRIBUTE)
                if service and str(service) not in services:
                    services.append(str(service))

        return TraceSummary(
            trace_id=trace.trace_id,
            root_service=trace.root_service_name,
            root_operation=trace.root_trace_name,
            start_time=unix_nano_to_datetime(trace.start_time_unix_nano),
            duration_ns=int(round((trace.duration_ms or 0) * 1_000_000)),
            span_count=span_count,
            services=services,
        )

    def _build_span(self, span: Span, service_name: str, fallback_trace_id: str) -> TraceSpan:
        """Convert an OTLP span to a TraceSpan."""
        start_ns = span.start_time_unix_nano
        duration_ns = max(span.end_time_unix_nano - start_ns, 0)

        logs = [
            SpanLog(
                timestamp=unix_nano_to_datetime(event.time_unix_nano),
                fields={"event": event.name, **attributes_to_dict(event.attributes)},
            )
            for event in span.events
        ]

        references = [
            SpanReference(
                ref_type="FOLLOWS_FROM",
                trace_id=normalize_id(link.trace_id),
                span_id=normalize_id(link.span_id),
            )
            for link in span.links
        ]

        return TraceSpan(
            trace_id=normalize_id(span.trace_id) or fallback_trace_id,
            span_id=normalize_id(span.span_id),
            parent_span_id=normalize_id(span.parent_span_id) or None,
            operation_name=span.name,
            service_name=service_name,
            kind=span.kind,
            start_time=unix_nano_to_datetime(start_ns),
            start_time_unix_nano=start_ns,
            duration_ns=duration_ns,
            tags=attributes_to_dict(span.attributes),
            status=SpanStatus(code=span.status.code, message=span.status.message),
            logs=logs,
            references=references,
        )
