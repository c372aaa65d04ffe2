"""Request and response envelopes of the HTTP API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from obs_query_server.explorer import ExplorerResult
from obs_query_server.models import LogEntry, Trace, TraceSpan


class ExplorerQueryRequest(BaseModel):
    """Body of ``POST /observability/query``.

    Timestamps are kept as raw values so that a malformed timestamp falls back
    to the default window instead of failing the request.
    """

    model_config = ConfigDict(extra="ignore")

    query: Optional[str] = Field(default="", description="Query in SQL-like or native form")
    time_range_from: Optional[Any] = Field(default=None, description="RFC 3339 window start")
    time_range_to: Optional[Any] = Field(default=None, description="RFC 3339 window end")
    provider: Optional[str] = Field(default="", description="Provider name")


class ExplorerQueryData(BaseModel):
    """Data section of an explorer query response."""

    data_source: str = Field(default="")
    results: List[Dict[str, Any]] = Field(default_factory=list)
    total: int = Field(default=0)
    query: str = Field(default="")
    execution_time_ms: int = Field(default=0)

    @classmethod
    def from_result(cls, result: ExplorerResult, query: str) -> "ExplorerQueryData":
        return cls(
            data_source=result.data_source.value,
            results=[item.model_dump(mode="json") for item in result.results],
            total=result.total,
            query=query,
            execution_time_ms=result.execution_time_ms,
        )


class TraceTimeline(BaseModel):
    """Trace bounds in nanoseconds since epoch."""

    start_time: int
    end_time: int
    duration: int
    services: List[str] = Field(default_factory=list)


class TraceDetailData(BaseModel):
    """Data section of a trace detail response."""

    trace_id: str
    spans: List[TraceSpan] = Field(default_factory=list)
    total: int = Field(default=0)
    timeline: TraceTimeline

    @classmethod
    def from_trace(cls, trace: Trace) -> "TraceDetailData":
        return cls(
            trace_id=trace.trace_id,
            spans=trace.spans,
            total=len(trace.spans),
            timeline=TraceTimeline(
                start_time=trace.start_time_unix_nano,
                end_time=trace.end_time_unix_nano,
                duration=trace.duration_ns,
                services=trace.services,
            ),
        )


class ProvidersData(BaseModel):
    """Data section of the providers listing."""

    logs_providers: List[str] = Field(default_factory=list)
    traces_providers: List[str] = Field(default_factory=list)
    metrics_providers: List[str] = Field(default_factory=list)
    alerts_providers: List[str] = Field(default_factory=list)


class LogsData(BaseModel):
    """Data section of a direct logs query."""

    logs: List[LogEntry] = Field(default_factory=list)
    total: int = Field(default=0)
    has_more: bool = Field(default=False, description="True when the limit was reached")
    provider: str = Field(default="")


def envelope(success: bool, data: Any = None, error: Optional[str] = None) -> Dict[str, Any]:
    """Build the ``{success, error?, data}`` response body."""
    body: Dict[str, Any] = {"success": success}
    if error is not None:
        body["error"] = " ".join(error.split())
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    body["data"] = data
    return body
