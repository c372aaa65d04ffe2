"""Pydantic models for Observability Query Server."""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from obs_query_server.timeutil import parse_duration_ns


class DataSource(str, Enum):
    """Kind of result an explorer query produces."""

    LOGS = "logs"
    TRACES = "traces"
    METRICS = "metrics"


class StatusCode(IntEnum):
    """Span status code."""

    UNSET = 0
    OK = 1
    ERROR = 2


class SpanKind(IntEnum):
    """Span kind enumeration."""

    UNSPECIFIED = 0
    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5


class LogEntry(BaseModel):
    """Individual log entry.

    Entries are equal when their ids are equal; two identical lines at the
    same timestamp therefore collapse to one.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identifier derived from timestamp and content")
    timestamp: datetime = Field(..., description="Log timestamp (UTC)")
    timestamp_unix_nano: int = Field(default=0, description="Timestamp in nanoseconds since epoch")
    level: str = Field(default="", description="Lower-cased log level, empty if unknown")
    service: str = Field(default="", description="Service that generated the log")
    host: str = Field(default="", description="Host that generated the log")
    source: str = Field(default="", description="Source file or stream")
    message: str = Field(..., description="Log message")
    trace_id: Optional[str] = Field(default=None)
    span_id: Optional[str] = Field(default=None)
    labels: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("level")
    @classmethod
    def lowercase_level(cls, v: str) -> str:
        """Levels are lower-cased on the neutral side."""
        return v.lower()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogEntry):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class SpanStatus(BaseModel):
    """Span status information."""

    code: StatusCode = Field(default=StatusCode.UNSET)
    message: str = Field(default="")


class SpanLog(BaseModel):
    """Timestamped event recorded on a span."""

    timestamp: datetime = Field(..., description="Event timestamp")
    fields: Dict[str, Any] = Field(default_factory=dict)


class SpanReference(BaseModel):
    """Reference from a span to another span."""

    ref_type: str = Field(default="FOLLOWS_FROM", description="Reference type")
    trace_id: str = Field(..., description="Referenced trace ID")
    span_id: str = Field(..., description="Referenced span ID")


class TraceSpan(BaseModel):
    """Individual span within a trace."""

    trace_id: str = Field(..., description="Trace ID")
    span_id: str = Field(..., description="Span ID")
    parent_span_id: Optional[str] = Field(default=None)
    operation_name: str = Field(..., description="Operation name")
    service_name: str = Field(default="", description="Service name")
    kind: SpanKind = Field(default=SpanKind.UNSPECIFIED)
    start_time: datetime = Field(..., description="Span start time")
    start_time_unix_nano: int = Field(default=0, description="Start time in nanoseconds since epoch")
    duration_ns: int = Field(default=0, description="Duration in nanoseconds")
    tags: Dict[str, Any] = Field(default_factory=dict)
    status: SpanStatus = Field(default_factory=SpanStatus)
    logs: List[SpanLog] = Field(default_factory=list)
    references: List[SpanReference] = Field(default_factory=list)

    @property
    def end_time_unix_nano(self) -> int:
        """End time in nanoseconds since epoch."""
        return self.start_time_unix_nano + self.duration_ns


class TraceSummary(BaseModel):
    """One row of a trace search listing."""

    trace_id: str = Field(..., description="Trace ID")
    root_service: str = Field(default="", description="Root service name")
    root_operation: str = Field(default="", description="Root operation name")
    start_time: datetime = Field(..., description="Trace start time")
    duration_ns: int = Field(default=0, description="Duration in nanoseconds")
    span_count: int = Field(default=0, description="Number of spans that matched the search")
    services: List[str] = Field(default_factory=list, description="Services seen in matched spans")


class Trace(BaseModel):
    """Distributed trace containing multiple spans."""

    trace_id: str = Field(..., description="Unique trace identifier")
    spans: List[TraceSpan] = Field(..., description="Spans in adapter walk order")
    start_time: datetime = Field(..., description="Earliest span start time")
    start_time_unix_nano: int = Field(default=0)
    duration_ns: int = Field(..., description="Latest span end minus earliest span start")
    services: List[str] = Field(default_factory=list, description="Services involved in trace")

    @property
    def end_time_unix_nano(self) -> int:
        """End time in nanoseconds since epoch."""
        return self.start_time_unix_nano + self.duration_ns

    @classmethod
    def from_spans(cls, trace_id: str, spans: List[TraceSpan]) -> "Trace":
        """Create a Trace from a list of spans."""
        if not spans:
            raise ValueError(f"trace not found: {trace_id}")

        first = min(spans, key=lambda s: s.start_time_unix_nano)
        end = max(s.end_time_unix_nano for s in spans)

        services: List[str] = []
        for span in spans:
            if span.service_name and span.service_name not in services:
                services.append(span.service_name)

        return cls(
            trace_id=trace_id,
            spans=spans,
            start_time=first.start_time,
            start_time_unix_nano=first.start_time_unix_nano,
            duration_ns=end - first.start_time_unix_nano,
            services=services
        )

    def orphan_spans(self) -> List[TraceSpan]:
        """Spans whose parent is not part of this trace."""
        span_ids = {span.span_id for span in self.spans}
        return [
            span for span in self.spans
            if span.parent_span_id and span.parent_span_id not in span_ids
        ]


class Alert(BaseModel):
    """Alert instance reported by an alert manager."""

    id: str = Field(..., description="Alert fingerprint")
    name: str = Field(default="", description="Value of the alertname label")
    description: str = Field(default="")
    status: str = Field(default="", description="Alert state: active, suppressed or unprocessed")
    severity: str = Field(default="")
    service: str = Field(default="")
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    starts_at: datetime = Field(..., description="Time the alert started firing")
    ends_at: Optional[datetime] = Field(default=None)
    generator_url: str = Field(default="")
    silenced_by: List[str] = Field(default_factory=list)
    inhibited_by: List[str] = Field(default_factory=list)


class SilenceMatcher(BaseModel):
    """Label matcher of a silence."""

    name: str
    value: str
    is_regex: bool = Field(default=False)
    is_equal: bool = Field(default=True)


class Silence(BaseModel):
    """Silence muting a set of alerts."""

    id: str
    status: str = Field(default="", description="Silence state: active, pending or expired")
    created_by: str = Field(default="")
    comment: str = Field(default="")
    starts_at: datetime
    ends_at: datetime
    matchers: List[SilenceMatcher] = Field(default_factory=list)


# Query parameter models

class LogQuery(BaseModel):
    """Parameters for a log query."""

    service: Optional[str] = Field(default=None)
    level: Optional[str] = Field(default=None)
    query: Optional[str] = Field(default=None, description="Raw provider-dialect query")
    start_time: Optional[datetime] = Field(default=None)
    end_time: Optional[datetime] = Field(default=None)
    limit: Optional[int] = Field(default=None, ge=0)


class TraceQuery(BaseModel):
    """Parameters for a trace search."""

    service: Optional[str] = Field(default=None)
    operation: Optional[str] = Field(default=None)
    tags: Dict[str, str] = Field(default_factory=dict)
    min_duration: Optional[str] = Field(default=None, description="Duration string, e.g. 100ms")
    max_duration: Optional[str] = Field(default=None, description="Duration string, e.g. 2s")
    start_time: Optional[datetime] = Field(default=None)
    end_time: Optional[datetime] = Field(default=None)
    limit: Optional[int] = Field(default=None, ge=0)
    spss: Optional[int] = Field(default=None, ge=0, description="Spans per span set")

    @field_validator("min_duration", "max_duration")
    @classmethod
    def validate_duration(cls, v: Optional[str]) -> Optional[str]:
        """Validate duration strings."""
        if v is None or not v.strip():
            return None
        parse_duration_ns(v)
        return v.strip()


class ParsedQuery(BaseModel):
    """Abstract plan produced by the query parser."""

    model_config = ConfigDict(frozen=True)

    data_source: DataSource
    filters: Dict[str, Union[str, int]] = Field(default_factory=dict)
    raw_query: str = Field(default="")

    def string_filter(self, key: str) -> Optional[str]:
        """Get a filter value if it is a string."""
        value = self.filters.get(key)
        return value if isinstance(value, str) else None
