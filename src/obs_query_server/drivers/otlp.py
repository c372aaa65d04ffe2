"""OTLP JSON wire types as returned by Tempo.

Attribute values arrive as OTLP ``AnyValue`` objects: exactly one of seven
optional fields is set, or none for a null value. ``AnyValue`` keeps that
shape as a tagged variant and only coerces to a plain Python value through
``to_python()`` when the value enters a neutral tag map.
"""

import base64
import binascii
import string
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from obs_query_server.models import SpanKind, StatusCode

_HEX_DIGITS = set(string.hexdigits)

_KNOWN_KINDS = {kind.value for kind in SpanKind}
_KNOWN_STATUS_CODES = {code.value for code in StatusCode}

_SPAN_KIND_NAMES = {
    "SPAN_KIND_UNSPECIFIED": SpanKind.UNSPECIFIED,
    "SPAN_KIND_INTERNAL": SpanKind.INTERNAL,
    "SPAN_KIND_SERVER": SpanKind.SERVER,
    "SPAN_KIND_CLIENT": SpanKind.CLIENT,
    "SPAN_KIND_PRODUCER": SpanKind.PRODUCER,
    "SPAN_KIND_CONSUMER": SpanKind.CONSUMER,
}

_STATUS_CODE_NAMES = {
    "STATUS_CODE_UNSET": StatusCode.UNSET,
    "STATUS_CODE_OK": StatusCode.OK,
    "STATUS_CODE_ERROR": StatusCode.ERROR,
}


def decode_span_kind(value: Any) -> int:
    """Decode a span kind given as ``0..5`` or ``SPAN_KIND_*``; unknown values map to 0."""
    if value is None:
        return SpanKind.UNSPECIFIED
    if isinstance(value, bool):
        return SpanKind.UNSPECIFIED
    if isinstance(value, int):
        return value if value in _KNOWN_KINDS else SpanKind.UNSPECIFIED
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return decode_span_kind(int(text))
        return _SPAN_KIND_NAMES.get(text.upper(), SpanKind.UNSPECIFIED)
    return SpanKind.UNSPECIFIED


def decode_status_code(value: Any) -> int:
    """Decode a status code given as ``0..2`` or ``STATUS_CODE_*``; unknown values map to 0."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value if value in _KNOWN_STATUS_CODES else StatusCode.UNSET
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return decode_status_code(int(text))
        return _STATUS_CODE_NAMES.get(text.upper(), StatusCode.UNSET)
    return StatusCode.UNSET


def parse_unix_nano(value: Any) -> int:
    """Parse a nanosecond timestamp that may be encoded as a decimal string."""
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return int(str(value).strip())


def is_hex_id(value: str) -> bool:
    """Check whether an ID is already hex encoded."""
    return bool(value) and len(value) % 2 == 0 and all(c in _HEX_DIGITS for c in value)


def normalize_id(value: Optional[str]) -> str:
    """Return a trace or span ID in lower-case hex.

    OTLP JSON encodes IDs in base64 while Tempo search results use hex.
    Values that are neither are returned unchanged.
    """
    if not value:
        return ""
    if is_hex_id(value):
        return value.lower()
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return value
    if not raw:
        return value
    return raw.hex()


UnixNano = Annotated[int, BeforeValidator(parse_unix_nano)]
SpanKindValue = Annotated[int, BeforeValidator(decode_span_kind)]
StatusCodeValue = Annotated[int, BeforeValidator(decode_status_code)]


class AnyValueKind(str, Enum):
    """Variant tag of an OTLP AnyValue."""

    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOL = "bool"
    ARRAY = "array"
    KVLIST = "kvlist"
    BYTES = "bytes"
    NULL = "null"


_VARIANT_FIELDS = (
    ("string_value", AnyValueKind.STRING),
    ("int_value", AnyValueKind.INT),
    ("double_value", AnyValueKind.DOUBLE),
    ("bool_value", AnyValueKind.BOOL),
    ("array_value", AnyValueKind.ARRAY),
    ("kvlist_value", AnyValueKind.KVLIST),
    ("bytes_value", AnyValueKind.BYTES),
)


class OTLPModel(BaseModel):
    """Base for OTLP wire models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AnyValue(OTLPModel):
    """OTLP attribute value."""

    string_value: Optional[str] = Field(default=None, alias="stringValue")
    int_value: Optional[Union[int, str]] = Field(default=None, alias="intValue")
    double_value: Optional[Union[float, str]] = Field(default=None, alias="doubleValue")
    bool_value: Optional[bool] = Field(default=None, alias="boolValue")
    array_value: Optional["ArrayValue"] = Field(default=None, alias="arrayValue")
    kvlist_value: Optional["KeyValueList"] = Field(default=None, alias="kvlistValue")
    bytes_value: Optional[str] = Field(default=None, alias="bytesValue")

    @property
    def kind(self) -> AnyValueKind:
        """The variant that is set."""
        for field_name, kind in _VARIANT_FIELDS:
            if getattr(self, field_name) is not None:
                return kind
        return AnyValueKind.NULL

    def to_python(self) -> Any:
        """Coerce to a plain Python value, preserving type where possible."""
        kind = self.kind
        if kind == AnyValueKind.STRING:
            return self.string_value
        if kind == AnyValueKind.INT:
            try:
                return int(self.int_value)
            except ValueError:
                return self.int_value
        if kind == AnyValueKind.DOUBLE:
            try:
                return float(self.double_value)
            except ValueError:
                return self.double_value
        if kind == AnyValueKind.BOOL:
            return self.bool_value
        if kind == AnyValueKind.ARRAY:
            return [v.to_python() for v in self.array_value.values]
        if kind == AnyValueKind.KVLIST:
            return attributes_to_dict(self.kvlist_value.values)
        if kind == AnyValueKind.BYTES:
            return self.bytes_value
        return None


class ArrayValue(OTLPModel):
    values: List[AnyValue] = Field(default_factory=list)


class KeyValue(OTLPModel):
    key: str
    value: AnyValue = Field(default_factory=AnyValue)


class KeyValueList(OTLPModel):
    values: List[KeyValue] = Field(default_factory=list)


AnyValue.model_rebuild()
ArrayValue.model_rebuild()
KeyValue.model_rebuild()
KeyValueList.model_rebuild()


def attributes_to_dict(attributes: Union[List[KeyValue], Dict[str, Any], None]) -> Dict[str, Any]:
    """Flatten OTLP attributes into a plain dictionary.

    Later keys win over earlier duplicates.
    """
    if not attributes:
        return {}
    if isinstance(attributes, dict):
        return dict(attributes)
    return {kv.key: kv.value.to_python() for kv in attributes}


Attributes = Union[List[KeyValue], Dict[str, Any]]


# Search response (/api/search)

class SearchSpan(OTLPModel):
    span_id: str = Field(default="", alias="spanID")
    name: str = Field(default="")
    start_time_unix_nano: UnixNano = Field(default=0, alias="startTimeUnixNano")
    duration_nanos: UnixNano = Field(default=0, alias="durationNanos")
    attributes: Attributes = Field(default_factory=list)


class SpanSet(OTLPModel):
    spans: List[SearchSpan] = Field(default_factory=list)
    matched: int = Field(default=0)


class SearchTrace(OTLPModel):
    trace_id: str = Field(..., alias="traceID")
    root_service_name: str = Field(default="", alias="rootServiceName")
    root_trace_name: str = Field(default="", alias="rootTraceName")
    start_time_unix_nano: UnixNano = Field(default=0, alias="startTimeUnixNano")
    duration_ms: Optional[float] = Field(default=None, alias="durationMs")
    span_set: Optional[SpanSet] = Field(default=None, alias="spanSet")
    span_sets: List[SpanSet] = Field(default_factory=list, alias="spanSets")

    def all_span_sets(self) -> List[SpanSet]:
        """The legacy ``spanSet`` followed by any ``spanSets`` not identical to it."""
        sets = [self.span_set] if self.span_set is not None else []
        sets.extend(s for s in self.span_sets if s != self.span_set)
        return sets


class SearchResponse(OTLPModel):
    traces: List[SearchTrace] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)


# Trace by ID response (/api/traces/{id})

class Resource(OTLPModel):
    attributes: List[KeyValue] = Field(default_factory=list)


class Status(OTLPModel):
    code: StatusCodeValue = Field(default=StatusCode.UNSET)
    message: str = Field(default="")


class Event(OTLPModel):
    time_unix_nano: UnixNano = Field(default=0, alias="timeUnixNano")
    name: str = Field(default="")
    attributes: List[KeyValue] = Field(default_factory=list)


class Link(OTLPModel):
    trace_id: str = Field(default="", alias="traceId")
    span_id: str = Field(default="", alias="spanId")
    attributes: List[KeyValue] = Field(default_factory=list)


class Span(OTLPModel):
    trace_id: str = Field(default="", alias="traceId")
    span_id: str = Field(default="", alias="spanId")
    parent_span_id: str = Field(default="", alias="parentSpanId")
    name: str = Field(default="")
    kind: SpanKindValue = Field(default=SpanKind.UNSPECIFIED)
    start_time_unix_nano: UnixNano = Field(default=0, alias="startTimeUnixNano")
    end_time_unix_nano: UnixNano = Field(default=0, alias="endTimeUnixNano")
    attributes: List[KeyValue] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)
    status: Status = Field(default_factory=Status)


class ScopeSpans(OTLPModel):
    spans: List[Span] = Field(default_factory=list)


class ResourceSpans(OTLPModel):
    resource: Resource = Field(default_factory=Resource)
    scope_spans: List[ScopeSpans] = Field(default_factory=list, alias="scopeSpans")
    instrumentation_library_spans: List[ScopeSpans] = Field(
        default_factory=list,
        alias="instrumentationLibrarySpans"
    )

    def iter_spans(self) -> Iterator[Span]:
        """Walk scope spans, then the deprecated instrumentation library spans."""
        for group in self.scope_spans:
            yield from group.spans
        for group in self.instrumentation_library_spans:
            yield from group.spans


class TraceByIDResponse(OTLPModel):
    batches: List[ResourceSpans] = Field(default_factory=list)
    resource_spans: List[ResourceSpans] = Field(default_factory=list, alias="resourceSpans")

    @model_validator(mode="before")
    @classmethod
    def unwrap_trace(cls, data: Any) -> Any:
        """Accept the ``{"trace": {...}}`` envelope of the v2 API."""
        if isinstance(data, dict) and isinstance(data.get("trace"), dict):
            return data["trace"]
        return data

    def all_batches(self) -> List[ResourceSpans]:
        """Batches from either the ``batches`` or ``resourceSpans`` key."""
        return self.batches + self.resource_spans
