"""Grafana Loki driver for log queries."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from obs_query_server.drivers.base import BackendError, BaseDriver, LogsClient, QueryError
from obs_query_server.models import LogEntry, LogQuery
from obs_query_server.timeutil import datetime_to_unix_nano, to_utc, unix_nano_to_datetime

DEFAULT_LIMIT = 100
DEFAULT_LOOKBACK = timedelta(hours=1)
DEFAULT_SELECTOR = '{job=~".+"}'

_SERVICE_LABELS = ("service", "service_name", "app")
_HOST_LABELS = ("host", "hostname")
_SOURCE_LABELS = ("source", "filename")
_TRACE_ID_LABELS = ("trace_id", "traceID", "traceId")
_SPAN_ID_LABELS = ("span_id", "spanID", "spanId")

_LEVEL_ALIASES = {
    "warning": "warn",
    "err": "error",
}


class LokiStream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stream: Dict[str, str] = Field(default_factory=dict)
    values: List[List[Any]] = Field(default_factory=list)


class LokiQueryData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    result_type: str = Field(default="streams", alias="resultType")
    result: List[LokiStream] = Field(default_factory=list)


class LokiQueryResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str = Field(default="")
    data: LokiQueryData = Field(default_factory=LokiQueryData)


class LokiLabelsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str = Field(default="")
    data: List[str] = Field(default_factory=list)


def escape_label_value(value: str) -> str:
    """Escape a value for use inside a double-quoted LogQL matcher."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def normalize_level(value: Optional[str]) -> str:
    """Lower-case a level and fold common aliases."""
    if not value:
        return ""
    level = value.strip().lower()
    return _LEVEL_ALIASES.get(level, level)


def _first_label(labels: Mapping[str, str], names: Sequence[str]) -> str:
    for name in names:
        value = labels.get(name)
        if value:
            return value
    return ""


class LokiDriver(BaseDriver, LogsClient):
    """Driver for Grafana Loki.

    Translates neutral log queries into LogQL range queries and Loki stream
    responses back into ``LogEntry`` values.
    """

    DRIVER_NAME = "loki"

    @staticmethod
    def build_logql(query: LogQuery) -> str:
        """Choose the LogQL selector for a query.

        A raw query is used verbatim; otherwise a selector is built from the
        service and level, falling back to a match-all selector.
        """
        if query.query and query.query.strip():
            return query.query

        matchers = []
        if query.service:
            matchers.append(f'app="{escape_label_value(query.service)}"')
        if query.level:
            matchers.append(f'level="{escape_label_value(query.level)}"')

        if not matchers:
            return DEFAULT_SELECTOR
        return "{" + ",".join(matchers) + "}"

    def build_query_params(
        self,
        query: LogQuery,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Build the query_range parameters, applying defaults."""
        now = now or datetime.now(timezone.utc)
        end = to_utc(query.end_time) if query.end_time else now
        start = to_utc(query.start_time) if query.start_time else end - DEFAULT_LOOKBACK

        return {
            "query": self.build_logql(query),
            "start": str(datetime_to_unix_nano(start)),
            "end": str(datetime_to_unix_nano(end)),
            "limit": query.limit or DEFAULT_LIMIT,
            "direction": "backward",
        }

    async def query_logs(self, query: LogQuery) -> List[LogEntry]:
        """Run a LogQL range query."""
        data = await self._get_json("/loki/api/v1/query_range", params=self.build_query_params(query))
        response = self._parse_response(LokiQueryResponse, data)

        if response.data.result_type not in ("", "streams"):
            raise QueryError(
                f"loki error: unsupported result type '{response.data.result_type}' for a log query"
            )

        entries: List[LogEntry] = []
        for stream in response.data.result:
            for value in stream.values:
                entries.append(self._build_log_entry(stream.stream, value))
        return entries

    async def get_log_labels(self) -> List[str]:
        """List all label names."""
        data = await self._get_json("/loki/api/v1/labels")
        return self._parse_response(LokiLabelsResponse, data).data

    async def get_label_values(self, label: str) -> List[str]:
        """List the values of one label."""
        data = await self._get_json(f"/loki/api/v1/label/{quote(label, safe='')}/values")
        return self._parse_response(LokiLabelsResponse, data).data

    async def get_log_levels(self) -> List[str]:
        """List the values of the level label."""
        return await self.get_label_values("level")

    async def health_check(self) -> None:
        """Loki is healthy when it can list labels."""
        await self.get_log_labels()

    def _error_from_response(self, response: httpx.Response) -> BackendError:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            error_type = body.get("errorType") or f"HTTP {response.status_code}"
            return QueryError(f"loki error ({error_type}): {body['error']}")

        message = response.text.strip() or response.reason_phrase
        return QueryError(f"loki error (HTTP {response.status_code}): {message}")

    def _build_log_entry(self, labels: Dict[str, str], value: List[Any]) -> LogEntry:
        """Convert one ``[ts_ns, line, metadata?]`` value to a LogEntry."""
        if len(value) < 2:
            raise QueryError("loki error: malformed stream value")

        try:
            ts_nanos = int(value[0])
            timestamp = unix_nano_to_datetime(ts_nanos)
        except (TypeError, ValueError, OverflowError) as e:
            raise QueryError(f"loki error: invalid timestamp {value[0]!r}") from e

        message = str(value[1])
        metadata = dict(value[2]) if len(value) > 2 and isinstance(value[2], dict) else {}

        # id uses the UTF-8 byte length of the line
        return LogEntry(
            id=f"{ts_nanos}_{len(message.encode('utf-8'))}",
            timestamp=timestamp,
            timestamp_unix_nano=ts_nanos,
            level=normalize_level(labels.get("level") or labels.get("detected_level")),
            service=_first_label(labels, _SERVICE_LABELS),
            host=_first_label(labels, _HOST_LABELS),
            source=_first_label(labels, _SOURCE_LABELS),
            message=message,
            trace_id=_first_label(labels, _TRACE_ID_LABELS) or None,
            span_id=_first_label(labels, _SPAN_ID_LABELS) or None,
            labels=dict(labels),
            metadata=metadata,
        )
