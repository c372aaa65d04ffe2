"""Mock backend responses for testing."""

from typing import Any, Dict, List, Optional

BASE_TS = 1735689600000000000  # 2025-01-01T00:00:00Z
MS = 1_000_000

TRACE_ID = "5b8efff798038103d269b633813fc60c"
SECOND_TRACE_ID = "a1b2c3d4e5f60718293a4b5c6d7e8f90"

# 0x01..0x10 and 0x01..0x08 in OTLP base64 form
B64_TRACE_ID = "AQIDBAUGBwgJCgsMDQ4PEA=="
B64_TRACE_ID_HEX = "0102030405060708090a0b0c0d0e0f10"
B64_SPAN_ID = "AQIDBAUGBwg="
B64_SPAN_ID_HEX = "0102030405060708"


def loki_streams_response(streams: List[Dict[str, Any]], result_type: str = "streams") -> Dict[str, Any]:
    """Wrap streams in a Loki query_range response."""
    return {
        "status": "success",
        "data": {
            "resultType": result_type,
            "result": streams,
            "stats": {"summary": {"totalEntriesReturned": sum(len(s["values"]) for s in streams)}},
        },
    }


LOKI_SINGLE_ENTRY_RESPONSE = loki_streams_response([
    {
        "stream": {"app": "auth", "level": "info"},
        "values": [[str(BASE_TS), "hello"]],
    }
])

LOKI_TWO_STREAMS_RESPONSE = loki_streams_response([
    {
        "stream": {
            "service_name": "checkout",
            "hostname": "node-1",
            "filename": "/var/log/checkout.log",
            "level": "WARNING",
            "traceID": "abc123",
        },
        "values": [
            [str(BASE_TS + 2 * MS), "payment slow"],
            [str(BASE_TS + 1 * MS), "payment retry", {"pod": "checkout-7f9"}],
        ],
    },
    {
        "stream": {"app": "auth", "detected_level": "error", "span_id": "def456"},
        "values": [
            [str(BASE_TS + 3 * MS), "token rejected"],
            [str(BASE_TS + 4 * MS), "héllo"],
        ],
    },
])

LOKI_EMPTY_RESPONSE = loki_streams_response([])

LOKI_MATRIX_RESPONSE = loki_streams_response([], result_type="matrix")

LOKI_LABELS_RESPONSE = {
    "status": "success",
    "data": ["app", "filename", "level", "namespace"],
}

LOKI_LEVEL_VALUES_RESPONSE = {
    "status": "success",
    "data": ["debug", "error", "info", "warn"],
}

LOKI_ERROR_RESPONSE = {
    "status": "error",
    "errorType": "bad_data",
    "error": "parse error at line 1, col 1: syntax error: unexpected IDENTIFIER",
}


def _string_attr(key: str, value: str) -> Dict[str, Any]:
    return {"key": key, "value": {"stringValue": value}}


def tempo_search_trace(
    trace_id: str,
    service: str,
    matched: int = 1,
    duration_ms: Optional[float] = 50,
    legacy: bool = True,
) -> Dict[str, Any]:
    """Build one trace entry of a Tempo search response."""
    span_set = {
        "spans": [
            {
                "spanID": "00f067aa0ba902b7",
                "startTimeUnixNano": str(BASE_TS),
                "durationNanos": str(10 * MS),
                "attributes": [_string_attr("service.name", service)],
            }
        ],
        "matched": matched,
    }
    trace: Dict[str, Any] = {
        "traceID": trace_id,
        "rootServiceName": service,
        "rootTraceName": "GET /api/orders",
        "startTimeUnixNano": str(BASE_TS),
    }
    if duration_ms is not None:
        trace["durationMs"] = duration_ms
    if legacy:
        trace["spanSet"] = span_set
        trace["spanSets"] = [span_set]
    else:
        trace["spanSets"] = [span_set]
    return trace


TEMPO_SEARCH_RESPONSE = {
    "traces": [
        tempo_search_trace(TRACE_ID, "frontend", matched=3, duration_ms=50),
        tempo_search_trace(SECOND_TRACE_ID, "backend", matched=0, duration_ms=1.5, legacy=False),
    ],
    "metrics": {"inspectedTraces": 2, "inspectedBytes": "4096"},
}

TEMPO_EMPTY_SEARCH_RESPONSE = {"traces": [], "metrics": {"inspectedTraces": 0}}

# Two batches, three spans; the second batch uses the deprecated
# instrumentationLibrarySpans key.
TEMPO_TRACE_RESPONSE = {
    "batches": [
        {
            "resource": {
                "attributes": [
                    _string_attr("service.name", "frontend"),
                    _string_attr("k8s.pod.name", "frontend-1"),
                ]
            },
            "scopeSpans": [
                {
                    "scope": {"name": "opentelemetry.instrumentation.flask"},
                    "spans": [
                        {
                            "traceId": TRACE_ID,
                            "spanId": "00f067aa0ba902b7",
                            "parentSpanId": "",
                            "name": "GET /api/orders",
                            "kind": "SPAN_KIND_SERVER",
                            "startTimeUnixNano": str(BASE_TS),
                            "endTimeUnixNano": str(BASE_TS + 50 * MS),
                            "attributes": [
                                _string_attr("http.method", "GET"),
                                {"key": "http.status_code", "value": {"intValue": "200"}},
                                {"key": "sampled", "value": {"boolValue": True}},
                            ],
                            "events": [
                                {
                                    "timeUnixNano": str(BASE_TS + 1 * MS),
                                    "name": "cache-miss",
                                    "attributes": [_string_attr("cache.key", "orders:42")],
                                }
                            ],
                            "status": {"code": "STATUS_CODE_OK"},
                        },
                        {
                            "traceId": TRACE_ID,
                            "spanId": "53995c3f42cd8ad8",
                            "parentSpanId": "00f067aa0ba902b7",
                            "name": "SELECT orders",
                            "kind": 3,
                            "startTimeUnixNano": str(BASE_TS + 5 * MS),
                            "endTimeUnixNano": str(BASE_TS + 45 * MS),
                            "attributes": [
                                {"key": "db.rows", "value": {"doubleValue": 12.5}},
                            ],
                        },
                    ],
                }
            ],
        },
        {
            "resource": {"attributes": [_string_attr("service.name", "backend")]},
            "instrumentationLibrarySpans": [
                {
                    "spans": [
                        {
                            "traceId": TRACE_ID,
                            "spanId": "9a4b6c2d1e0f3a5b",
                            "parentSpanId": "53995c3f42cd8ad8",
                            "name": "process",
                            "kind": "SPAN_KIND_CONSUMER",
                            "startTimeUnixNano": str(BASE_TS + 10 * MS),
                            "endTimeUnixNano": str(BASE_TS + 40 * MS),
                            "links": [
                                {"traceId": B64_TRACE_ID, "spanId": B64_SPAN_ID}
                            ],
                            "status": {"code": 2, "message": "boom"},
                        }
                    ]
                }
            ],
        },
    ]
}

# Same shape as Tempo's trace-by-id response when the IDs are base64.
TEMPO_BASE64_TRACE_RESPONSE = {
    "trace": {
        "resourceSpans": [
            {
                "resource": {"attributes": [_string_attr("service.name", "api")]},
                "scopeSpans": [
                    {
                        "spans": [
                            {
                                "traceId": B64_TRACE_ID,
                                "spanId": B64_SPAN_ID,
                                "name": "root",
                                "kind": 1,
                                "startTimeUnixNano": str(BASE_TS),
                                "endTimeUnixNano": str(BASE_TS + 2 * MS),
                            }
                        ]
                    }
                ],
            }
        ]
    }
}

TEMPO_EMPTY_TRACE_RESPONSE = {"batches": []}

TEMPO_SERVICE_VALUES_RESPONSE = {
    "tagValues": [
        {"type": "string", "value": "frontend"},
        {"type": "string", "value": "backend"},
    ],
    "metrics": {"inspectedBytes": "1024"},
}

TEMPO_TAGS_RESPONSE = {
    "scopes": [{"name": "resource", "tags": ["service.name"]}],
}

PROMETHEUS_METRIC_NAMES_RESPONSE = {
    "status": "success",
    "data": ["go_goroutines", "http_requests_total", "up"],
}

PROMETHEUS_BUILDINFO_RESPONSE = {
    "status": "success",
    "data": {"version": "2.53.0", "revision": "abc", "branch": "HEAD"},
}

ALERT_FINGERPRINT = "4e3c2a1b0f9d8e7c"
SILENCE_ID = "b3f1a4c2-7d5e-4f60-9a8b-1c2d3e4f5a6b"

ALERTMANAGER_ALERTS_RESPONSE = [
    {
        "fingerprint": ALERT_FINGERPRINT,
        "labels": {
            "alertname": "HighErrorRate",
            "severity": "critical",
            "service": "checkout",
            "job": "checkout-api",
        },
        "annotations": {
            "summary": "Error rate above 5%",
            "description": "checkout returns 5xx for more than 5% of requests",
        },
        "startsAt": "2025-01-01T00:00:00Z",
        "endsAt": "2025-01-01T01:00:00Z",
        "updatedAt": "2025-01-01T00:05:00Z",
        "generatorURL": "http://prometheus:9090/graph?g0.expr=rate",
        "receivers": [{"name": "oncall"}],
        "status": {"state": "active", "silencedBy": [], "inhibitedBy": []},
    },
    {
        "fingerprint": "9a8b7c6d5e4f3a2b",
        "labels": {"alertname": "DiskFilling", "job": "node"},
        "annotations": {"summary": "Disk almost full"},
        "startsAt": "2025-01-01T00:10:00.5Z",
        "status": {"state": "suppressed", "silencedBy": [SILENCE_ID], "inhibitedBy": []},
    },
]

ALERTMANAGER_SILENCES_RESPONSE = [
    {
        "id": SILENCE_ID,
        "status": {"state": "active"},
        "createdBy": "oncall",
        "comment": "planned disk migration",
        "startsAt": "2025-01-01T00:00:00Z",
        "endsAt": "2025-01-01T06:00:00Z",
        "updatedAt": "2025-01-01T00:00:00Z",
        "matchers": [
            {"name": "alertname", "value": "DiskFilling", "isRegex": False, "isEqual": True},
            {"name": "instance", "value": "node-.*", "isRegex": True},
        ],
    }
]

ALERTMANAGER_STATUS_RESPONSE = {
    "cluster": {"status": "ready", "peers": []},
    "versionInfo": {"version": "0.27.0"},
    "uptime": "2025-01-01T00:00:00Z",
}
