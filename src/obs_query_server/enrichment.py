"""Log entry enrichment applied by the direct logs endpoint."""

from typing import Iterable, List

from obs_query_server.models import LogEntry

_SEVERITIES = {
    "error": "critical",
    "warn": "warning",
    "info": "informational",
    "debug": "debug",
}

ERROR_LEVELS = frozenset({"error", "fatal", "panic"})


def classify_severity(level: str) -> str:
    """Map a log level to a severity class; unknown levels give ``unknown``."""
    return _SEVERITIES.get(level, "unknown")


def enrich_log_entry(entry: LogEntry) -> LogEntry:
    """Return a copy of the entry with derived metadata.

    Adds ``severity`` always, ``is_error`` for error-like levels and
    ``has_trace`` when the entry carries a trace ID. Existing metadata keys
    other than these are kept.
    """
    metadata = dict(entry.metadata)
    metadata["severity"] = classify_severity(entry.level)
    if entry.level in ERROR_LEVELS:
        metadata["is_error"] = True
    if entry.trace_id:
        metadata["has_trace"] = True
    return entry.model_copy(update={"metadata": metadata})


def enrich_log_entries(entries: Iterable[LogEntry]) -> List[LogEntry]:
    """Enrich every entry, keeping order."""
    return [enrich_log_entry(entry) for entry in entries]
