"""Time helpers shared by configuration, drivers and the HTTP layer."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

_FRACTION = re.compile(r"\.(\d+)")

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}


def parse_duration_ns(value: str) -> int:
    """Parse a duration string such as ``300ms``, ``1.5s`` or ``1h30m``.

    Args:
        value: Duration string made of one or more ``<number><unit>`` parts

    Returns:
        Duration in nanoseconds

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip()
    if not text:
        raise ValueError("Duration cannot be empty")
    if text == "0":
        return 0

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_NANOS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return sign * int(round(total))


def parse_duration(value: str) -> timedelta:
    """Parse a duration string into a timedelta (microsecond resolution)."""
    return timedelta(microseconds=parse_duration_ns(value) // 1_000)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def datetime_to_unix_nano(value: datetime) -> int:
    """Convert a datetime to integer nanoseconds since the Unix epoch."""
    delta = to_utc(value) - EPOCH
    return (delta // timedelta(microseconds=1)) * 1_000


def unix_nano_to_datetime(value: int) -> datetime:
    """Convert nanoseconds since the Unix epoch to a UTC datetime."""
    return EPOCH + timedelta(microseconds=value // 1_000)


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp carrying a timezone.

    Returns None for missing, malformed or timezone-less input so that
    callers can fall back to their default window.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fraction digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(timezone.utc)
