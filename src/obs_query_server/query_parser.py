"""Parser for explorer queries.

Two forms are understood:

* a SQL-like form, ``FROM Logs WHERE service="api" AND status >= 500``, whose
  conditions become filters and a ``{k="v",...}`` selector, and
* a native provider expression such as ``{app="auth"} |= "error"``, which is
  passed through to the logs provider untouched.

Filter extraction is by regular expression, not a grammar: text after
``WHERE`` that does not look like a condition is ignored. ``OR`` is accepted
and joined exactly like ``AND``.
"""

import re
from typing import Dict, List, Tuple, Union

from obs_query_server.errors import QueryParseError
from obs_query_server.models import DataSource, ParsedQuery

_FROM_PATTERN = re.compile(r"\bFROM\s+(LOGS?|TRACES?|METRICS?)\b", re.IGNORECASE)
_WHERE_PATTERN = re.compile(
    r"\bWHERE\s+(.+?)(?:\s+ORDER\b|\s+LIMIT\b|$)",
    re.IGNORECASE | re.DOTALL,
)
_STRING_CONDITION = re.compile(r"""(\w+)\s*=\s*(?:"([^"]+)"|'([^']+)')""")
_NUMERIC_CONDITION = re.compile(r"(\w+)\s*(>=|<=|>|<|=)\s*(\d+)\b")

_SOURCES = {
    "LOG": DataSource.LOGS,
    "TRACE": DataSource.TRACES,
    "METRIC": DataSource.METRICS,
}

EMPTY_QUERY_MESSAGE = "query cannot be empty"
UNKNOWN_SOURCE_MESSAGE = (
    "invalid query: missing or unknown FROM clause "
    "(expected: FROM Logs, FROM Traces, FROM Metrics, or LogQL query)"
)


class QueryParser:
    """Turns an explorer query string into a ParsedQuery."""

    def parse(self, query: str) -> ParsedQuery:
        """Parse a query.

        Args:
            query: Query text in SQL-like or native form

        Returns:
            Parsed query plan

        Raises:
            QueryParseError: If the query is empty or names no known data source
        """
        if query is None or not query.strip():
            raise QueryParseError(EMPTY_QUERY_MESSAGE, reason=QueryParseError.EMPTY)

        match = _FROM_PATTERN.search(query)
        if match is None:
            stripped = query.strip()
            if stripped.startswith("{") or '="' in stripped:
                return ParsedQuery(data_source=DataSource.LOGS, raw_query=query)
            raise QueryParseError(UNKNOWN_SOURCE_MESSAGE, reason=QueryParseError.UNKNOWN_SOURCE)

        data_source = _SOURCES[match.group(1).upper().rstrip("S")]
        filters, raw_query = self._parse_where(query)
        return ParsedQuery(data_source=data_source, filters=filters, raw_query=raw_query)

    def _parse_where(self, query: str) -> Tuple[Dict[str, Union[str, int]], str]:
        where = _WHERE_PATTERN.search(query)
        if where is None:
            return {}, ""

        clause = where.group(1)
        filters: Dict[str, Union[str, int]] = {}
        terms: List[str] = []

        for key, double_quoted, single_quoted in _STRING_CONDITION.findall(clause):
            value = double_quoted if double_quoted else single_quoted
            key = key.lower()
            filters[key] = value
            terms.append(f'{key}="{value}"')

        # numbers inside quoted values are not conditions
        remainder = _STRING_CONDITION.sub(" ", clause)
        for key, _op, value in _NUMERIC_CONDITION.findall(remainder):
            key = key.lower()
            filters[key] = int(value)
            terms.append(f"{key}={value}")

        if not terms:
            return filters, ""
        return filters, "{" + ",".join(terms) + "}"

