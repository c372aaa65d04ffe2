"""Error kinds raised by the explorer and mapped to HTTP status codes."""

from typing import Optional


class ExplorerError(Exception):
    """Base exception for explorer errors."""

    status_code = 500

    def __init__(self, message: str, data_source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.data_source = data_source

    def __str__(self) -> str:
        return self.message


class InvalidArgumentError(ExplorerError):
    """A required request argument is missing or invalid."""

    status_code = 400


class QueryParseError(ExplorerError):
    """The query could not be parsed.

    ``reason`` is ``"empty"`` for a blank query and ``"unknown-source"``
    when the query names no known data source and is not a native selector.
    """

    status_code = 400

    EMPTY = "empty"
    UNKNOWN_SOURCE = "unknown-source"

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class ProviderNotFoundError(ExplorerError):
    """No provider is registered under the requested name."""

    status_code = 404


class NotImplementedQueryError(ExplorerError):
    """The data source is recognized but cannot be queried yet."""

    status_code = 501


class UpstreamError(ExplorerError):
    """The provider call failed."""

    status_code = 502


class UpstreamTimeoutError(UpstreamError):
    """The provider call timed out."""

    status_code = 504


class ResourceNotFoundError(ExplorerError):
    """The requested item does not exist at the provider."""

    status_code = 404
