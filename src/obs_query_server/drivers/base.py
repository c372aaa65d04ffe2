"""Base driver interface and neutral provider ports."""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from obs_query_server.config import AuthType, ProviderConfig
from obs_query_server.models import (
    Alert,
    LogEntry,
    LogQuery,
    Silence,
    Trace,
    TraceQuery,
    TraceSummary,
)

TModel = TypeVar("TModel", bound=BaseModel)

logger = structlog.get_logger(__name__)


class BackendError(Exception):
    """Base exception for backend errors."""
    pass


class ConnectionError(BackendError):
    """Error connecting to backend."""
    pass


class QueryError(BackendError):
    """Error executing query."""
    pass


class TraceNotFoundError(QueryError):
    """Requested trace does not exist."""
    pass


class InvalidRequestError(QueryError):
    """Request rejected before it was sent to the backend."""
    pass


class TimeoutError(BackendError):
    """Query timeout error."""
    pass


class BaseDriver(ABC):
    """Abstract base class for HTTP backend drivers.

    A driver owns one ``httpx.AsyncClient`` bound to the provider's base URL,
    timeout and credentials. The client is created on first use and shared by
    every request served through the driver.
    """

    DRIVER_NAME = ""

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """Initialize the driver with configuration.

        Args:
            config: Provider configuration
            transport: Optional transport override, used by tests
        """
        self.config = config
        self.logger = logger.bind(driver=self.__class__.__name__, provider=config.name)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        """Get the provider name."""
        return self.config.name

    @property
    def vendor(self) -> str:
        """Get the vendor name used in error messages."""
        return self.DRIVER_NAME or self.__class__.__name__.replace("Driver", "").lower()

    @property
    def is_connected(self) -> bool:
        """Check if driver is connected."""
        return self._connected

    async def initialize(self) -> None:
        """Initialize the driver (open the HTTP client)."""
        async with self._lock:
            if self._connected:
                return

            self.logger.info("Initializing driver", url=self.config.url)
            try:
                await self._connect()
                self._connected = True
                self.logger.info("Driver initialized successfully")
            except Exception as e:
                self.logger.error("Failed to initialize driver", error=str(e))
                raise ConnectionError(f"Failed to connect to {self.name}: {e}")

    async def close(self) -> None:
        """Close the driver connection."""
        async with self._lock:
            if not self._connected:
                return

            self.logger.info("Closing driver")
            try:
                await self._disconnect()
                self.logger.info("Driver closed successfully")
            except Exception as e:
                self.logger.error("Error closing driver", error=str(e))
            finally:
                self._connected = False
                self._client = None

    @asynccontextmanager
    async def ensure_connected(self) -> AsyncIterator[None]:
        """Context manager to ensure driver is connected."""
        if not self._connected:
            await self.initialize()
        yield

    async def _connect(self) -> None:
        """Create the HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.config.url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            auth=self._build_auth(),
            headers=self._default_headers(),
            transport=self._transport,
        )

    async def _disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()

    def _build_auth(self) -> Optional[httpx.Auth]:
        auth = self.config.auth
        if auth.type == AuthType.BASIC:
            return httpx.BasicAuth(auth.username or "", auth.password or "")
        return None

    def _default_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.auth.type == AuthType.BEARER:
            headers["Authorization"] = f"Bearer {self.config.auth.token}"
        return headers

    async def _get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """Issue a GET request and decode the JSON body.

        Args:
            path: Path relative to the provider base URL
            params: Query string parameters

        Returns:
            Decoded JSON body

        Raises:
            TimeoutError: If the request timed out
            ConnectionError: If the request could not be sent
            InvalidRequestError: If the request URL cannot be built
            QueryError: If the provider answered with an error status or invalid JSON
        """
        async with self.ensure_connected():
            try:
                response = await self._client.get(path, params=params)
            except httpx.InvalidURL as e:
                raise InvalidRequestError(f"{self.vendor} error: invalid request URL: {e}") from e
            except httpx.TimeoutException as e:
                raise TimeoutError(f"{self.vendor} error: request timed out: {e}") from e
            except httpx.HTTPError as e:
                raise ConnectionError(f"{self.vendor} error: request failed: {e}") from e

            if not response.is_success:
                raise self._error_from_response(response)

            try:
                return response.json()
            except ValueError as e:
                raise QueryError(f"{self.vendor} error: invalid JSON response: {e}") from e

    def _parse_response(self, model: Type[TModel], data: Any) -> TModel:
        """Validate a decoded body against a wire model."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise QueryError(
                f"{self.vendor} error: unexpected response format "
                f"({e.error_count()} validation errors)"
            ) from e

    def _error_from_response(self, response: httpx.Response) -> BackendError:
        """Convert a non-2xx response into a backend error."""
        message = response.text.strip() or response.reason_phrase
        return QueryError(f"{self.vendor} error (HTTP {response.status_code}): {message}")

    @abstractmethod
    async def health_check(self) -> None:
        """Check that the provider is reachable.

        Raises:
            BackendError: If the provider is not healthy
        """
        pass


class LogsClient(ABC):
    """Neutral port for log stores."""

    @abstractmethod
    async def query_logs(self, query: LogQuery) -> List[LogEntry]:
        """Query log entries.

        Args:
            query: Log query parameters

        Returns:
            Matching log entries in provider order
        """
        pass

    @abstractmethod
    async def get_log_labels(self) -> List[str]:
        """Get all label names."""
        pass

    @abstractmethod
    async def get_log_levels(self) -> List[str]:
        """Get values of the level label."""
        pass

    @abstractmethod
    async def health_check(self) -> None:
        """Check that the provider is reachable."""
        pass


class TracesClient(ABC):
    """Neutral port for trace stores."""

    @abstractmethod
    async def query_traces(self, query: TraceQuery) -> List[TraceSummary]:
        """Search traces.

        Args:
            query: Trace search parameters

        Returns:
            Trace summaries in provider order
        """
        pass

    @abstractmethod
    async def get_trace_detail(self, trace_id: str) -> Trace:
        """Fetch a full trace.

        Args:
            trace_id: Trace ID

        Returns:
            Trace with all of its spans

        Raises:
            TraceNotFoundError: If the trace does not exist or has no spans
        """
        pass

    @abstractmethod
    async def get_services(self) -> List[str]:
        """Get service names known to the trace store."""
        pass

    @abstractmethod
    async def health_check(self) -> None:
        """Check that the provider is reachable."""
        pass


class MetricsClient(ABC):
    """Neutral port for metrics stores."""

    @abstractmethod
    async def get_metric_names(self) -> List[str]:
        """Get metric names known to the metrics store."""
        pass

    @abstractmethod
    async def health_check(self) -> None:
        """Check that the provider is reachable."""
        pass


class AlertsClient(ABC):
    """Neutral port for alert managers. Read-only."""

    @abstractmethod
    async def get_alerts(self, state: Optional[str] = None) -> List[Alert]:
        """Get alerts, optionally only those in one state.

        Args:
            state: One of ``active``, ``silenced`` or ``inhibited``

        Returns:
            Alerts in provider order
        """
        pass

    @abstractmethod
    async def get_silences(self) -> List[Silence]:
        """Get all silences."""
        pass

    @abstractmethod
    async def health_check(self) -> None:
        """Check that the provider is reachable."""
        pass


class DriverRegistry:
    """Registry of driver classes keyed by provider type."""

    _drivers: Dict[str, Type[BaseDriver]] = {}

    @classmethod
    def register(cls, name: str, driver_class: Type[BaseDriver]) -> None:
        """Register a driver class.

        Args:
            name: Provider type, as used in configuration
            driver_class: Driver class
        """
        cls._drivers[name] = driver_class

    @classmethod
    def get(cls, name: str) -> Type[BaseDriver]:
        """Get a driver class by provider type.

        Args:
            name: Provider type

        Returns:
            Driver class

        Raises:
            KeyError: If driver not found
        """
        if name not in cls._drivers:
            raise KeyError(f"Driver '{name}' not registered")
        return cls._drivers[name]

    @classmethod
    def list(cls) -> List[str]:
        """List registered provider types.

        Returns:
            List of provider types
        """
        return list(cls._drivers.keys())
