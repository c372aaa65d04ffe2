"""Construction of the provider registries from configuration."""

import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple, Type

import httpx
import structlog

from obs_query_server.config import (
    PROVIDER_KINDS,
    ObservabilityConfig,
    ProviderConfig,
    ProviderGroupConfig,
)
from obs_query_server.drivers.base import (
    AlertsClient,
    BaseDriver,
    DriverRegistry,
    LogsClient,
    MetricsClient,
    TracesClient,
)

logger = structlog.get_logger(__name__)

_PORTS: Dict[str, type] = {
    "logs": LogsClient,
    "traces": TracesClient,
    "metrics": MetricsClient,
    "alerts": AlertsClient,
}


class ObservabilityDisabledError(Exception):
    """The observability section is disabled in configuration."""
    pass


def _empty() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class ProviderRegistries:
    """Read-only maps from provider name to driver, one per provider kind."""

    logs: Mapping[str, LogsClient] = field(default_factory=_empty)
    traces: Mapping[str, TracesClient] = field(default_factory=_empty)
    metrics: Mapping[str, MetricsClient] = field(default_factory=_empty)
    alerts: Mapping[str, AlertsClient] = field(default_factory=_empty)

    def iter_providers(self) -> Iterator[Tuple[str, str, object]]:
        """Yield ``(kind, name, client)`` for every registered provider."""
        for kind in PROVIDER_KINDS:
            for name, client in getattr(self, kind).items():
                yield kind, name, client

    async def initialize_all(self) -> None:
        """Open the HTTP clients of all drivers."""
        for _, _, client in self.iter_providers():
            if isinstance(client, BaseDriver):
                await client.initialize()

    async def close_all(self) -> None:
        """Close the HTTP clients of all drivers."""
        drivers = [c for _, _, c in self.iter_providers() if isinstance(c, BaseDriver)]
        await asyncio.gather(*(d.close() for d in drivers))


def create_driver(
    kind: str,
    provider: ProviderConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> BaseDriver:
    """Instantiate the driver for one provider entry.

    Args:
        kind: Data source the provider is configured under
        provider: Provider configuration
        transport: Optional HTTP transport shared by the drivers

    Returns:
        Driver instance

    Raises:
        ValueError: If the type is unknown or cannot serve the data source
    """
    try:
        driver_class: Type[BaseDriver] = DriverRegistry.get(provider.type)
    except KeyError:
        raise ValueError(
            f"Unknown provider type '{provider.type}' for {kind} provider '{provider.name}' "
            f"(available: {', '.join(sorted(DriverRegistry.list()))})"
        )

    port = _PORTS[kind]
    if not issubclass(driver_class, port):
        raise ValueError(
            f"Provider type '{provider.type}' cannot serve {kind} (provider '{provider.name}')"
        )

    return driver_class(provider, transport=transport)


def _build_group(
    kind: str,
    group: ProviderGroupConfig,
    transport: Optional[httpx.AsyncBaseTransport]
) -> Mapping[str, BaseDriver]:
    drivers: Dict[str, BaseDriver] = {}
    for provider in group.enabled_providers():
        drivers[provider.name] = create_driver(kind, provider, transport)
        logger.info(
            "Registered provider",
            kind=kind,
            name=provider.name,
            type=provider.type,
            url=provider.url
        )

    skipped = [p.name for p in group.providers if not p.enabled]
    if skipped:
        logger.debug("Skipped disabled providers", kind=kind, names=skipped)

    return MappingProxyType(drivers)


def build_provider_registries(
    config: ObservabilityConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> ProviderRegistries:
    """Build the provider registries once from configuration.

    Only enabled providers are registered. The returned maps are read-only.

    Args:
        config: Observability configuration
        transport: Optional HTTP transport shared by the drivers, used by tests

    Returns:
        Provider registries

    Raises:
        ObservabilityDisabledError: If the observability section is disabled
        ValueError: If a provider entry cannot be instantiated
    """
    if not config.enabled:
        raise ObservabilityDisabledError("observability module is disabled")

    registries = ProviderRegistries(
        logs=_build_group("logs", config.logs, transport),
        traces=_build_group("traces", config.traces, transport),
        metrics=_build_group("metrics", config.metrics, transport),
        alerts=_build_group("alerts", config.alerts, transport),
    )

    logger.info(
        "Provider registries built",
        logs=len(registries.logs),
        traces=len(registries.traces),
        metrics=len(registries.metrics),
        alerts=len(registries.alerts)
    )
    return registries
