"""Backend drivers for logs, traces, metrics and alerts providers."""

from obs_query_server.drivers.alertmanager import AlertmanagerDriver
from obs_query_server.drivers.base import (
    AlertsClient,
    BaseDriver,
    DriverRegistry,
    LogsClient,
    MetricsClient,
    TracesClient,
)
from obs_query_server.drivers.loki import LokiDriver
from obs_query_server.drivers.prometheus import PrometheusDriver
from obs_query_server.drivers.tempo import TempoDriver

# Register available drivers
DriverRegistry.register("loki", LokiDriver)
DriverRegistry.register("tempo", TempoDriver)
DriverRegistry.register("prometheus", PrometheusDriver)
DriverRegistry.register("alertmanager", AlertmanagerDriver)

__all__ = [
    "AlertmanagerDriver",
    "AlertsClient",
    "BaseDriver",
    "DriverRegistry",
    "LogsClient",
    "LokiDriver",
    "MetricsClient",
    "PrometheusDriver",
    "TempoDriver",
    "TracesClient",
]
