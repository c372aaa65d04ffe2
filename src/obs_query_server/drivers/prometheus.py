"""Prometheus driver for metrics metadata."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from obs_query_server.drivers.base import BaseDriver, MetricsClient


class PrometheusLabelValuesResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str = Field(default="")
    data: List[str] = Field(default_factory=list)


class PrometheusDriver(BaseDriver, MetricsClient):
    """Driver for Prometheus-compatible metrics stores.

    Only metadata is exposed; metric queries are not executed.
    """

    DRIVER_NAME = "prometheus"

    async def get_metric_names(self) -> List[str]:
        """List metric names."""
        data = await self._get_json("/api/v1/label/__name__/values")
        return self._parse_response(PrometheusLabelValuesResponse, data).data

    async def health_check(self) -> None:
        """Prometheus is healthy when it reports its build info."""
        await self._get_json("/api/v1/status/buildinfo")
