"""Prometheus Alertmanager driver for read-only alert listings."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel

from obs_query_server.drivers.base import AlertsClient, BaseDriver, InvalidRequestError
from obs_query_server.models import Alert, Silence, SilenceMatcher

ALERT_STATES = ("active", "silenced", "inhibited")

_SERVICE_LABELS = ("service", "job")


class AlertmanagerAlertStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    state: str = Field(default="")
    silenced_by: List[str] = Field(default_factory=list, alias="silencedBy")
    inhibited_by: List[str] = Field(default_factory=list, alias="inhibitedBy")


class AlertmanagerAlert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    fingerprint: str
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    starts_at: datetime = Field(..., alias="startsAt")
    ends_at: Optional[datetime] = Field(default=None, alias="endsAt")
    generator_url: str = Field(default="", alias="generatorURL")
    status: AlertmanagerAlertStatus = Field(default_factory=AlertmanagerAlertStatus)


class AlertmanagerMatcher(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    value: str
    is_regex: bool = Field(default=False, alias="isRegex")
    is_equal: bool = Field(default=True, alias="isEqual")


class AlertmanagerSilenceStatus(BaseModel):
    state: str = Field(default="")


class AlertmanagerSilence(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    status: AlertmanagerSilenceStatus = Field(default_factory=AlertmanagerSilenceStatus)
    created_by: str = Field(default="", alias="createdBy")
    comment: str = Field(default="")
    starts_at: datetime = Field(..., alias="startsAt")
    ends_at: datetime = Field(..., alias="endsAt")
    matchers: List[AlertmanagerMatcher] = Field(default_factory=list)


class AlertmanagerAlertsResponse(RootModel[List[AlertmanagerAlert]]):
    pass


class AlertmanagerSilencesResponse(RootModel[List[AlertmanagerSilence]]):
    pass


class AlertmanagerDriver(BaseDriver, AlertsClient):
    """Driver for the Alertmanager v2 API.

    Alerts and silences are listed; nothing is created, changed or expired.
    """

    DRIVER_NAME = "alertmanager"

    @staticmethod
    def build_alert_params(state: Optional[str] = None) -> Dict[str, str]:
        """Build the state filter of ``/api/v2/alerts``.

        The API returns every state by default, so a requested state switches
        the other two off.
        """
        if not state:
            return {}
        if state not in ALERT_STATES:
            raise InvalidRequestError(
                f"alertmanager error: unknown alert state '{state}' "
                f"(expected one of: {', '.join(ALERT_STATES)})"
            )
        return {name: "true" if name == state else "false" for name in ALERT_STATES}

    async def get_alerts(self, state: Optional[str] = None) -> List[Alert]:
        """List alerts."""
        data = await self._get_json("/api/v2/alerts", params=self.build_alert_params(state))
        response = self._parse_response(AlertmanagerAlertsResponse, data)
        return [self._build_alert(alert) for alert in response.root]

    async def get_silences(self) -> List[Silence]:
        """List silences."""
        data = await self._get_json("/api/v2/silences")
        response = self._parse_response(AlertmanagerSilencesResponse, data)
        return [self._build_silence(silence) for silence in response.root]

    async def health_check(self) -> None:
        """Alertmanager is healthy when it reports its status."""
        await self._get_json("/api/v2/status")

    def _build_alert(self, alert: AlertmanagerAlert) -> Alert:
        labels = alert.labels
        annotations = alert.annotations
        service = next((labels[k] for k in _SERVICE_LABELS if labels.get(k)), "")
        return Alert(
            id=alert.fingerprint,
            name=labels.get("alertname", ""),
            description=annotations.get("description") or annotations.get("summary", ""),
            status=alert.status.state,
            severity=labels.get("severity", ""),
            service=service,
            labels=labels,
            annotations=annotations,
            starts_at=alert.starts_at,
            ends_at=alert.ends_at,
            generator_url=alert.generator_url,
            silenced_by=alert.status.silenced_by,
            inhibited_by=alert.status.inhibited_by,
        )

    def _build_silence(self, silence: AlertmanagerSilence) -> Silence:
        return Silence(
            id=silence.id,
            status=silence.status.state,
            created_by=silence.created_by,
            comment=silence.comment,
            starts_at=silence.starts_at,
            ends_at=silence.ends_at,
            matchers=[
                SilenceMatcher(
                    name=m.name,
                    value=m.value,
                    is_regex=m.is_regex,
                    is_equal=m.is_equal,
                )
                for m in silence.matchers
            ],
        )
