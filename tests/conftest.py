"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import List

import httpx
import pytest
from fastapi import FastAPI

from obs_query_server.config import (
    AuthConfig,
    Config,
    ObservabilityConfig,
    ProviderConfig,
    ProviderGroupConfig,
    ServerConfig,
)
from obs_query_server.models import LogEntry, SpanKind, SpanStatus, StatusCode, Trace, TraceSpan
from obs_query_server.server import create_app
from tests.utils import BASE_TIME_NS, MockBackend, make_log_entry, make_span

TEST_TOKEN = "test-token"


@pytest.fixture
def loki_provider() -> ProviderConfig:
    """Loki provider configuration."""
    return ProviderConfig(name="loki-main", type="loki", url="http://loki:3100", timeout="5s")


@pytest.fixture
def tempo_provider() -> ProviderConfig:
    """Tempo provider configuration with bearer auth."""
    return ProviderConfig(
        name="tempo-main",
        type="tempo",
        url="http://tempo:3200/",
        timeout="5s",
        auth=AuthConfig(type="bearer", token="tempo-secret"),
    )


@pytest.fixture
def prometheus_provider() -> ProviderConfig:
    """Prometheus provider configuration with basic auth."""
    return ProviderConfig(
        name="prom",
        type="prometheus",
        url="http://prometheus:9090",
        auth=AuthConfig(type="basic", username="admin", password="secret"),
    )


@pytest.fixture
def alertmanager_provider() -> ProviderConfig:
    """Alertmanager provider configuration."""
    return ProviderConfig(name="am", type="alertmanager", url="http://alertmanager:9093")


@pytest.fixture
def test_config(
    loki_provider: ProviderConfig,
    tempo_provider: ProviderConfig,
    prometheus_provider: ProviderConfig,
    alertmanager_provider: ProviderConfig,
) -> Config:
    """Create a test configuration."""
    return Config(
        server=ServerConfig(
            name="test-server",
            version="1.0.0",
            description="Test server",
            log_level="DEBUG",
            auth_tokens=[TEST_TOKEN],
        ),
        observability=ObservabilityConfig(
            logs=ProviderGroupConfig(providers=[loki_provider]),
            traces=ProviderGroupConfig(providers=[tempo_provider]),
            metrics=ProviderGroupConfig(providers=[prometheus_provider]),
            alerts=ProviderGroupConfig(providers=[alertmanager_provider]),
        ),
    )


@pytest.fixture
def backend() -> MockBackend:
    """In-memory HTTP backend shared by every driver of a test."""
    return MockBackend()


@pytest.fixture
def app(test_config: Config, backend: MockBackend) -> FastAPI:
    """Application whose drivers talk to the mock backend."""
    return create_app(test_config, transport=backend.transport)


@pytest.fixture
async def client(app: FastAPI):
    """Authenticated HTTP client for the app.

    ASGITransport does not send lifespan events, so startup and shutdown are
    driven here.
    """
    transport = httpx.ASGITransport(app=app)
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(
            transport=transport,
            base_url="http://test",
            headers={"Authorization": f"Bearer {TEST_TOKEN}"},
        ) as ac:
            yield ac


@pytest.fixture
def sample_log_entry() -> LogEntry:
    """Create a sample log entry."""
    return make_log_entry(
        "user logged in",
        level="info",
        service="auth",
        labels={"app": "auth", "level": "info"},
    )


@pytest.fixture
def sample_spans() -> List[TraceSpan]:
    """Create a root span with one child in another service."""
    root = make_span("trace123", "span-a", service_name="frontend", duration_ns=50_000_000)
    root = root.model_copy(update={
        "kind": SpanKind.SERVER,
        "status": SpanStatus(code=StatusCode.OK),
        "tags": {"http.method": "GET", "http.status_code": 200},
    })
    child = make_span(
        "trace123",
        "span-b",
        parent_span_id="span-a",
        service_name="backend",
        start_ns=BASE_TIME_NS + 5_000_000,
        duration_ns=60_000_000,
    )
    return [root, child]


@pytest.fixture
def sample_trace(sample_spans: List[TraceSpan]) -> Trace:
    """Create a sample trace."""
    return Trace.from_spans("trace123", sample_spans)


# Environment setup
@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("OBS_QUERY_SERVER__LOG_LEVEL", "DEBUG")


# Temporary directory fixtures
@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text("""
server:
  name: test-server
  version: 1.0.0
  log_level: DEBUG
  auth_tokens:
    - test-token

observability:
  default_limit: 50
  default_lookback: 30m
  logs:
    providers:
      - name: loki-main
        type: loki
        url: http://loki:3100
        timeout: 10s
  traces:
    providers:
      - name: tempo-main
        type: Tempo
        url: http://tempo:3200/
        auth:
          type: bearer
          token: tempo-secret
      - name: tempo-old
        type: tempo
        url: http://tempo-old:3200
        enabled: false
  alerts:
    providers:
      - name: am
        type: alertmanager
        url: http://alertmanager:9093
""")
    return config_file
