"""Configuration management for Observability Query Server."""

from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from obs_query_server.timeutil import parse_duration_ns

PROVIDER_KINDS = ("logs", "traces", "metrics", "alerts")


class AuthType(str, Enum):
    """Authentication scheme for a provider."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class AuthConfig(BaseModel):
    """Authentication settings for a provider."""

    type: AuthType = Field(default=AuthType.NONE, description="Authentication type")
    username: Optional[str] = Field(default=None, description="Username for basic auth")
    password: Optional[str] = Field(default=None, description="Password for basic auth")
    token: Optional[str] = Field(default=None, description="Token for bearer auth")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Optional[str]) -> str:
        """Treat an empty auth type as no authentication."""
        if not v:
            return AuthType.NONE.value
        return v.lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def validate_credentials(self) -> "AuthConfig":
        """Ensure the credentials required by the auth type are present."""
        if self.type == AuthType.BASIC and (not self.username or not self.password):
            raise ValueError("Basic auth requires username and password")
        if self.type == AuthType.BEARER and not self.token:
            raise ValueError("Bearer auth requires token")
        return self


class ProviderConfig(BaseModel):
    """Configuration for a single observability provider."""

    name: str = Field(..., description="Provider name, unique within its kind")
    type: str = Field(..., description="Provider type (loki, tempo, prometheus, alertmanager)")
    url: str = Field(..., description="Provider base URL")
    timeout: str = Field(default="30s", description="Request timeout as a duration string")
    enabled: bool = Field(default=True, description="Whether this provider is enabled")
    auth: AuthConfig = Field(default_factory=AuthConfig)

    @field_validator("name", "type")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Reject blank names and types."""
        if not v or not v.strip():
            raise ValueError("Provider name and type cannot be empty")
        return v.strip()

    @field_validator("type")
    @classmethod
    def lowercase_type(cls, v: str) -> str:
        """Provider types are matched case-insensitively."""
        return v.lower()

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        """Validate the timeout duration string."""
        if not v:
            return "30s"
        if parse_duration_ns(v) <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @property
    def timeout_seconds(self) -> float:
        """Timeout in seconds."""
        return parse_duration_ns(self.timeout) / 1e9


class ProviderGroupConfig(BaseModel):
    """Providers of one kind (logs, traces, metrics or alerts)."""

    providers: List[ProviderConfig] = Field(default_factory=list)

    @field_validator("providers")
    @classmethod
    def validate_unique_names(cls, v: List[ProviderConfig]) -> List[ProviderConfig]:
        """Ensure provider names are unique within the group."""
        seen = set()
        for provider in v:
            if provider.name in seen:
                raise ValueError(f"Duplicate provider name: {provider.name}")
            seen.add(provider.name)
        return v

    def enabled_providers(self) -> List[ProviderConfig]:
        """Get the enabled providers of this group."""
        return [p for p in self.providers if p.enabled]


class ObservabilityConfig(BaseModel):
    """Configuration for the observability module."""

    enabled: bool = Field(default=True, description="Whether the module is enabled")
    default_limit: int = Field(default=100, gt=0, description="Result limit for explorer queries")
    default_lookback: str = Field(default="1h", description="Window used when no start time is given")
    trace_fetch_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum concurrent trace detail fetches per query"
    )
    logs: ProviderGroupConfig = Field(default_factory=ProviderGroupConfig)
    traces: ProviderGroupConfig = Field(default_factory=ProviderGroupConfig)
    metrics: ProviderGroupConfig = Field(default_factory=ProviderGroupConfig)
    alerts: ProviderGroupConfig = Field(default_factory=ProviderGroupConfig)

    @field_validator("default_lookback")
    @classmethod
    def validate_lookback(cls, v: str) -> str:
        """Validate the lookback duration string."""
        if parse_duration_ns(v) <= 0:
            raise ValueError("Lookback must be positive")
        return v


class ServerConfig(BaseModel):
    """Configuration for the HTTP server."""

    name: str = Field(default="obs-query-server", description="Server name")
    version: str = Field(default="0.1.0", description="Server version")
    description: str = Field(
        default="Explorer query API over logs, traces, metrics and alerts providers",
        description="Server description"
    )
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, description="Bind port")
    log_level: str = Field(default="INFO", description="Logging level")
    auth_tokens: List[str] = Field(
        default_factory=list,
        description="Accepted bearer tokens; empty accepts any bearer token"
    )


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_prefix="OBS_QUERY_",
        env_nested_delimiter="__",
        case_sensitive=False
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Config":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables only."""
        return cls()

    def get_enabled_providers(self) -> List[str]:
        """Get enabled providers as ``kind/name`` strings."""
        enabled = []
        for kind in PROVIDER_KINDS:
            group: ProviderGroupConfig = getattr(self.observability, kind)
            enabled.extend(f"{kind}/{p.name}" for p in group.enabled_providers())
        return enabled

    def validate_providers(self) -> None:
        """Validate that at least one provider is configured."""
        obs = self.observability
        if obs.enabled and not any([
            obs.logs.providers,
            obs.traces.providers,
            obs.metrics.providers,
            obs.alerts.providers
        ]):
            raise ValueError("At least one observability provider must be configured")


def load_config(config_path: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration from file or environment."""
    if config_path:
        return Config.from_yaml(config_path)

    default_paths = [
        Path("config.yaml"),
        Path("config.yml"),
        Path.home() / ".obs-query-server" / "config.yaml",
        Path("/etc/obs-query-server/config.yaml"),
    ]

    for path in default_paths:
        if path.exists():
            return Config.from_yaml(path)

    return Config.from_env()


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
