"""Configuration management for fixture containers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeConfig(BaseModel):
    """Container runtime connection configuration."""

    base_url: Optional[str] = Field(
        default=None, description="Engine endpoint, DOCKER_HOST/defaults when unset"
    )
    timeout_seconds: int = Field(default=60, ge=1, description="API call timeout")
    registry_username: str = Field(default="", description="Registry user for pulls")
    registry_password: str = Field(default="", description="Registry password for pulls")


class ReadinessConfig(BaseModel):
    """Readiness polling configuration."""

    timeout_seconds: float = Field(default=60.0, gt=0, description="Total wait for running state")
    initial_backoff_seconds: float = Field(
        default=0.0, ge=0, description="First delay between inspects, 0 disables backoff"
    )
    max_backoff_seconds: float = Field(default=1.0, gt=0, description="Backoff cap")


class ExecConfig(BaseModel):
    """Exec channel configuration."""

    buffer_size: int = Field(default=1024, ge=1, le=1048576, description="Read buffer bytes")


class HostConfig(BaseModel):
    """Host address resolution configuration."""

    marker_file: Path = Field(
        default=Path("/.dockerenv"), description="Present when running inside a container"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")
    otel_endpoint: str | None = Field(default=None)
    otel_service_name: str = Field(default="fixture_containers")
    metrics_port: int | None = Field(default=None, ge=1, le=65535, description="Prometheus port")


class Config(BaseSettings):
    """Main configuration for fixture containers."""

    model_config = SettingsConfigDict(
        env_prefix="FIXTURE_CONTAINERS_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    exec: ExecConfig = Field(default_factory=ExecConfig)
    host: HostConfig = Field(default_factory=HostConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
