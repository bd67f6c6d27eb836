"""Pytest configuration and fixtures for fixture_containers tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from fixture_containers.adapters.outbound.in_memory_runtime_client import InMemoryRuntimeClient
from fixture_containers.domain.entities.container import ContainerSpec
from fixture_containers.infrastructure.config import Config, HostConfig, ReadinessConfig
from fixture_containers.infrastructure.container import DependencyContainer
from fixture_containers.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def runtime() -> InMemoryRuntimeClient:
    """Provide an in-memory runtime with the nginx image present."""
    return InMemoryRuntimeClient(images={"nginx"})


@pytest.fixture
def nginx_spec() -> ContainerSpec:
    """Provide a minimal nginx spec exposing port 80."""
    return ContainerSpec.build(image="nginx", exposed_ports=[80])


@pytest.fixture
def missing_marker(tmp_path: Path) -> Path:
    """Marker file path that does not exist."""
    return tmp_path / "no-dockerenv"


@pytest.fixture
def present_marker(tmp_path: Path) -> Path:
    """Marker file path that exists."""
    marker = tmp_path / ".dockerenv"
    marker.touch()
    return marker


@pytest.fixture
def test_config(missing_marker: Path) -> Config:
    """Provide a test configuration with a short readiness timeout."""
    return Config(
        readiness=ReadinessConfig(timeout_seconds=0.5),
        host=HostConfig(marker_file=missing_marker),
    )


@pytest.fixture
def container():
    """Provide a fresh DI container."""
    c = DependencyContainer()
    yield c
    c.clear()


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry."""
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
