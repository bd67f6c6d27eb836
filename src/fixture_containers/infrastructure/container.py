"""Dependency injection container."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from fixture_containers.application.orchestrator import ContainerLifecycleOrchestrator
from fixture_containers.domain.entities.container import ContainerSpec
from fixture_containers.domain.services.readiness import BackoffPolicy
from fixture_containers.infrastructure.config import Config
from fixture_containers.infrastructure.metrics import MetricsRegistry
from fixture_containers.ports.outbound import ContainerRuntimeClientPort, RegistryAuth

T = TypeVar("T")


class DependencyContainer:
    """Simple dependency injection container."""

    def __init__(self) -> None:
        self._singletons: dict[type, Any] = {}
        self._factories: dict[type, Callable[[DependencyContainer], Any]] = {}
        self._instances: dict[type, Any] = {}

    def register_singleton(self, interface: type[T], instance: T) -> None:
        """Register a singleton instance."""
        self._singletons[interface] = instance
        self._instances[interface] = instance

    def register_factory(
        self, interface: type[T], factory: Callable[[DependencyContainer], T]
    ) -> None:
        """Register a factory function, invoked once on first resolve."""
        self._factories[interface] = factory

    def resolve(self, interface: type[T]) -> T:
        """Resolve a dependency."""
        if interface in self._instances:
            return self._instances[interface]
        if interface in self._factories:
            instance = self._factories[interface](self)
            self._instances[interface] = instance
            return instance
        raise KeyError(f"No registration found for {interface}")

    def has(self, interface: type) -> bool:
        """Check if an interface is registered."""
        return interface in self._singletons or interface in self._factories or interface in self._instances

    def clear(self) -> None:
        """Clear all registrations."""
        self._singletons.clear()
        self._factories.clear()
        self._instances.clear()


def _docker_client(container: DependencyContainer) -> ContainerRuntimeClientPort:
    from fixture_containers.adapters.outbound.docker_runtime_client import DockerRuntimeClient

    config = container.resolve(Config)
    return DockerRuntimeClient(
        base_url=config.runtime.base_url,
        timeout=config.runtime.timeout_seconds,
    )


def build_container(config: Config, metrics: MetricsRegistry | None = None) -> DependencyContainer:
    """Wire the default dependencies for a configuration.

    The runtime client is created lazily so that a container can be built
    without a reachable engine; register another client to replace it.
    """
    container = DependencyContainer()
    container.register_singleton(Config, config)
    if metrics is not None:
        container.register_singleton(MetricsRegistry, metrics)
    container.register_factory(ContainerRuntimeClientPort, _docker_client)
    return container


def create_orchestrator(
    container: DependencyContainer, spec: ContainerSpec
) -> ContainerLifecycleOrchestrator:
    """Create an orchestrator for a spec from wired dependencies."""
    config = container.resolve(Config)
    auth = None
    if config.runtime.registry_username:
        auth = RegistryAuth(
            username=config.runtime.registry_username,
            password=config.runtime.registry_password,
        )
    return ContainerLifecycleOrchestrator(
        container.resolve(ContainerRuntimeClientPort),
        spec,
        readiness_timeout=config.readiness.timeout_seconds,
        backoff=BackoffPolicy(
            initial_seconds=config.readiness.initial_backoff_seconds,
            max_seconds=config.readiness.max_backoff_seconds,
        ),
        marker_file=config.host.marker_file,
        buffer_size=config.exec.buffer_size,
        auth=auth,
        metrics=container.resolve(MetricsRegistry) if container.has(MetricsRegistry) else None,
    )
