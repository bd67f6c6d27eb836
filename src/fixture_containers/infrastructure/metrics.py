"""Prometheus metrics for fixture containers."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all fixture container metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Lifecycle metrics
        self.container_operations_total = Counter(
            "fixture_container_operations_total",
            "Total fixture container operations",
            ["operation", "status"],  # create/start/stop/remove/exec, success/error
            registry=self._registry,
        )

        self.container_startup_seconds = Histogram(
            "fixture_container_startup_seconds",
            "Time from create to confirmed running state",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )

        # Readiness metrics
        self.readiness_attempts_total = Counter(
            "fixture_readiness_attempts_total",
            "Inspect calls made while waiting for running state",
            ["outcome"],  # ready, timeout, error
            registry=self._registry,
        )

        # Image metrics
        self.image_pull_duration_seconds = Histogram(
            "fixture_image_pull_duration_seconds",
            "Image pull duration in seconds",
            buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )

        self.image_pulls_total = Counter(
            "fixture_image_pulls_total",
            "Total image pull operations",
            ["status"],  # success, failed
            registry=self._registry,
        )

        # Exec metrics
        self.exec_bytes_total = Counter(
            "fixture_exec_output_bytes_total",
            "Output bytes received from exec sessions",
            ["mode"],  # ephemeral, persistent
            registry=self._registry,
        )

        self.info = Info(
            "fixture_containers",
            "Fixture containers library information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_operation(self, operation: str, success: bool) -> None:
        """Count one lifecycle operation."""
        status = "success" if success else "error"
        self.container_operations_total.labels(operation=operation, status=status).inc()


def setup_metrics(port: int = 8002, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """Create the metrics registry and serve it on a Prometheus exporter port."""
    metrics = MetricsRegistry(registry)

    from fixture_containers import __version__
    metrics.info.info({"version": __version__})

    start_http_server(port, registry=metrics.registry)
    return metrics
