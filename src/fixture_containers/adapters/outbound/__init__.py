"""Outbound adapters - Implementations of the container runtime port.

Provides the Docker Engine client and an in-memory runtime for testing and
development without a container engine.
"""

from fixture_containers.adapters.outbound.in_memory_runtime_client import (
    InMemoryAttachStream,
    InMemoryRuntimeClient,
)

__all__ = [
    "InMemoryAttachStream",
    "InMemoryRuntimeClient",
]
