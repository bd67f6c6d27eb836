"""
Fixture Containers - Disposable containers for tests

Pulls an image, creates and starts a container from a declared spec,
waits until the runtime reports it running, runs commands inside it and
tears it down again.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"

from fixture_containers.application.orchestrator import (
    ContainerLifecycleOrchestrator,
    ContainerStateError,
)
from fixture_containers.domain.entities.container import (
    ContainerSpec,
    ContainerState,
    ExecResult,
    FixtureContainerError,
    InspectionState,
    Mount,
)
from fixture_containers.domain.services.configuration import ConfigurationError
from fixture_containers.domain.services.exec_channel import ExecChannel, SessionMode
from fixture_containers.domain.services.image_resolver import ImagePullError
from fixture_containers.domain.services.readiness import ContainerLaunchError
from fixture_containers.ports.outbound import RuntimeCallError

__all__ = [
    "ContainerLifecycleOrchestrator",
    "ContainerSpec",
    "ContainerState",
    "ExecChannel",
    "ExecResult",
    "InspectionState",
    "Mount",
    "SessionMode",
    # Errors
    "FixtureContainerError",
    "ConfigurationError",
    "ImagePullError",
    "ContainerLaunchError",
    "ContainerStateError",
    "RuntimeCallError",
]
