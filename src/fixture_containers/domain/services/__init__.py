"""Domain services for fixture containers.

Services implement the protocols layered on top of the container runtime:
configuration assembly, image resolution, readiness polling, log relay,
command execution and host address resolution.
"""

from fixture_containers.domain.services.configuration import (
    ConfigurationError,
    assemble_creation_request,
)
from fixture_containers.domain.services.exec_channel import (
    ExecChannel,
    SessionMode,
    read_until_eof,
)
from fixture_containers.domain.services.host_address import resolve_host_address
from fixture_containers.domain.services.image_resolver import ImagePullError, ImageResolver
from fixture_containers.domain.services.log_relay import LogStreamRelay
from fixture_containers.domain.services.readiness import (
    BackoffPolicy,
    ContainerLaunchError,
    ReadinessPoller,
)

__all__ = [
    "ConfigurationError",
    "assemble_creation_request",
    "ExecChannel",
    "SessionMode",
    "read_until_eof",
    "resolve_host_address",
    "ImagePullError",
    "ImageResolver",
    "LogStreamRelay",
    "BackoffPolicy",
    "ContainerLaunchError",
    "ReadinessPoller",
]
