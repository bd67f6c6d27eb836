"""Host address resolution for published ports."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fixture_containers.domain.entities.container import InspectionState
from fixture_containers.ports.outbound import RuntimeEndpoint

DOCKER_ENV_MARKER = Path("/.dockerenv")

_REMOTE_SCHEMES = frozenset({"http", "https", "tcp"})
_LOCAL_SCHEMES = frozenset({"unix", "npipe"})


def resolve_host_address(
    endpoint: RuntimeEndpoint,
    inspection: Optional[InspectionState],
    marker_file: Path = DOCKER_ENV_MARKER,
) -> Optional[str]:
    """Resolve the address at which published ports are reachable.

    Args:
        endpoint: Runtime connection endpoint.
        inspection: Last cached inspection of the container.
        marker_file: File whose presence means this process runs in a container.

    Returns:
        Host address, or None for unknown schemes.
    """
    if endpoint.scheme in _REMOTE_SCHEMES:
        return endpoint.host
    if endpoint.scheme in _LOCAL_SCHEMES:
        if marker_file.exists():
            return inspection.network_gateway if inspection else None
        return "localhost"
    return None
