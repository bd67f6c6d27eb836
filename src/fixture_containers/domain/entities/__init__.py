"""Domain entities for fixture containers.

Exports:
    ContainerSpec: Desired container configuration
    CreationRequest: Runtime-facing creation request
    ContainerHandle: Runtime identity of a managed container
    InspectionState: Snapshot of one inspection
    ExecResult: Accumulated exec output
"""

from fixture_containers.domain.entities.container import (
    ContainerHandle,
    ContainerSpec,
    ContainerState,
    CreationRequest,
    ExecResult,
    FixtureContainerError,
    InspectionState,
    Mount,
    MountKind,
)

__all__ = [
    "ContainerHandle",
    "ContainerSpec",
    "ContainerState",
    "CreationRequest",
    "ExecResult",
    "FixtureContainerError",
    "InspectionState",
    "Mount",
    "MountKind",
]
