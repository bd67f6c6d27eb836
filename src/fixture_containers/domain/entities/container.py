"""Fixture container entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from fixture_containers.domain.value_objects.identifiers import ContainerId, ImageRef


class FixtureContainerError(Exception):
    """Base class for all fixture container failures."""

    pass


class ContainerState(Enum):
    """Fixture container lifecycle state."""
    UNSTARTED = "unstarted"
    CREATED = "created"
    STARTED = "started"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class MountKind(str, Enum):
    """Mount types understood by the runtime."""
    BIND = "bind"
    VOLUME = "volume"
    TMPFS = "tmpfs"
    NPIPE = "npipe"


@dataclass(frozen=True)
class Mount:
    """A mount declaration passed through to the runtime unchanged."""
    source: str
    target: str
    kind: str = MountKind.BIND.value


@dataclass(frozen=True)
class ContainerSpec:
    """Desired configuration of a fixture container.

    Bindings map an exposed container port to a host port. Exposed ports
    without an explicit binding are published on the same host port.
    """
    image: ImageRef
    exposed_ports: tuple[int, ...] = ()
    port_bindings: tuple[tuple[int, int], ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    labels: tuple[tuple[str, str], ...] = ()
    mounts: tuple[Mount, ...] = ()
    command: tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        image: str,
        exposed_ports: list[int] | tuple[int, ...] = (),
        port_bindings: Mapping[int, int] | None = None,
        env: Mapping[str, str] | list[tuple[str, str]] | None = None,
        labels: Mapping[str, str] | list[tuple[str, str]] | None = None,
        mounts: list[Mount] | tuple[Mount, ...] = (),
        command: list[str] | tuple[str, ...] = (),
    ) -> ContainerSpec:
        """Build a spec from plain Python collections.

        Ports are de-duplicated keeping their first position.
        """
        def pairs(value):
            if value is None:
                return ()
            items = value.items() if isinstance(value, Mapping) else value
            return tuple((str(k), str(v)) for k, v in items)

        return cls(
            image=ImageRef(image),
            exposed_ports=tuple(dict.fromkeys(int(p) for p in exposed_ports)),
            port_bindings=tuple(
                (int(k), int(v)) for k, v in (port_bindings or {}).items()
            ),
            env=pairs(env),
            labels=pairs(labels),
            mounts=tuple(mounts),
            command=tuple(command),
        )

    def host_port_for(self, exposed_port: int) -> int:
        """Get the host port an exposed port is published on."""
        for exposed, host in self.port_bindings:
            if exposed == exposed_port:
                return host
        return exposed_port


@dataclass(frozen=True)
class CreationRequest:
    """Runtime-facing container creation request.

    Derived from a ContainerSpec by the configuration assembler and never
    mutated afterwards.
    """
    image: str
    env: tuple[str, ...]
    labels: tuple[tuple[str, str], ...]
    exposed_ports: tuple[str, ...]
    port_bindings: tuple[tuple[str, str], ...]
    mounts: tuple[Mount, ...]
    command: tuple[str, ...] = ()
    tty: bool = False
    attach_stdin: bool = True
    attach_stdout: bool = True
    attach_stderr: bool = True

    def to_payload(self) -> dict[str, Any]:
        """Render the Docker Engine ``POST /containers/create`` body."""
        payload: dict[str, Any] = {
            "Image": self.image,
            "Env": list(self.env),
            "Labels": dict(self.labels),
            "ExposedPorts": {port: {} for port in self.exposed_ports},
            "Tty": self.tty,
            "AttachStdin": self.attach_stdin,
            "AttachStdout": self.attach_stdout,
            "AttachStderr": self.attach_stderr,
            "HostConfig": {
                "PortBindings": {
                    port: [{"HostPort": host_port}]
                    for port, host_port in self.port_bindings
                },
                "Mounts": [
                    {"Source": m.source, "Target": m.target, "Type": m.kind}
                    for m in self.mounts
                ],
            },
        }
        if self.command:
            payload["Cmd"] = list(self.command)
        return payload


@dataclass(frozen=True)
class InspectionState:
    """Snapshot of one container inspection.

    Replaced wholesale on every inspect call.
    """
    container_id: ContainerId
    running: bool
    network_gateway: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_inspect_response(cls, response: Mapping[str, Any]) -> InspectionState:
        """Build a snapshot from a Docker Engine inspect response."""
        state = response.get("State") or {}
        network = response.get("NetworkSettings") or {}
        return cls(
            container_id=ContainerId(response.get("Id", "")),
            running=bool(state.get("Running", False)),
            network_gateway=network.get("Gateway") or None,
            raw=response,
        )


@dataclass
class ContainerHandle:
    """Runtime identity of the one container an orchestrator manages."""
    container_id: ContainerId
    last_inspection: InspectionState | None = None


@dataclass
class ExecResult:
    """Accumulated output of one exec session.

    Chunks are collected in a growable buffer; ``output`` is a snapshot.
    """
    eof: bool = False
    chunks: int = 0
    _buffer: bytearray = field(default_factory=bytearray, repr=False)

    def append(self, data: bytes) -> None:
        """Add one received chunk."""
        if self.eof:
            raise FixtureContainerError("Exec result is already complete")
        self._buffer.extend(data)
        self.chunks += 1

    @property
    def output(self) -> bytes:
        return bytes(self._buffer)

    @property
    def size(self) -> int:
        return len(self._buffer)

    @property
    def text(self) -> str:
        """Output decoded as UTF-8."""
        return self._buffer.decode("utf-8", errors="replace")
