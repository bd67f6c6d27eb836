"""Outbound ports - External dependency interfaces for fixture containers.

Outbound ports define the interfaces of the container runtime (a
Docker-compatible engine) that the orchestrator drives. Adapters provide
the actual transport.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Protocol
from urllib.parse import urlsplit

from fixture_containers.domain.entities.container import (
    CreationRequest,
    FixtureContainerError,
    InspectionState,
)
from fixture_containers.domain.value_objects.identifiers import ContainerId, ExecId, ImageRef


# =============================================================================
# Errors
# =============================================================================


class RuntimeCallError(FixtureContainerError):
    """Raised when a call to the container runtime fails at transport level."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


# =============================================================================
# Value types crossing the boundary
# =============================================================================


@dataclass(frozen=True)
class RuntimeEndpoint:
    """Connection endpoint of the runtime."""
    scheme: str
    host: str = ""

    @classmethod
    def parse(cls, base_url: str) -> RuntimeEndpoint:
        """Parse an endpoint URL such as ``unix:///var/run/docker.sock``."""
        parts = urlsplit(base_url)
        return cls(scheme=parts.scheme.lower(), host=parts.hostname or "")


@dataclass(frozen=True)
class ImageSummary:
    """Locally present image."""
    image_id: str
    repo_tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class PullProgress:
    """One progress event of an image pull."""
    status: str = ""
    error_message: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error_message is not None


@dataclass(frozen=True)
class RegistryAuth:
    """Registry authentication credentials."""
    username: str = ""
    password: str = ""
    server_address: str = ""

    def to_auth_config(self) -> dict[str, str] | None:
        if not self.username:
            return None
        config = {"username": self.username, "password": self.password}
        if self.server_address:
            config["serveraddress"] = self.server_address
        return config


@dataclass(frozen=True)
class AttachOptions:
    """Which streams an attach session connects."""
    stream: bool = False
    stdin: bool = True
    stdout: bool = True
    stderr: bool = True
    logs: bool = False

    def to_params(self) -> dict[str, int]:
        return {
            "stream": int(self.stream),
            "stdin": int(self.stdin),
            "stdout": int(self.stdout),
            "stderr": int(self.stderr),
            "logs": int(self.logs),
        }


@dataclass(frozen=True)
class ReadResult:
    """Result of one chunk read from an attach stream."""
    data: bytes = b""
    eof: bool = False

    @property
    def count(self) -> int:
        return len(self.data)


ProgressSink = Callable[[PullProgress], None]


# =============================================================================
# Attach Stream Port
# =============================================================================


class AttachStreamPort(Protocol):
    """Protocol for a duplex stream attached to a running container.

    Output is delivered in chunks; the terminal condition is the ``eof``
    flag of a read result, never a chunk count.
    """

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write bytes to the container's stdin.

        Raises:
            RuntimeCallError: If the write fails.
        """
        ...

    @abstractmethod
    async def read_chunk(self, size: int) -> ReadResult:
        """Read up to ``size`` bytes of stdout/stderr.

        Raises:
            RuntimeCallError: If the read fails.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the stream. Closing twice is a no-op."""
        ...


# =============================================================================
# Container Runtime Client Port
# =============================================================================


class ContainerRuntimeClientPort(Protocol):
    """Protocol for the container runtime client.

    One client may be shared by many orchestrators. Every coroutine is a
    suspension point; none of them is retried by the caller.

    Example:
        container_id = await client.create_container(request)
        await client.start_container(container_id)
        state = await client.inspect_container(container_id)
    """

    @property
    @abstractmethod
    def endpoint(self) -> RuntimeEndpoint:
        """Return the connection endpoint used for host address resolution."""
        ...

    @abstractmethod
    async def list_images(self, name_filter: ImageRef) -> list[ImageSummary]:
        """List local images matching a reference."""
        ...

    @abstractmethod
    async def pull_image(
        self,
        repository: str,
        tag: str,
        auth: RegistryAuth | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        """Pull an image, reporting every progress event to ``progress``.

        Raises:
            RuntimeCallError: If the pull cannot be issued.
        """
        ...

    @abstractmethod
    async def create_container(self, request: CreationRequest) -> ContainerId:
        """Create a container and return its runtime-assigned id."""
        ...

    @abstractmethod
    async def start_container(self, container_id: ContainerId) -> bool:
        """Start a container. Returns True if the runtime acknowledged it."""
        ...

    @abstractmethod
    async def stop_container(self, container_id: ContainerId) -> None:
        """Stop a container."""
        ...

    @abstractmethod
    async def remove_container(self, container_id: ContainerId) -> None:
        """Remove a container."""
        ...

    @abstractmethod
    async def inspect_container(self, container_id: ContainerId) -> InspectionState:
        """Inspect a container."""
        ...

    @abstractmethod
    def get_logs(self, container_id: ContainerId) -> AsyncIterator[bytes]:
        """Stream combined stdout and stderr as raw byte chunks."""
        ...

    @abstractmethod
    async def exec_create(
        self,
        container_id: ContainerId,
        cmd: list[str],
        attach_stdout: bool = True,
        attach_stderr: bool = True,
    ) -> ExecId:
        """Create an exec instance and return its id."""
        ...

    @abstractmethod
    async def exec_start(self, exec_id: ExecId) -> None:
        """Start an exec instance detached."""
        ...

    @abstractmethod
    async def attach(
        self,
        container_id: ContainerId,
        tty: bool,
        options: AttachOptions,
    ) -> AttachStreamPort:
        """Open a duplex attach stream to a container.

        Args:
            container_id: Container to attach to.
            tty: Whether the container has a TTY, in which case output is
                raw instead of multiplexed into frames.
            options: Streams to connect.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the connection to the engine."""
        ...


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "RuntimeCallError",
    "RuntimeEndpoint",
    "ImageSummary",
    "PullProgress",
    "RegistryAuth",
    "AttachOptions",
    "ReadResult",
    "ProgressSink",
    "AttachStreamPort",
    "ContainerRuntimeClientPort",
]
