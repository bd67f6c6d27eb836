"""In-memory container runtime for testing and development.

This adapter provides a scriptable implementation of the
ContainerRuntimeClientPort protocol for use in tests and on machines
without a container engine. Every call is recorded in ``calls``.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional, Union

from fixture_containers.domain.entities.container import CreationRequest, InspectionState
from fixture_containers.domain.value_objects.identifiers import ContainerId, ExecId, ImageRef
from fixture_containers.ports.outbound import (
    AttachOptions,
    ImageSummary,
    ProgressSink,
    PullProgress,
    ReadResult,
    RegistryAuth,
    RuntimeCallError,
    RuntimeEndpoint,
)

InspectStep = Union[InspectionState, bool, Exception]
ExecResponder = Callable[[str], list[bytes]]


@dataclass
class InMemoryContainer:
    """State of one simulated container."""

    container_id: ContainerId
    request: CreationRequest
    running: bool = False
    removed: bool = False
    gateway: str = "172.17.0.1"


@dataclass
class InMemoryAttachStream:
    """Simulated attach stream.

    Each write queues the responder's chunks for that command; reads hand
    them out (split to the requested size) and then report end of stream
    once per command.
    """

    responder: ExecResponder
    writes: list[bytes] = field(default_factory=list)
    close_count: int = 0
    read_delay: float = 0.0
    _pending: list[bytes] = field(default_factory=list)

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise RuntimeCallError("attach write", "stream is closed")
        await asyncio.sleep(0)
        self.writes.append(data)
        self._pending.extend(self.responder(data.decode("ascii").rstrip("\n")))

    async def read_chunk(self, size: int) -> ReadResult:
        if self.closed:
            raise RuntimeCallError("attach read", "stream is closed")
        await asyncio.sleep(self.read_delay)
        if self._pending:
            chunk = self._pending.pop(0)
            if len(chunk) > size:
                self._pending.insert(0, chunk[size:])
                chunk = chunk[:size]
            return ReadResult(data=chunk)
        return ReadResult(eof=True)

    async def close(self) -> None:
        self.close_count += 1


class InMemoryRuntimeClient:
    """Scriptable in-memory implementation of the runtime port.

    Example:
        client = InMemoryRuntimeClient(images={"nginx"})
        client.inspect_script = [False, False, True]
        orchestrator = ContainerLifecycleOrchestrator(client, spec)
        await orchestrator.start()
        assert client.operations() == ["list_images", "create_container", ...]
    """

    def __init__(
        self,
        images: Optional[set[str]] = None,
        endpoint: RuntimeEndpoint | None = None,
    ) -> None:
        """Initialize the in-memory runtime.

        Args:
            images: Image references present locally.
            endpoint: Endpoint reported for address resolution.
        """
        self.images: set[str] = set(images or ())
        self._endpoint = endpoint or RuntimeEndpoint(scheme="unix")
        self.containers: dict[str, InMemoryContainer] = {}
        self.calls: list[tuple[str, tuple]] = []

        # Scripting knobs
        self.pull_events: list[PullProgress] = [PullProgress(status="Pull complete")]
        self.start_acknowledged = True
        self.inspect_script: list[InspectStep] = [True]
        self.inspect_delay = 0.0
        self.log_chunks: list[bytes] = []
        self.logs_error: Optional[Exception] = None
        self.exec_responder: ExecResponder = lambda command: []
        self.failures: dict[str, Exception] = {}
        self.attach_streams: list[InMemoryAttachStream] = []
        self.attach_read_delay = 0.0
        self.closed = False

        self._ids = itertools.count(1)
        self._inspect_index = 0

    @property
    def endpoint(self) -> RuntimeEndpoint:
        return self._endpoint

    def operations(self) -> list[str]:
        """Names of the recorded calls, in order."""
        return [name for name, _ in self.calls]

    async def _record(self, operation: str, *args) -> None:
        self.calls.append((operation, args))
        await asyncio.sleep(0)
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _get(self, container_id: ContainerId) -> InMemoryContainer:
        container = self.containers.get(container_id)
        if container is None or container.removed:
            raise RuntimeCallError("lookup", f"No such container: {container_id}")
        return container

    async def list_images(self, name_filter: ImageRef) -> list[ImageSummary]:
        await self._record("list_images", name_filter)
        if name_filter in self.images:
            return [ImageSummary(image_id=f"sha256:{name_filter}", repo_tags=(name_filter,))]
        return []

    async def pull_image(
        self,
        repository: str,
        tag: str,
        auth: RegistryAuth | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        await self._record("pull_image", repository, tag)
        failed = False
        for event in self.pull_events:
            failed = failed or event.is_error
            if progress:
                progress(event)
        if not failed:
            self.images.add(f"{repository}:{tag}")
            self.images.add(repository)

    async def create_container(self, request: CreationRequest) -> ContainerId:
        await self._record("create_container", request)
        container_id = ContainerId(f"{next(self._ids):064x}")
        self.containers[container_id] = InMemoryContainer(container_id, request)
        return container_id

    async def start_container(self, container_id: ContainerId) -> bool:
        await self._record("start_container", container_id)
        container = self._get(container_id)
        container.running = True
        return self.start_acknowledged

    async def stop_container(self, container_id: ContainerId) -> None:
        await self._record("stop_container", container_id)
        self._get(container_id).running = False

    async def remove_container(self, container_id: ContainerId) -> None:
        await self._record("remove_container", container_id)
        self._get(container_id).removed = True

    async def inspect_container(self, container_id: ContainerId) -> InspectionState:
        await self._record("inspect_container", container_id)
        if self.inspect_delay:
            await asyncio.sleep(self.inspect_delay)
        container = self._get(container_id)
        step = self.inspect_script[min(self._inspect_index, len(self.inspect_script) - 1)]
        self._inspect_index += 1
        if isinstance(step, Exception):
            raise step
        if isinstance(step, InspectionState):
            return step
        return InspectionState(
            container_id=container_id,
            running=bool(step),
            network_gateway=container.gateway,
            raw={"Id": container_id, "State": {"Running": bool(step)}},
        )

    async def get_logs(self, container_id: ContainerId) -> AsyncIterator[bytes]:
        await self._record("get_logs", container_id)
        if self.logs_error is not None:
            raise self.logs_error
        for chunk in self.log_chunks:
            await asyncio.sleep(0)
            yield chunk

    async def exec_create(
        self,
        container_id: ContainerId,
        cmd: list[str],
        attach_stdout: bool = True,
        attach_stderr: bool = True,
    ) -> ExecId:
        await self._record("exec_create", container_id, tuple(cmd))
        self._get(container_id)
        return ExecId(f"exec-{next(self._ids)}")

    async def exec_start(self, exec_id: ExecId) -> None:
        await self._record("exec_start", exec_id)

    async def attach(
        self,
        container_id: ContainerId,
        tty: bool,
        options: AttachOptions,
    ) -> InMemoryAttachStream:
        await self._record("attach", container_id, tty, options)
        self._get(container_id)
        stream = InMemoryAttachStream(
            responder=self.exec_responder, read_delay=self.attach_read_delay
        )
        self.attach_streams.append(stream)
        return stream

    def close(self) -> None:
        self.closed = True
