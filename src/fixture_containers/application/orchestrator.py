"""Fixture container lifecycle orchestrator.

Drives one container through create, start, readiness and teardown on top
of the container runtime port, with optional metrics.

State machine:
    UNSTARTED -> CREATED -> STARTED -> RUNNING -> STOPPED
    CREATED | STARTED -> FAILED when readiness is never reached

Each instance manages exactly one container and cannot be reused after
``stop()``. Calls on one instance must not overlap; nothing here
serializes them.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Optional

import structlog

from fixture_containers.domain.entities.container import (
    ContainerHandle,
    ContainerSpec,
    ContainerState,
    ExecResult,
    FixtureContainerError,
    InspectionState,
)
from fixture_containers.domain.services.configuration import assemble_creation_request
from fixture_containers.domain.services.exec_channel import (
    DEFAULT_BUFFER_SIZE,
    ExecChannel,
    SessionMode,
)
from fixture_containers.domain.services.host_address import (
    DOCKER_ENV_MARKER,
    resolve_host_address,
)
from fixture_containers.domain.services.image_resolver import ImagePullError, ImageResolver
from fixture_containers.domain.services.log_relay import LineSink, LogStreamRelay
from fixture_containers.domain.services.readiness import (
    DEFAULT_TIMEOUT_SECONDS,
    BackoffPolicy,
    ContainerLaunchError,
    ReadinessPoller,
)
from fixture_containers.domain.value_objects.identifiers import ContainerId, ExecId
from fixture_containers.infrastructure.metrics import MetricsRegistry
from fixture_containers.infrastructure.tracing import trace_span
from fixture_containers.ports.outbound import ContainerRuntimeClientPort, RegistryAuth

logger = structlog.get_logger(__name__)


class ContainerStateError(FixtureContainerError):
    """Operation is not valid in the container's current lifecycle state."""
    pass


class ContainerLifecycleOrchestrator:
    """Manages the lifecycle of one fixture container.

    Example:
        orchestrator = ContainerLifecycleOrchestrator(client, spec)
        await orchestrator.start()
        try:
            host = orchestrator.host_address()
            result = await orchestrator.exec("ls /")
        finally:
            await orchestrator.stop()
    """

    def __init__(
        self,
        client: ContainerRuntimeClientPort,
        spec: ContainerSpec,
        readiness_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        backoff: BackoffPolicy | None = None,
        log_sink: Optional[LineSink] = None,
        marker_file: Path = DOCKER_ENV_MARKER,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        auth: RegistryAuth | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: Container runtime client, owned by the caller.
            spec: Desired container configuration.
            readiness_timeout: Total seconds to wait for the running state.
            backoff: Delay policy between inspect calls.
            log_sink: Receives container output lines during startup.
            marker_file: Marker of running inside a container.
            buffer_size: Exec read buffer size.
            auth: Registry credentials for pulls.
            metrics: Optional metrics registry.
        """
        self._client = client
        self._spec = spec
        self._images = ImageResolver(client, auth)
        self._poller = ReadinessPoller(client, readiness_timeout, backoff)
        self._log_sink = log_sink
        self._marker_file = marker_file
        self._buffer_size = buffer_size
        self._metrics = metrics

        self._state = ContainerState.UNSTARTED
        self._handle: Optional[ContainerHandle] = None
        self._log_task: Optional[asyncio.Task[int]] = None
        self._removed = False

    @property
    def spec(self) -> ContainerSpec:
        return self._spec

    @property
    def state(self) -> ContainerState:
        return self._state

    @property
    def container_id(self) -> Optional[ContainerId]:
        return self._handle.container_id if self._handle else None

    @property
    def inspection(self) -> Optional[InspectionState]:
        """Last inspection, kept after stop for diagnostics."""
        return self._handle.last_inspection if self._handle else None

    @property
    def log_task(self) -> Optional[asyncio.Task[int]]:
        return self._log_task

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> InspectionState:
        """Create, start and wait for the container to run.

        Failures abort without cleanup; a container that was created stays
        for the caller to tear down with ``stop()``.

        Returns:
            Inspection that confirmed the running state.

        Raises:
            ConfigurationError: If the spec is malformed.
            ImagePullError: If the image cannot be pulled.
            ContainerLaunchError: If the container never reports running.
            RuntimeCallError: If create or start fails.
        """
        self._require(ContainerState.UNSTARTED, "start")
        began = time.monotonic()
        with trace_span("fixture.start", {"image": self._spec.image}) as span:
            container_id = await self.create()
            span.set_attribute("container.id", container_id)
            await self._try_start()
            state = await self.wait_until_container_started()

        if self._metrics:
            self._metrics.container_startup_seconds.observe(time.monotonic() - began)
        logger.info(
            "Container running",
            container_id=container_id[:12],
            image=self._spec.image,
            attempts=self._poller.attempts,
        )
        return state

    async def create(self) -> ContainerId:
        """Assemble the request, ensure the image and create the container.

        Returns:
            Runtime-assigned container id.
        """
        self._require(ContainerState.UNSTARTED, "create")
        request = assemble_creation_request(self._spec)
        await self._ensure_image()

        try:
            container_id = await self._client.create_container(request)
        except Exception:
            self._record("create", False)
            raise
        self._record("create", True)

        self._handle = ContainerHandle(container_id=container_id)
        self._state = ContainerState.CREATED
        logger.info("Container created", container_id=container_id[:12], image=self._spec.image)
        return container_id

    async def _ensure_image(self) -> None:
        began = time.monotonic()
        with trace_span("fixture.ensure_image", {"image": self._spec.image}):
            try:
                pulled = await self._images.ensure(self._spec.image)
            except ImagePullError:
                if self._metrics:
                    self._metrics.image_pulls_total.labels(status="failed").inc()
                raise
        if pulled and self._metrics:
            self._metrics.image_pulls_total.labels(status="success").inc()
            self._metrics.image_pull_duration_seconds.observe(time.monotonic() - began)

    async def _try_start(self) -> None:
        container_id = self._handle.container_id
        try:
            acknowledged = await self._client.start_container(container_id)
        except Exception:
            self._record("start", False)
            raise
        self._record("start", True)
        self._state = ContainerState.STARTED

        if acknowledged:
            relay = LogStreamRelay(self._client, container_id, self._log_sink)
            self._log_task = relay.start()
        else:
            logger.warning(
                "Start not acknowledged, polling readiness anyway",
                container_id=container_id[:12],
            )

    def is_ready(self, state: InspectionState) -> bool:
        """Readiness predicate, overridable for stronger checks."""
        return state.running

    async def wait_until_container_started(self) -> InspectionState:
        """Poll until the container satisfies ``is_ready``.

        Subclasses may extend this to wait for an application-level signal
        once the base implementation returns.
        """
        container_id = self._handle.container_id
        try:
            state = await self._poller.await_ready(container_id, self.is_ready)
        except ContainerLaunchError as e:
            self._state = ContainerState.FAILED
            if e.last_inspection is not None:
                self._handle.last_inspection = e.last_inspection
            if self._metrics:
                outcome = "error" if e.__cause__ else "timeout"
                self._metrics.readiness_attempts_total.labels(outcome=outcome).inc(e.attempts)
            logger.error(
                "Container failed to launch",
                container_id=container_id[:12],
                attempts=e.attempts,
            )
            raise

        if self._metrics:
            self._metrics.readiness_attempts_total.labels(outcome="ready").inc(self._poller.attempts)
        self._handle.last_inspection = state
        self._state = ContainerState.RUNNING
        return state

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop and remove the container.

        No-op when no container was ever created. Remove is only attempted
        after a successful stop. Neither call is retried; a failed remove
        leaves the container stopped, and calling ``stop()`` again only
        retries the remove.
        """
        if self._handle is None or self._removed:
            return

        container_id = self._handle.container_id
        await self._cancel_log_relay()

        with trace_span("fixture.stop", {"container.id": container_id}):
            if self._state is not ContainerState.STOPPED:
                try:
                    await self._client.stop_container(container_id)
                except Exception:
                    self._record("stop", False)
                    raise
                self._record("stop", True)
                self._state = ContainerState.STOPPED

            try:
                await self._client.remove_container(container_id)
            except Exception:
                self._record("remove", False)
                logger.error("Container stopped but not removed", container_id=container_id[:12])
                raise
            self._record("remove", True)
            self._removed = True

        logger.info("Container stopped and removed", container_id=container_id[:12])

    async def _cancel_log_relay(self) -> None:
        task, self._log_task = self._log_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def execute_command(self, *command: str) -> ExecId:
        """Start a detached command in the container.

        Neither output nor exit code is collected; use ``exec`` for that.

        Returns:
            Exec instance id.
        """
        self._require(ContainerState.RUNNING, "execute_command")
        container_id = self._handle.container_id
        try:
            exec_id = await self._client.exec_create(
                container_id, list(command), attach_stdout=True, attach_stderr=True
            )
            await self._client.exec_start(exec_id)
        except Exception:
            self._record("exec", False)
            raise
        self._record("exec", True)
        logger.info("Detached command started", container_id=container_id[:12], command=list(command))
        return exec_id

    def exec_channel(self, mode: SessionMode = SessionMode.EPHEMERAL) -> ExecChannel:
        """Create an exec channel bound to this container."""
        self._require(ContainerState.RUNNING, "exec_channel")
        return ExecChannel(
            self._client,
            self._handle.container_id,
            mode=mode,
            buffer_size=self._buffer_size,
            on_result=self._record_exec_output,
        )

    async def exec(self, command: str) -> ExecResult:
        """Run a command over a fresh attach stream and collect its output."""
        return await self.exec_channel(SessionMode.EPHEMERAL).run(command)

    def _record_exec_output(self, mode: SessionMode, result: ExecResult) -> None:
        if self._metrics:
            self._metrics.exec_bytes_total.labels(mode=mode.value).inc(result.size)

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def host_address(self) -> Optional[str]:
        """Address at which the container's published ports are reachable."""
        return resolve_host_address(self._client.endpoint, self.inspection, self._marker_file)

    def host_port(self, exposed_port: int) -> int:
        """Host port an exposed port is published on."""
        if exposed_port not in self._spec.exposed_ports:
            raise KeyError(f"Port {exposed_port} is not exposed")
        return self._spec.host_port_for(exposed_port)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, expected: ContainerState, operation: str) -> None:
        if self._state is not expected:
            raise ContainerStateError(
                f"Cannot {operation} container in state {self._state.value}"
            )

    def _record(self, operation: str, success: bool) -> None:
        if self._metrics:
            self._metrics.record_operation(operation, success)

    async def __aenter__(self) -> ContainerLifecycleOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
