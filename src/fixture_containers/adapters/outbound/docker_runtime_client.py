"""Docker Engine adapter for the container runtime port.

Drives a Docker-compatible engine through the low-level ``docker.APIClient``.
The SDK is blocking, so every call runs in a worker thread via
``asyncio.to_thread``.

Example:
    client = DockerRuntimeClient(base_url="unix:///var/run/docker.sock")
    container_id = await client.create_container(request)
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, AsyncIterator, Callable, Optional

import docker
import structlog
from docker.constants import IS_WINDOWS_PLATFORM
from docker.errors import DockerException
from docker.utils import socket as docker_socket

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

logger = structlog.get_logger(__name__)

DEFAULT_UNIX_ENDPOINT = "unix:///var/run/docker.sock"
DEFAULT_NPIPE_ENDPOINT = "npipe:////./pipe/docker_engine"

# requests exceptions derive from OSError
_TRANSPORT_ERRORS = (DockerException, OSError)


def default_endpoint_url() -> str:
    """Endpoint the docker SDK connects to when none is configured."""
    if os.environ.get("DOCKER_HOST"):
        return os.environ["DOCKER_HOST"]
    return DEFAULT_NPIPE_ENDPOINT if IS_WINDOWS_PLATFORM else DEFAULT_UNIX_ENDPOINT


def _progress_from_event(event: dict[str, Any]) -> PullProgress:
    error = event.get("error") or (event.get("errorDetail") or {}).get("message")
    return PullProgress(status=event.get("status", ""), error_message=error)


class DockerAttachStream:
    """Duplex attach stream over a hijacked engine socket.

    Without a TTY the engine multiplexes stdout and stderr into frames with
    an 8-byte header (stream type, 3 padding bytes, big-endian length).
    Reads never cross a frame boundary; payloads of both streams are
    delivered in arrival order.
    """

    def __init__(self, sock: Any, multiplexed: bool = True) -> None:
        self._sock = sock
        self._multiplexed = multiplexed
        self._frame_remaining = 0
        self._eof = False
        self._closed = False

    def _raw_socket(self) -> Any:
        return getattr(self._sock, "_sock", self._sock)

    async def write(self, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._raw_socket().sendall, data)
        except OSError as e:
            raise RuntimeCallError("attach write", str(e)) from e

    def _read_blocking(self, size: int) -> ReadResult:
        if self._eof:
            return ReadResult(eof=True)
        if self._multiplexed:
            while self._frame_remaining == 0:
                _, length = docker_socket.next_frame_header(self._sock)
                if length < 0:
                    self._eof = True
                    return ReadResult(eof=True)
                self._frame_remaining = length
            size = min(size, self._frame_remaining)

        data = docker_socket.read(self._sock, size)
        if not data:
            self._eof = True
            return ReadResult(eof=True)
        if self._multiplexed:
            self._frame_remaining -= len(data)
        return ReadResult(data=data)

    async def read_chunk(self, size: int) -> ReadResult:
        try:
            return await asyncio.to_thread(self._read_blocking, size)
        except OSError as e:
            raise RuntimeCallError("attach read", str(e)) from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        raw = self._raw_socket()
        await asyncio.to_thread(self._sock.close)
        if raw is not self._sock:
            await asyncio.to_thread(raw.close)


class DockerRuntimeClient:
    """Container runtime client backed by the docker SDK."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: int = 60,
        api_client: Optional[docker.APIClient] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Engine endpoint; environment defaults when None.
            timeout: API call timeout in seconds.
            api_client: Pre-built SDK client, mainly for tests.
        """
        if api_client is None:
            try:
                if base_url:
                    api_client = docker.APIClient(base_url=base_url, timeout=timeout)
                else:
                    api_client = docker.from_env(timeout=timeout).api
            except DockerException as e:
                raise RuntimeCallError("connect", str(e)) from e
        self._api = api_client
        self._endpoint = RuntimeEndpoint.parse(base_url or default_endpoint_url())

    @property
    def endpoint(self) -> RuntimeEndpoint:
        return self._endpoint

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except _TRANSPORT_ERRORS as e:
            logger.debug("Runtime call failed", operation=operation, error=str(e))
            raise RuntimeCallError(operation, str(e)) from e

    async def list_images(self, name_filter: ImageRef) -> list[ImageSummary]:
        images = await self._call("list images", self._api.images, name=name_filter)
        return [
            ImageSummary(image_id=image["Id"], repo_tags=tuple(image.get("RepoTags") or ()))
            for image in images
        ]

    async def pull_image(
        self,
        repository: str,
        tag: str,
        auth: RegistryAuth | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        """Pull an image; ``progress`` is invoked from a worker thread."""
        auth_config = auth.to_auth_config() if auth else None

        def pull() -> None:
            events = self._api.pull(
                repository, tag=tag, stream=True, decode=True, auth_config=auth_config
            )
            for event in events:
                if progress:
                    progress(_progress_from_event(event))

        await self._call("pull", pull)

    async def create_container(self, request: CreationRequest) -> ContainerId:
        response = await self._call(
            "create", self._api.create_container_from_config, request.to_payload()
        )
        for warning in response.get("Warnings") or ():
            logger.warning("Create warning", warning=warning)
        return ContainerId(response["Id"])

    async def start_container(self, container_id: ContainerId) -> bool:
        def start() -> bool:
            response = self._api._post(self._api._url("/containers/{0}/start", container_id))
            self._api._raise_for_status(response)
            # 304 means the container was already started
            return response.status_code != 304

        return await self._call("start", start)

    async def stop_container(self, container_id: ContainerId) -> None:
        await self._call("stop", self._api.stop, container_id)

    async def remove_container(self, container_id: ContainerId) -> None:
        await self._call("remove", self._api.remove_container, container_id)

    async def inspect_container(self, container_id: ContainerId) -> InspectionState:
        response = await self._call("inspect", self._api.inspect_container, container_id)
        return InspectionState.from_inspect_response(response)

    async def get_logs(self, container_id: ContainerId) -> AsyncIterator[bytes]:
        chunks = await self._call(
            "logs", self._api.logs, container_id, stdout=True, stderr=True, stream=True
        )
        try:
            while True:
                chunk = await self._call("logs", next, chunks, None)
                if chunk is None:
                    return
                yield chunk
        finally:
            close = getattr(chunks, "close", None)
            if close is not None:
                close()

    async def exec_create(
        self,
        container_id: ContainerId,
        cmd: list[str],
        attach_stdout: bool = True,
        attach_stderr: bool = True,
    ) -> ExecId:
        response = await self._call(
            "exec create",
            self._api.exec_create,
            container_id,
            cmd,
            stdout=attach_stdout,
            stderr=attach_stderr,
        )
        return ExecId(response["Id"])

    async def exec_start(self, exec_id: ExecId) -> None:
        await self._call("exec start", self._api.exec_start, exec_id, detach=True)

    async def attach(
        self,
        container_id: ContainerId,
        tty: bool,
        options: AttachOptions,
    ) -> DockerAttachStream:
        sock = await self._call(
            "attach", self._api.attach_socket, container_id, params=options.to_params()
        )
        return DockerAttachStream(sock, multiplexed=not tty)

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._api.close()
