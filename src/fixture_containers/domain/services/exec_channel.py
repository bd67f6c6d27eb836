"""Exec channel service.

Runs shell commands inside a running container over an attach stream.

Session modes:
    EPHEMERAL: a fresh attach stream per command, closed after the output
        reaches end of stream. Commands do not share shell state.
    PERSISTENT: one attach stream opened once and reused by every command,
        so commands share one shell session. Closed only by ``close()``.

Both modes read output with the same loop: fixed-size chunks until the
runtime reports end of stream.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional

import structlog

from fixture_containers.domain.entities.container import ExecResult
from fixture_containers.domain.value_objects.identifiers import ContainerId
from fixture_containers.ports.outbound import (
    AttachOptions,
    AttachStreamPort,
    ContainerRuntimeClientPort,
)

logger = structlog.get_logger(__name__)

DEFAULT_BUFFER_SIZE = 1024


class SessionMode(Enum):
    """Lifetime of the attach stream behind an exec channel."""
    EPHEMERAL = "ephemeral"
    PERSISTENT = "persistent"


ResultSink = Callable[[SessionMode, ExecResult], None]


def encode_command(command: str) -> bytes:
    """Encode a command line for the container's stdin.

    Raises:
        UnicodeEncodeError: If the command is not ASCII.
    """
    return (command + "\n").encode("ascii")


async def read_until_eof(
    stream: AttachStreamPort,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> ExecResult:
    """Accumulate output chunks until the stream reports end of stream.

    Args:
        stream: Attach stream to read from.
        buffer_size: Maximum bytes per read.

    Returns:
        Completed exec result.
    """
    result = ExecResult()
    while True:
        chunk = await stream.read_chunk(buffer_size)
        if chunk.data:
            result.append(chunk.data)
        logger.debug("exec chunk", received=chunk.count, eof=chunk.eof)
        if chunk.eof:
            result.eof = True
            return result


class ExecChannel:
    """Command execution channel bound to one container.

    Not safe for concurrent use: commands on one channel must be awaited
    one at a time.

    ``on_result`` receives every completed result with the channel mode.
    """

    def __init__(
        self,
        client: ContainerRuntimeClientPort,
        container_id: ContainerId,
        mode: SessionMode = SessionMode.EPHEMERAL,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        options: AttachOptions | None = None,
        tty: bool = False,
        on_result: Optional[ResultSink] = None,
    ) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be positive")
        self._client = client
        self._container_id = container_id
        self._mode = mode
        self._buffer_size = buffer_size
        self._options = options or AttachOptions()
        self._tty = tty
        self._on_result = on_result
        self._stream: Optional[AttachStreamPort] = None

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    async def _attach(self) -> AttachStreamPort:
        return await self._client.attach(self._container_id, self._tty, self._options)

    async def open(self) -> None:
        """Open the persistent stream ahead of the first command."""
        if self._mode is not SessionMode.PERSISTENT:
            raise ValueError("Only persistent channels hold an open stream")
        if self._stream is None:
            self._stream = await self._attach()
            logger.info("Opened persistent exec session", container_id=self._container_id[:12])

    async def close(self) -> None:
        """Close the persistent stream, if any."""
        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.close()

    async def run(self, command: str) -> ExecResult:
        """Run one command and collect its output.

        Cancelling the awaiting task aborts the pending write or read and
        closes the stream involved.

        Args:
            command: Shell command line.

        Returns:
            Output accumulated until end of stream.
        """
        payload = encode_command(command)
        if self._mode is SessionMode.EPHEMERAL:
            stream = await self._attach()
            try:
                return await self._exchange(stream, payload)
            finally:
                await stream.close()

        await self.open()
        stream = self._stream
        try:
            return await self._exchange(stream, payload)
        except (asyncio.CancelledError, Exception):
            # Position in the output is unknown, the session cannot be reused
            await self.close()
            raise

    async def _exchange(self, stream: AttachStreamPort, payload: bytes) -> ExecResult:
        await stream.write(payload)
        result = await read_until_eof(stream, self._buffer_size)
        logger.debug(
            "exec complete",
            container_id=self._container_id[:12],
            mode=self._mode.value,
            bytes=result.size,
            chunks=result.chunks,
        )
        if self._on_result is not None:
            self._on_result(self._mode, result)
        return result

    async def __aenter__(self) -> ExecChannel:
        if self._mode is SessionMode.PERSISTENT:
            await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
