"""Log stream relay service."""

from __future__ import annotations

import asyncio
import codecs
from typing import Callable, Optional

import structlog

from fixture_containers.domain.value_objects.identifiers import ContainerId
from fixture_containers.ports.outbound import ContainerRuntimeClientPort

logger = structlog.get_logger(__name__)

LineSink = Callable[[str], None]


class LogStreamRelay:
    """Forwards a container's combined stdout/stderr lines to a sink.

    Best-effort: failures are logged and never raised. The relay ends
    silently at end of stream.
    """

    def __init__(
        self,
        client: ContainerRuntimeClientPort,
        container_id: ContainerId,
        sink: Optional[LineSink] = None,
    ) -> None:
        self._client = client
        self._container_id = container_id
        self._sink = sink or self._log_line
        self.lines_relayed = 0

    def _log_line(self, line: str) -> None:
        logger.debug("container output", container_id=self._container_id[:12], line=line)

    async def run(self) -> int:
        """Relay lines until end of stream.

        Returns:
            Number of lines forwarded.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        try:
            async for chunk in self._client.get_logs(self._container_id):
                pending += decoder.decode(chunk)
                *lines, pending = pending.split("\n")
                for line in lines:
                    self._emit(line)
            pending += decoder.decode(b"", final=True)
            if pending:
                self._emit(pending)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Log relay failed",
                container_id=self._container_id[:12],
                error=str(e),
            )
        return self.lines_relayed

    def _emit(self, line: str) -> None:
        if line.endswith("\r"):
            line = line[:-1]
        if self.lines_relayed == 0 and line.startswith("\ufeff"):
            line = line[1:]
        self.lines_relayed += 1
        try:
            self._sink(line)
        except Exception as e:
            logger.warning("Log sink rejected line", error=str(e))

    def start(self) -> asyncio.Task[int]:
        """Run the relay as a background task."""
        return asyncio.create_task(
            self.run(), name=f"log-relay-{self._container_id[:12]}"
        )
