"""Readiness poller service.

Repeatedly inspects a container until its state satisfies a predicate or a
wall-clock timeout elapses. Attempts are unbounded inside the timeout; an
optional capped exponential backoff spaces them out without changing the
pass/fail outcome.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from fixture_containers.domain.entities.container import (
    FixtureContainerError,
    InspectionState,
)
from fixture_containers.domain.value_objects.identifiers import ContainerId
from fixture_containers.ports.outbound import ContainerRuntimeClientPort

logger = structlog.get_logger(__name__)

ReadinessPredicate = Callable[[InspectionState], bool]

DEFAULT_TIMEOUT_SECONDS = 60.0


class ContainerLaunchError(FixtureContainerError):
    """Container never reached a ready state within the timeout.

    Raised as soon as an inspect call fails, with that failure chained as
    ``__cause__``. On timeout there is no failure to chain: the last
    not-ready result is carried as ``last_inspection`` and ``__cause__``
    is None.
    """

    def __init__(
        self,
        message: str,
        last_inspection: Optional[InspectionState] = None,
        attempts: int = 0,
    ) -> None:
        self.last_inspection = last_inspection
        self.attempts = attempts
        super().__init__(message)


def is_running(state: InspectionState) -> bool:
    """Default readiness predicate."""
    return state.running


@dataclass(frozen=True)
class BackoffPolicy:
    """Capped exponential delay between inspect attempts.

    The default performs no waiting at all.
    """
    initial_seconds: float = 0.0
    max_seconds: float = 1.0
    multiplier: float = 2.0

    def delay(self, attempt: int) -> float:
        """Get the delay after a failed attempt (1-based)."""
        if self.initial_seconds <= 0:
            return 0.0
        return min(self.max_seconds, self.initial_seconds * self.multiplier ** (attempt - 1))


class ReadinessPoller:
    """Polls ``inspect`` until a container is ready."""

    def __init__(
        self,
        client: ContainerRuntimeClientPort,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        backoff: BackoffPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._timeout = timeout_seconds
        self._backoff = backoff or BackoffPolicy()
        self._clock = clock
        self.attempts = 0

    async def await_ready(
        self,
        container_id: ContainerId,
        predicate: ReadinessPredicate = is_running,
    ) -> InspectionState:
        """Wait until ``predicate`` holds for an inspection of the container.

        Args:
            container_id: Container to inspect.
            predicate: Readiness condition, ``running`` by default.

        Returns:
            The first inspection satisfying the predicate.

        Raises:
            ContainerLaunchError: If the timeout elapses first or inspect fails.
        """
        last_state: Optional[InspectionState] = None
        self.attempts = 0

        async def poll() -> InspectionState:
            nonlocal last_state
            while True:
                self.attempts += 1
                state = await self._client.inspect_container(container_id)
                last_state = state
                if predicate(state):
                    return state
                delay = self._backoff.delay(self.attempts)
                # sleep(0) still yields to the event loop
                await asyncio.sleep(delay)

        started = self._clock()
        try:
            state = await asyncio.wait_for(poll(), timeout=self._timeout)
        except asyncio.TimeoutError:
            elapsed = self._clock() - started
            logger.warning(
                "Container did not become ready",
                container_id=container_id[:12],
                attempts=self.attempts,
                elapsed_seconds=round(elapsed, 3),
            )
            error = ContainerLaunchError(
                f"Container not ready after {self.attempts} attempts",
                last_inspection=last_state,
                attempts=self.attempts,
            )
            raise error from None
        except Exception as e:
            logger.warning(
                "Inspect failed",
                container_id=container_id[:12],
                attempts=self.attempts,
                error=str(e),
            )
            raise ContainerLaunchError(
                "Container startup failed",
                last_inspection=last_state,
                attempts=self.attempts,
            ) from e

        logger.debug(
            "Container ready",
            container_id=container_id[:12],
            attempts=self.attempts,
        )
        return state
