"""Image resolver service."""

from __future__ import annotations

import structlog

from fixture_containers.domain.entities.container import FixtureContainerError
from fixture_containers.domain.value_objects.identifiers import ImageRef, split_image_reference
from fixture_containers.ports.outbound import (
    ContainerRuntimeClientPort,
    PullProgress,
    RegistryAuth,
    RuntimeCallError,
)

logger = structlog.get_logger(__name__)


class ImagePullError(FixtureContainerError):
    """Image could not be pulled from its registry."""

    def __init__(self, image_ref: str, message: str) -> None:
        self.image_ref = image_ref
        super().__init__(f"Failed to pull image {image_ref}: {message}")


class ImageResolver:
    """Makes sure an image is present locally before a container is created.

    Handles:
    - Existence check against the local image store
    - Pulling absent images with progress reporting
    """

    def __init__(
        self,
        client: ContainerRuntimeClientPort,
        auth: RegistryAuth | None = None,
    ) -> None:
        self._client = client
        self._auth = auth

    async def ensure(self, image_ref: ImageRef) -> bool:
        """Ensure an image exists locally.

        Issues exactly one existence check; pulls only if nothing matched.

        Args:
            image_ref: Image reference (e.g., "nginx:1.25").

        Returns:
            True if a pull was performed.

        Raises:
            ImagePullError: If the pull fails or reports an error event.
        """
        images = await self._client.list_images(image_ref)
        if images:
            logger.debug("Image present", image=image_ref, matches=len(images))
            return False

        repository, tag = split_image_reference(image_ref)
        errors: list[str] = []

        def on_progress(event: PullProgress) -> None:
            if event.status:
                logger.info("Pull progress", image=image_ref, status=event.status)
            if event.is_error:
                logger.error("Pull error", image=image_ref, error=event.error_message)
                errors.append(event.error_message or "")

        logger.info("Pulling image", repository=repository, tag=tag)
        try:
            await self._client.pull_image(repository, tag, self._auth, on_progress)
        except RuntimeCallError as e:
            raise ImagePullError(image_ref, str(e)) from e

        if errors:
            raise ImagePullError(image_ref, errors[-1])
        return True
