"""Fixture container value objects."""

from typing import NewType

# Type-safe identifiers
ContainerId = NewType('ContainerId', str)
ExecId = NewType('ExecId', str)
ImageRef = NewType('ImageRef', str)

DEFAULT_TAG = "latest"


def create_port_key(port: int, protocol: str = "tcp") -> str:
    """Create the runtime key for an exposed port.

    Args:
        port: Container port.
        protocol: Transport protocol.

    Returns:
        Port key (e.g., "80/tcp").
    """
    return f"{port}/{protocol}"


def split_image_reference(image_ref: str) -> tuple[str, str]:
    """Split an image reference into repository and tag.

    The tag is whatever follows the last ``:`` after the last ``/``, so a
    registry port such as ``localhost:5000/app`` is not mistaken for a tag.
    Digest references keep their digest as the tag component.

    Args:
        image_ref: Image reference (e.g., "nginx:1.25").

    Returns:
        Repository and tag, defaulting the tag to "latest".
    """
    if "@" in image_ref:
        repository, digest = image_ref.split("@", 1)
        return repository, digest
    name_start = image_ref.rfind("/") + 1
    separator = image_ref.rfind(":")
    if separator < name_start:
        return image_ref, DEFAULT_TAG
    return image_ref[:separator], image_ref[separator + 1:] or DEFAULT_TAG
