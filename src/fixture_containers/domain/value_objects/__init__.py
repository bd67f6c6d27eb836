"""Value objects for fixture containers."""

from fixture_containers.domain.value_objects.identifiers import (
    ContainerId,
    ExecId,
    ImageRef,
    create_port_key,
    split_image_reference,
)

__all__ = [
    "ContainerId",
    "ExecId",
    "ImageRef",
    "create_port_key",
    "split_image_reference",
]
