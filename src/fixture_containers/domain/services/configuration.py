"""Configuration assembler service."""

from __future__ import annotations

from fixture_containers.domain.entities.container import (
    ContainerSpec,
    CreationRequest,
    FixtureContainerError,
)
from fixture_containers.domain.value_objects.identifiers import create_port_key


class ConfigurationError(FixtureContainerError):
    """Container spec is malformed."""
    pass


def assemble_creation_request(spec: ContainerSpec) -> CreationRequest:
    """Assemble the runtime creation request for a spec.

    Every exposed port gets a TCP binding, to its explicit host port when
    one is declared and to the same port number otherwise. Mounts pass
    through unchanged; env and labels keep their declared order.

    Args:
        spec: Desired container configuration.

    Returns:
        Creation request.

    Raises:
        ConfigurationError: If a binding references a port that is not exposed,
            a port is bound twice or a label key repeats.
    """
    if not spec.image:
        raise ConfigurationError("Container spec has no image")

    bound: set[int] = set()
    for port, _ in spec.port_bindings:
        if port in bound:
            raise ConfigurationError(f"Duplicate binding for port {port}")
        bound.add(port)

    exposed = set(spec.exposed_ports)
    unbound = [port for port, _ in spec.port_bindings if port not in exposed]
    if unbound:
        raise ConfigurationError(
            f"Port bindings reference ports that are not exposed: {sorted(unbound)}"
        )

    seen: set[str] = set()
    for key, _ in spec.labels:
        if key in seen:
            raise ConfigurationError(f"Duplicate label: {key}")
        seen.add(key)

    return CreationRequest(
        image=spec.image,
        env=tuple(f"{key}={value}" for key, value in spec.env),
        labels=spec.labels,
        exposed_ports=tuple(create_port_key(port) for port in spec.exposed_ports),
        port_bindings=tuple(
            (create_port_key(port), str(spec.host_port_for(port)))
            for port in spec.exposed_ports
        ),
        mounts=spec.mounts,
        command=spec.command,
    )
