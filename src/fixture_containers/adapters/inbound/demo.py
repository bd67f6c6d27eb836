"""Command-line demo for fixture containers.

Starts a fixture container, reports where its ports are published, runs a
detached command inside it and tears it down.

Usage:
    fixture-containers-demo --image rabbitmq --port 5672 \\
        --exec "rabbitmq-plugins enable rabbitmq_consistent_hash_exchange"
"""

from __future__ import annotations

import argparse
import asyncio
import shlex
import sys
from typing import Optional, Sequence

import structlog

from fixture_containers.domain.entities.container import ContainerSpec, FixtureContainerError
from fixture_containers.infrastructure.config import get_config
from fixture_containers.infrastructure.container import build_container, create_orchestrator
from fixture_containers.infrastructure.logging import setup_logging
from fixture_containers.infrastructure.metrics import setup_metrics
from fixture_containers.infrastructure.tracing import setup_tracing, shutdown_tracing
from fixture_containers.ports.outbound import ContainerRuntimeClientPort

logger = structlog.get_logger(__name__)

DEFAULT_COMMAND = "rabbitmq-plugins enable rabbitmq_consistent_hash_exchange"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fixture-containers-demo",
        description="Start a disposable container, run a command in it, remove it.",
    )
    parser.add_argument("--image", default="rabbitmq", help="Image reference")
    parser.add_argument(
        "--port",
        dest="ports",
        action="append",
        type=int,
        help="Exposed port, repeatable (default: 5672)",
    )
    parser.add_argument("--env", action="append", default=[], metavar="KEY=VALUE")
    parser.add_argument("--exec", dest="command", default=DEFAULT_COMMAND, help="Detached command")
    parser.add_argument("--keep", action="store_true", help="Leave the container running")
    return parser


def spec_from_args(args: argparse.Namespace) -> ContainerSpec:
    env = []
    for item in args.env:
        key, sep, value = item.partition("=")
        if not sep:
            raise SystemExit(f"--env expects KEY=VALUE, got {item!r}")
        env.append((key, value))
    return ContainerSpec.build(
        image=args.image,
        exposed_ports=args.ports or [5672],
        env=env,
        labels={"org.fixture-containers.demo": "true"},
    )


async def run(args: argparse.Namespace) -> int:
    try:
        command = shlex.split(args.command) if args.command else []
        spec = spec_from_args(args)
    except (ValueError, FixtureContainerError) as e:
        logger.error("Invalid arguments", command=args.command, error=str(e))
        return 2

    config = get_config()
    metrics = None
    if config.observability.metrics_port:
        metrics = setup_metrics(config.observability.metrics_port)
    container = build_container(config, metrics)
    client = container.resolve(ContainerRuntimeClientPort)
    orchestrator = create_orchestrator(container, spec)

    status = 1
    try:
        await orchestrator.start()
        host = orchestrator.host_address()
        for port in orchestrator.spec.exposed_ports:
            print(f"{port}/tcp -> {host}:{orchestrator.host_port(port)}")
        if command:
            await orchestrator.execute_command(*command)
        status = 0
    except FixtureContainerError as e:
        logger.error("Demo failed", error=str(e))
    finally:
        try:
            if args.keep:
                print(f"Container {orchestrator.container_id} left running")
            else:
                await orchestrator.stop()
        except FixtureContainerError as e:
            # An error already propagating takes precedence
            logger.error("Teardown failed", error=str(e))
            status = 1
        finally:
            client.close()
    return status


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(config.observability.log_level, config.observability.log_format)
    if config.observability.otel_endpoint:
        setup_tracing(config.observability)
    try:
        return asyncio.run(run(args))
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
