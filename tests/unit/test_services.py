"""Unit tests for fixture_containers domain services."""

import asyncio

import pytest

from fixture_containers.adapters.outbound.in_memory_runtime_client import InMemoryRuntimeClient
from fixture_containers.domain.entities.container import ContainerSpec, InspectionState
from fixture_containers.domain.services.configuration import assemble_creation_request
from fixture_containers.domain.services.exec_channel import (
    ExecChannel,
    SessionMode,
    encode_command,
    read_until_eof,
)
from fixture_containers.domain.services.image_resolver import ImagePullError, ImageResolver
from fixture_containers.domain.services.log_relay import LogStreamRelay
from fixture_containers.domain.services.readiness import (
    BackoffPolicy,
    ContainerLaunchError,
    ReadinessPoller,
)
from fixture_containers.ports.outbound import PullProgress, RuntimeCallError


async def create_container(runtime: InMemoryRuntimeClient, image: str = "nginx") -> str:
    request = assemble_creation_request(ContainerSpec.build(image=image))
    return await runtime.create_container(request)


@pytest.mark.unit
class TestImageResolver:
    """Tests for ImageResolver."""

    async def test_present_image_is_not_pulled(self, runtime):
        """Two ensures of a present image list twice and never pull."""
        resolver = ImageResolver(runtime)
        assert await resolver.ensure("nginx") is False
        assert await resolver.ensure("nginx") is False
        assert runtime.operations() == ["list_images", "list_images"]

    async def test_absent_image_is_pulled_with_split_reference(self, runtime):
        """An absent image is pulled once by repository and tag."""
        resolver = ImageResolver(runtime)
        assert await resolver.ensure("localhost:5000/app:v2") is True
        assert runtime.calls[1] == ("pull_image", ("localhost:5000/app", "v2"))

    async def test_pull_error_event_raises(self, runtime):
        """An error progress event fails the pull."""
        runtime.pull_events = [
            PullProgress(status="Pulling fs layer"),
            PullProgress(error_message="manifest unknown"),
        ]
        with pytest.raises(ImagePullError, match="manifest unknown") as exc_info:
            await ImageResolver(runtime).ensure("redis:nope")
        assert exc_info.value.image_ref == "redis:nope"

    async def test_pull_call_failure_raises(self, runtime):
        """A failing pull call surfaces as ImagePullError."""
        runtime.failures["pull_image"] = RuntimeCallError("pull", "registry unreachable")
        with pytest.raises(ImagePullError) as exc_info:
            await ImageResolver(runtime).ensure("redis")
        assert isinstance(exc_info.value.__cause__, RuntimeCallError)


@pytest.mark.unit
class TestReadinessPoller:
    """Tests for ReadinessPoller."""

    @pytest.mark.parametrize("not_ready", [0, 1, 5, 50])
    async def test_ready_after_k_inspections(self, runtime, not_ready):
        """Readiness is reached on the first running inspection."""
        container_id = await create_container(runtime)
        runtime.inspect_script = [False] * not_ready + [True]
        poller = ReadinessPoller(runtime, timeout_seconds=5)

        state = await poller.await_ready(container_id)

        assert state.running
        assert poller.attempts == not_ready + 1
        assert runtime.operations().count("inspect_container") == not_ready + 1

    async def test_never_ready_times_out(self, runtime):
        """A container that never runs fails within the timeout."""
        container_id = await create_container(runtime)
        runtime.inspect_script = [False]
        poller = ReadinessPoller(runtime, timeout_seconds=0.05)

        with pytest.raises(ContainerLaunchError) as exc_info:
            await asyncio.wait_for(poller.await_ready(container_id), timeout=2)

        error = exc_info.value
        assert error.__cause__ is None
        assert error.attempts >= 1
        assert error.last_inspection is not None
        assert not error.last_inspection.running
        assert error.last_inspection.container_id == container_id
        assert f"after {error.attempts} attempts" in str(error)

    async def test_inspect_failure_is_immediate(self, runtime):
        """An inspect failure ends polling with the failure as cause."""
        container_id = await create_container(runtime)
        failure = RuntimeCallError("inspect", "daemon gone")
        runtime.inspect_script = [False, failure]
        poller = ReadinessPoller(runtime, timeout_seconds=5)

        with pytest.raises(ContainerLaunchError) as exc_info:
            await poller.await_ready(container_id)

        assert exc_info.value.__cause__ is failure
        assert exc_info.value.attempts == 2

    async def test_custom_predicate(self, runtime):
        """A custom predicate decides readiness."""
        container_id = await create_container(runtime)
        healthy = InspectionState(
            container_id=container_id,
            running=True,
            raw={"State": {"Health": {"Status": "healthy"}}},
        )
        runtime.inspect_script = [True, True, healthy]

        def is_healthy(state):
            return state.raw.get("State", {}).get("Health", {}).get("Status") == "healthy"

        state = await ReadinessPoller(runtime, timeout_seconds=5).await_ready(container_id, is_healthy)
        assert state is healthy

    def test_backoff_delay(self):
        """Backoff grows geometrically up to its cap."""
        policy = BackoffPolicy(initial_seconds=0.1, max_seconds=0.5, multiplier=2)
        assert policy.delay(1) == pytest.approx(0.1)
        assert policy.delay(2) == pytest.approx(0.2)
        assert policy.delay(3) == pytest.approx(0.4)
        assert policy.delay(4) == pytest.approx(0.5)
        assert BackoffPolicy().delay(10) == 0.0


@pytest.mark.unit
class TestLogStreamRelay:
    """Tests for LogStreamRelay."""

    async def relay(self, runtime, chunks):
        container_id = await create_container(runtime)
        runtime.log_chunks = chunks
        lines = []
        count = await LogStreamRelay(runtime, container_id, lines.append).run()
        assert count == len(lines)
        return lines

    async def test_lines_split_across_chunks(self, runtime):
        """Lines are reassembled regardless of chunk boundaries."""
        lines = await self.relay(runtime, [b"first li", b"ne\nsecond\nthi", b"rd"])
        assert lines == ["first line", "second", "third"]

    async def test_multibyte_character_split(self, runtime):
        """A UTF-8 sequence split between chunks decodes intact."""
        encoded = "température\n".encode()
        split = encoded.index(b"\xa9")
        lines = await self.relay(runtime, [encoded[:split], encoded[split:]])
        assert lines == ["température"]

    async def test_crlf_and_bom(self, runtime):
        """Carriage returns and a leading byte order mark are stripped."""
        lines = await self.relay(runtime, [b"\xef\xbb\xbfready\r\n", b"done\r\n"])
        assert lines == ["ready", "done"]

    async def test_stream_failure_is_swallowed(self, runtime):
        """A failing log stream ends the relay quietly."""
        container_id = await create_container(runtime)
        runtime.logs_error = RuntimeCallError("logs", "connection reset")
        relay = LogStreamRelay(runtime, container_id, lambda line: None)
        assert await relay.start() == 0

    async def test_sink_failure_is_swallowed(self, runtime):
        """A failing sink does not stop the relay."""
        container_id = await create_container(runtime)
        runtime.log_chunks = [b"a\nb\n"]

        def sink(line):
            raise ValueError(line)

        assert await LogStreamRelay(runtime, container_id, sink).run() == 2


@pytest.mark.unit
class TestExecChannel:
    """Tests for ExecChannel."""

    @pytest.fixture
    async def container_id(self, runtime):
        return await create_container(runtime)

    def test_encode_command(self):
        """Commands are ASCII with a trailing newline."""
        assert encode_command("echo hi") == b"echo hi\n"
        with pytest.raises(UnicodeEncodeError):
            encode_command("echo héllo")

    async def test_ephemeral_concatenates_chunks(self, runtime, container_id):
        """Output chunks are concatenated and the stream closed once."""
        runtime.exec_responder = lambda command: [b"ab", b"cd"]
        channel = ExecChannel(runtime, container_id)

        result = await channel.run("cat file")

        assert result.output == b"abcd"
        assert result.eof
        stream = runtime.attach_streams[0]
        assert stream.writes == [b"cat file\n"]
        assert stream.close_count == 1
        assert runtime.calls[-1][1][1] is False

    async def test_ephemeral_attaches_per_command(self, runtime, container_id):
        """Every ephemeral command gets its own stream."""
        channel = ExecChannel(runtime, container_id)
        await channel.run("true")
        await channel.run("true")
        assert len(runtime.attach_streams) == 2
        assert all(stream.close_count == 1 for stream in runtime.attach_streams)

    async def test_buffer_size_bounds_reads(self, runtime, container_id):
        """Reads never exceed the buffer size."""
        runtime.exec_responder = lambda command: [b"x" * 2500]
        result = await ExecChannel(runtime, container_id, buffer_size=1024).run("dump")
        assert len(result.output) == 2500
        assert result.chunks == 3

    async def test_results_reported_with_mode(self, runtime, container_id):
        """Every completed exchange is handed to the result callback."""
        runtime.exec_responder = lambda command: [command.encode()]
        seen = []
        channel = ExecChannel(
            runtime,
            container_id,
            mode=SessionMode.PERSISTENT,
            on_result=lambda mode, result: seen.append((mode, result.output)),
        )

        async with channel:
            await channel.run("one")
            await channel.run("two")

        assert seen == [(SessionMode.PERSISTENT, b"one"), (SessionMode.PERSISTENT, b"two")]

    async def test_empty_output(self, runtime, container_id):
        """A command with no output yields an empty result."""
        result = await ExecChannel(runtime, container_id).run("true")
        assert result.output == b""
        assert result.eof

    async def test_persistent_reuses_one_stream(self, runtime, container_id):
        """A persistent channel attaches once for many commands."""
        runtime.exec_responder = lambda command: [command.encode()]
        async with ExecChannel(runtime, container_id, SessionMode.PERSISTENT) as channel:
            first = await channel.run("cd /tmp")
            second = await channel.run("pwd")
            stream = runtime.attach_streams[0]
            assert stream.close_count == 0

        assert first.text == "cd /tmp"
        assert second.text == "pwd"
        assert len(runtime.attach_streams) == 1
        assert stream.close_count == 1
        assert not channel.is_open

    async def test_open_rejected_for_ephemeral(self, runtime, container_id):
        with pytest.raises(ValueError):
            await ExecChannel(runtime, container_id).open()

    async def test_cancellation_closes_stream(self, runtime, container_id):
        """Cancelling a pending read closes the stream."""
        runtime.attach_read_delay = 10
        task = asyncio.create_task(ExecChannel(runtime, container_id).run("sleep 60"))
        while not runtime.attach_streams:
            await asyncio.sleep(0)
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert runtime.attach_streams[0].close_count == 1

    async def test_persistent_session_discarded_on_failure(self, runtime, container_id):
        """A failed persistent command closes the session."""
        channel = ExecChannel(runtime, container_id, SessionMode.PERSISTENT)
        await channel.open()
        await runtime.attach_streams[0].close()

        with pytest.raises(RuntimeCallError):
            await channel.run("ls")
        assert not channel.is_open

    async def test_non_ascii_command_rejected_before_attach(self, runtime, container_id):
        with pytest.raises(UnicodeEncodeError):
            await ExecChannel(runtime, container_id).run("echo ü")
        assert runtime.attach_streams == []

    def test_invalid_buffer_size(self, runtime):
        with pytest.raises(ValueError):
            ExecChannel(runtime, "abc", buffer_size=0)

    async def test_read_until_eof(self, runtime, container_id):
        runtime.exec_responder = lambda command: [b"one", b"two"]
        stream = await runtime.attach(container_id, False, None)
        await stream.write(b"x\n")
        result = await read_until_eof(stream, 2)
        assert result.output == b"onetwo"
        assert result.chunks == 4
