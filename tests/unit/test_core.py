"""Unit tests for fixture_containers domain layer."""

import pytest

from fixture_containers.domain.entities.container import (
    ContainerSpec,
    ExecResult,
    FixtureContainerError,
    InspectionState,
    Mount,
    MountKind,
)
from fixture_containers.domain.services.configuration import (
    ConfigurationError,
    assemble_creation_request,
)
from fixture_containers.domain.services.host_address import resolve_host_address
from fixture_containers.domain.value_objects.identifiers import (
    create_port_key,
    split_image_reference,
)
from fixture_containers.ports.outbound import AttachOptions, RegistryAuth, RuntimeEndpoint


class TestIdentifiers:
    """Test value object creation."""

    def test_create_port_key(self):
        assert create_port_key(80) == "80/tcp"
        assert create_port_key(53, "udp") == "53/udp"

    @pytest.mark.parametrize(
        "ref, expected",
        [
            ("nginx", ("nginx", "latest")),
            ("nginx:1.25", ("nginx", "1.25")),
            ("library/redis:7-alpine", ("library/redis", "7-alpine")),
            ("localhost:5000/app", ("localhost:5000/app", "latest")),
            ("localhost:5000/app:v2", ("localhost:5000/app", "v2")),
            ("nginx:", ("nginx", "latest")),
            ("alpine@sha256:abc", ("alpine", "sha256:abc")),
        ],
    )
    def test_split_image_reference(self, ref, expected):
        assert split_image_reference(ref) == expected


class TestContainerSpec:
    """Test spec construction."""

    def test_build_from_plain_collections(self):
        spec = ContainerSpec.build(
            image="postgres:16",
            exposed_ports=[5432, 5432, 8080],
            port_bindings={8080: 18080},
            env={"POSTGRES_PASSWORD": "secret"},
            labels=[("team", "qa")],
            command=["postgres", "-c", "fsync=off"],
        )
        assert spec.exposed_ports == (5432, 8080)
        assert spec.port_bindings == ((8080, 18080),)
        assert spec.env == (("POSTGRES_PASSWORD", "secret"),)
        assert spec.labels == (("team", "qa"),)
        assert spec.command == ("postgres", "-c", "fsync=off")

    def test_spec_is_immutable(self):
        spec = ContainerSpec.build(image="nginx")
        with pytest.raises(AttributeError):
            spec.image = "redis"

    def test_host_port_for(self):
        spec = ContainerSpec.build(image="nginx", exposed_ports=[80, 443], port_bindings={443: 8443})
        assert spec.host_port_for(80) == 80
        assert spec.host_port_for(443) == 8443


class TestConfigurationAssembler:
    """Test creation request assembly."""

    def test_rejects_binding_for_unexposed_port(self):
        spec = ContainerSpec.build(image="nginx", exposed_ports=[80], port_bindings={443: 8443})
        with pytest.raises(ConfigurationError, match="443"):
            assemble_creation_request(spec)

    def test_rejects_binding_without_any_exposed_port(self):
        spec = ContainerSpec.build(image="nginx", port_bindings={80: 8080})
        with pytest.raises(ConfigurationError):
            assemble_creation_request(spec)

    def test_rejects_missing_image(self):
        with pytest.raises(ConfigurationError):
            assemble_creation_request(ContainerSpec(image=""))

    def test_rejects_duplicate_labels(self):
        spec = ContainerSpec.build(image="nginx", labels=[("a", "1"), ("a", "2")])
        with pytest.raises(ConfigurationError, match="Duplicate label"):
            assemble_creation_request(spec)

    def test_rejects_duplicate_bindings(self):
        """Specs built without the dict helper may repeat a container port."""
        spec = ContainerSpec(
            image="nginx", exposed_ports=(80,), port_bindings=((80, 8080), (80, 9090))
        )
        with pytest.raises(ConfigurationError, match="Duplicate binding for port 80"):
            assemble_creation_request(spec)

    @pytest.mark.parametrize("ports", [[80], [80, 443], [5432, 6379, 9000]])
    def test_identity_binding_without_explicit_bindings(self, ports):
        request = assemble_creation_request(ContainerSpec.build(image="x", exposed_ports=ports))
        bindings = dict(request.port_bindings)
        for port in ports:
            assert bindings[f"{port}/tcp"] == str(port)

    def test_partial_bindings_fill_in_identity(self):
        spec = ContainerSpec.build(image="x", exposed_ports=[80, 443], port_bindings={443: 8443})
        request = assemble_creation_request(spec)
        assert request.port_bindings == (("80/tcp", "80"), ("443/tcp", "8443"))

    def test_env_labels_and_mounts(self):
        mount = Mount(source="./data", target="/data", kind=MountKind.VOLUME.value)
        spec = ContainerSpec.build(
            image="x",
            env=[("B", "2"), ("A", "1=1")],
            labels=[("z", "last"), ("a", "first")],
            mounts=[mount],
        )
        request = assemble_creation_request(spec)
        assert request.env == ("B=2", "A=1=1")
        assert list(dict(request.labels)) == ["z", "a"]
        assert request.mounts == (mount,)

    def test_payload_matches_engine_api(self):
        spec = ContainerSpec.build(
            image="nginx",
            exposed_ports=[80],
            port_bindings={80: 8080},
            env={"K": "V"},
            labels={"l": "v"},
            mounts=[Mount("/src", "/dst")],
            command=["nginx", "-g", "daemon off;"],
        )
        payload = assemble_creation_request(spec).to_payload()
        assert payload["Image"] == "nginx"
        assert payload["Env"] == ["K=V"]
        assert payload["Labels"] == {"l": "v"}
        assert payload["ExposedPorts"] == {"80/tcp": {}}
        assert payload["Cmd"] == ["nginx", "-g", "daemon off;"]
        assert payload["Tty"] is False
        assert payload["AttachStdin"] and payload["AttachStdout"] and payload["AttachStderr"]
        host_config = payload["HostConfig"]
        assert host_config["PortBindings"] == {"80/tcp": [{"HostPort": "8080"}]}
        assert host_config["Mounts"] == [{"Source": "/src", "Target": "/dst", "Type": "bind"}]

    def test_payload_omits_cmd_without_command(self):
        payload = assemble_creation_request(ContainerSpec.build(image="nginx")).to_payload()
        assert "Cmd" not in payload

    def test_assembly_is_deterministic(self):
        spec = ContainerSpec.build(image="x", exposed_ports=[1, 2, 3], env={"A": "1"})
        assert assemble_creation_request(spec) == assemble_creation_request(spec)


class TestInspectionState:
    """Test inspection snapshots."""

    def test_from_inspect_response(self):
        state = InspectionState.from_inspect_response(
            {
                "Id": "abc",
                "State": {"Running": True, "Status": "running"},
                "NetworkSettings": {"Gateway": "172.17.0.1"},
            }
        )
        assert state.container_id == "abc"
        assert state.running
        assert state.network_gateway == "172.17.0.1"
        assert state.raw["State"]["Status"] == "running"

    def test_missing_sections(self):
        state = InspectionState.from_inspect_response({"Id": "abc"})
        assert not state.running
        assert state.network_gateway is None


class TestExecResult:
    """Test exec result accumulation."""

    def test_append_and_text(self):
        result = ExecResult()
        result.append(b"hel")
        result.append("lo é".encode())
        assert result.text == "hello é"
        assert result.chunks == 2

    def test_append_after_eof_rejected(self):
        result = ExecResult(eof=True)
        with pytest.raises(FixtureContainerError):
            result.append(b"late")

    def test_many_chunks_accumulate(self):
        """Long sessions of small reads keep every byte in order."""
        result = ExecResult()
        for i in range(16384):
            result.append(bytes([i % 256]) * 1024)
        assert result.chunks == 16384
        assert result.size == 16384 * 1024
        output = result.output
        assert isinstance(output, bytes)
        assert output[:1024] == b"\x00" * 1024
        assert output[-1024:] == b"\xff" * 1024


class TestHostAddressResolver:
    """Test host address resolution."""

    @pytest.fixture
    def inspection(self) -> InspectionState:
        return InspectionState(container_id="abc", running=True, network_gateway="172.17.0.1")

    @pytest.mark.parametrize("scheme", ["tcp", "http", "https"])
    def test_remote_schemes_use_endpoint_host(self, scheme, inspection, present_marker):
        endpoint = RuntimeEndpoint(scheme=scheme, host="1.2.3.4")
        assert resolve_host_address(endpoint, inspection, present_marker) == "1.2.3.4"

    @pytest.mark.parametrize("scheme", ["unix", "npipe"])
    def test_local_schemes_without_marker(self, scheme, inspection, missing_marker):
        endpoint = RuntimeEndpoint(scheme=scheme)
        assert resolve_host_address(endpoint, inspection, missing_marker) == "localhost"

    def test_local_scheme_inside_container_uses_gateway(self, inspection, present_marker):
        endpoint = RuntimeEndpoint(scheme="unix")
        assert resolve_host_address(endpoint, inspection, present_marker) == "172.17.0.1"

    def test_inside_container_without_inspection(self, present_marker):
        endpoint = RuntimeEndpoint(scheme="unix")
        assert resolve_host_address(endpoint, None, present_marker) is None

    def test_unknown_scheme(self, inspection, missing_marker):
        endpoint = RuntimeEndpoint(scheme="ssh", host="builder")
        assert resolve_host_address(endpoint, inspection, missing_marker) is None


class TestOutboundValues:
    """Test values crossing the runtime boundary."""

    @pytest.mark.parametrize(
        "url, scheme, host",
        [
            ("tcp://1.2.3.4:2375", "tcp", "1.2.3.4"),
            ("https://docker.example.com:2376", "https", "docker.example.com"),
            ("unix:///var/run/docker.sock", "unix", ""),
            ("npipe:////./pipe/docker_engine", "npipe", ""),
        ],
    )
    def test_endpoint_parse(self, url, scheme, host):
        assert RuntimeEndpoint.parse(url) == RuntimeEndpoint(scheme=scheme, host=host)

    def test_attach_options_params(self):
        assert AttachOptions().to_params() == {
            "stream": 0,
            "stdin": 1,
            "stdout": 1,
            "stderr": 1,
            "logs": 0,
        }

    def test_registry_auth(self):
        assert RegistryAuth().to_auth_config() is None
        auth = RegistryAuth(username="u", password="p", server_address="ghcr.io")
        assert auth.to_auth_config() == {"username": "u", "password": "p", "serveraddress": "ghcr.io"}
