"""Tests for readiness predicates."""

import socket

import pytest

from stackctl.infrastructure.runtime import ContainerState
from stackctl.plugins.readiness import runtime_state_probe, tcp_probe
from tests.conftest import FakeRuntime


class TestRuntimeStateProbe:
    def test_missing_container(self, runtime: FakeRuntime) -> None:
        assert runtime_state_probe(runtime, "p_db") is False

    def test_running_without_healthcheck(self, runtime: FakeRuntime) -> None:
        runtime.run("p_db")
        assert runtime_state_probe(runtime, "p_db") is True

    def test_waits_for_healthy(self, runtime: FakeRuntime) -> None:
        runtime.run("p_db", health="starting")
        assert runtime_state_probe(runtime, "p_db") is False
        runtime.containers["p_db"] = ContainerState(exists=True, running=True, health="healthy")
        assert runtime_state_probe(runtime, "p_db") is True


class TestTcpProbe:
    @pytest.fixture
    def listener(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        yield sock
        sock.close()

    def test_accepting_port(self, runtime: FakeRuntime, listener: socket.socket) -> None:
        runtime.run("p_db")
        port = listener.getsockname()[1]
        assert tcp_probe("127.0.0.1", port)(runtime, "p_db") is True

    def test_closed_port(self, runtime: FakeRuntime, listener: socket.socket) -> None:
        runtime.run("p_db")
        port = listener.getsockname()[1]
        listener.close()
        assert tcp_probe("127.0.0.1", port, timeout=0.2)(runtime, "p_db") is False

    def test_requires_running_container(self, runtime: FakeRuntime) -> None:
        assert tcp_probe("127.0.0.1", 1)(runtime, "p_db") is False
