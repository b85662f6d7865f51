"""Shared pytest fixtures and test helpers for stackctl tests."""

from __future__ import annotations

import io
import logging
import subprocess
import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
import structlog
from click.testing import CliRunner
from ruamel.yaml import YAML

from stackctl.config.settings import StackSettings
from stackctl.domain.errors import StartFailedError
from stackctl.infrastructure.locks import LockManager
from stackctl.infrastructure.runtime import MISSING, ContainerState
from stackctl.services.registry import ProjectRegistry

BASE_COMPOSE = """\
services:
  db:
    image: mysql:8
    volumes:
      - dbdata:/var/lib/mysql
  cache:
    image: redis:7
  web:
    image: viewiemedia/web:latest
    depends_on:
      - db
      - cache
    volumes:
      - ./app:/srv/app
volumes:
  dbdata:
"""

LOCAL_PACKAGES_COMPOSE = """\
services:
  web:
    volumes:
      - ./app:/srv/app
      - ../packages:/srv/packages
"""


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds


@dataclass
class FakeProcess:
    """Stand-in for the ``Popen`` returned by ``ContainerRuntime.exec``."""

    returncode: int = 0
    stdout_text: str = ""
    stderr_text: str = ""
    hang: bool = False
    signals: list[int] = field(default_factory=list)
    killed: bool = False

    def __post_init__(self) -> None:
        self.stdout = io.StringIO(self.stdout_text)
        self.stderr = io.StringIO(self.stderr_text)
        self._done = not self.hang

    def wait(self, timeout: float | None = None) -> int:
        if not self._done:
            raise subprocess.TimeoutExpired(cmd="docker exec", timeout=timeout or 0)
        return self.returncode

    def poll(self) -> int | None:
        return self.returncode if self._done else None

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)
        self._done = True
        self.returncode = 130

    def kill(self) -> None:
        self.killed = True
        self._done = True


class FakeRuntime:
    """In-memory :class:`ContainerRuntime` recording every call.

    * ``never_ready``: services that start but never pass their healthcheck.
    * ``fail_up``: services whose ``compose up`` fails outright.
    * ``exec_results``: container name -> factory for the exec process.
    """

    def __init__(self) -> None:
        self.containers: dict[str, ContainerState] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.never_ready: set[str] = set()
        self.fail_up: set[str] = set()
        self.fail_stop: set[str] = set()
        self.exec_results: dict[str, Callable[[Sequence[str]], FakeProcess]] = {}
        self.port_map: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == method]

    def started(self) -> list[str]:
        """Logical services passed to compose_up, in call order."""
        return [svc for c in self.calls_to("compose_up") for svc in c[3]]

    def run(self, container: str, *, health: str | None = None, **labels: str) -> None:
        """Mark *container* as already running."""
        self.containers[container] = ContainerState(
            exists=True, running=True, health=health, labels=dict(labels)
        )

    # ContainerRuntime ----------------------------------------------------

    def compose_up(self, project: str, compose_file: Path, services: Sequence[str]) -> None:
        self._record("compose_up", project, compose_file, list(services))
        doc = YAML(typ="safe").load(compose_file.read_text(encoding="utf-8"))
        for svc in services:
            if svc in self.fail_up:
                raise StartFailedError(f"Failed to start {svc}: image pull failed")
            definition = doc["services"][svc]
            labels = definition.get("labels") or {}
            if isinstance(labels, list):
                labels = dict(str(item).partition("=")[::2] for item in labels)
            health = "starting" if svc in self.never_ready else None
            with self._lock:
                self.containers[definition["container_name"]] = ContainerState(
                    exists=True, running=True, health=health, labels=labels
                )

    def stop(self, container: str) -> bool:
        self._record("stop", container)
        if container in self.fail_stop:
            from stackctl.domain.errors import StopFailedError

            raise StopFailedError(f"Failed to stop {container}", container=container)
        state = self.containers.get(container, MISSING)
        if not state.running:
            return False
        with self._lock:
            self.containers[container] = ContainerState(
                exists=True, running=False, labels=state.labels
            )
        return True

    def state(self, container: str) -> ContainerState:
        self._record("state", container)
        return self.containers.get(container, MISSING)

    def exec(
        self, container: str, argv: Sequence[str], *, interactive: bool = False
    ) -> FakeProcess:
        self._record("exec", container, tuple(argv), interactive)
        factory = self.exec_results.get(container)
        if factory is None:
            return FakeProcess(stdout_text=" ".join(argv) + "\n")
        return factory(argv)

    def signal_exec(self, container: str, argv: Sequence[str], sig: int) -> bool:
        self._record("signal_exec", container, tuple(argv), sig)
        return True

    def ports(self, container: str) -> dict[str, str]:
        self._record("ports", container)
        return dict(self.port_map.get(container, {}))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep locks under tmp_path and ignore any stackctl.toml on the host.

    Handlers installed by ``configure_logging`` are removed afterwards; they
    hold the stderr stream of the test that created them.
    """
    monkeypatch.setenv("STACKCTL_LOCKS__DIRECTORY", str(tmp_path / "locks"))
    monkeypatch.setenv("STACKCTL_CONFIG", str(tmp_path / "no-such-config.toml"))
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def container_dir(tmp_path: Path) -> Path:
    """Container directory for project ``viewiemedia`` with three services.

    ``web`` depends on ``db`` and ``cache``; a local-packages layer adds a
    mount to ``web``.
    """
    root = tmp_path / "containers"
    root.mkdir()
    (root / ".env").write_text("# project\nCOMPOSE_PROJECT_NAME=viewiemedia\n")
    (root / "docker-compose.yml").write_text(BASE_COMPOSE)
    (root / "docker-compose.local-packages.yml").write_text(LOCAL_PACKAGES_COMPOSE)
    return root


@pytest.fixture
def settings(container_dir: Path) -> StackSettings:
    return StackSettings.from_cli(container_dir=container_dir)


@pytest.fixture
def lock_manager(tmp_path: Path) -> LockManager:
    return LockManager(tmp_path / "locks")


@pytest.fixture
def registry(lock_manager: LockManager) -> ProjectRegistry:
    return ProjectRegistry(lock_manager)


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


def write_compose(root: Path, text: str, name: str = "docker-compose.yml") -> Path:
    path = root / name
    path.write_text(text)
    return path


def invoke(
    cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path, *args: str
) -> Any:
    """Run the root CLI against *container_dir* with *runtime* injected."""
    from stackctl.cli import cli

    return cli_runner.invoke(cli, ["-C", str(container_dir), *args], obj={"runtime": runtime})
