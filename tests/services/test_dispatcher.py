"""Tests for CommandDispatcher — exec into running containers."""

from __future__ import annotations

import signal
import threading
from collections.abc import Sequence
from pathlib import Path

import pytest

from stackctl.config.models import LauncherConfig
from stackctl.config.resolver import resolve
from stackctl.domain.errors import (
    ContainerNotRunningError,
    DispatchTimeoutError,
    LaunchFailedError,
    ProjectNotActiveError,
    UnknownServiceError,
)
from stackctl.domain.models import ActiveProject, ExitOutcome, ServiceStatus
from stackctl.infrastructure.runtime import EXEC_LAUNCH_FAILED
from stackctl.services.dispatcher import CommandDispatcher
from stackctl.services.launcher import ComposeLauncher
from stackctl.services.registry import ProjectRegistry
from tests.conftest import FakeClock, FakeProcess, FakeRuntime


@pytest.fixture
def active(
    runtime: FakeRuntime, registry: ProjectRegistry, clock: FakeClock, container_dir: Path
) -> ActiveProject:
    launcher = ComposeLauncher(
        runtime, registry, LauncherConfig(), sleep=clock.sleep, clock=clock
    )
    return launcher.start(resolve(container_dir))


@pytest.fixture
def dispatcher(runtime: FakeRuntime, registry: ProjectRegistry) -> CommandDispatcher:
    return CommandDispatcher(runtime, registry, interrupt_grace=0.1)


class _Collector:
    def __init__(self) -> None:
        self.chunks: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, text: str) -> None:
        with self._lock:
            self.chunks.append(text)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class TestExec:
    def test_streams_output_and_returns_outcome(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        runtime.exec_results["viewiemedia_web"] = lambda argv: FakeProcess(
            stdout_text="line 1\nline 2\n", stderr_text="warn\n"
        )
        out, err = _Collector(), _Collector()
        outcome = dispatcher.exec(
            "viewiemedia", "web", ["php", "artisan", "migrate"], stdout=out, stderr=err
        )
        assert outcome.ok
        assert outcome.container_name == "viewiemedia_web"
        assert outcome.argv == ("php", "artisan", "migrate")
        assert out.text == "line 1\nline 2\n"
        assert err.text == "warn\n"
        assert runtime.calls_to("exec") == [
            ("exec", "viewiemedia_web", ("php", "artisan", "migrate"), False)
        ]

    def test_nonzero_exit_is_an_outcome(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        runtime.exec_results["viewiemedia_db"] = lambda argv: FakeProcess(returncode=2)
        outcome = dispatcher.exec("viewiemedia", "db", ["false"], stdout=_Collector())
        assert outcome.exit_code == 2
        assert not outcome.ok

    def test_not_running_fails_without_runtime_call(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        active.set_status("web", ServiceStatus.STOPPED)
        with pytest.raises(ContainerNotRunningError) as exc_info:
            dispatcher.exec("viewiemedia", "web", ["ls"])
        assert exc_info.value.exit_code == 2
        assert exc_info.value.detail["status"] == "stopped"
        assert runtime.calls_to("exec") == []

    def test_project_not_active(self, dispatcher: CommandDispatcher, runtime: FakeRuntime) -> None:
        with pytest.raises(ProjectNotActiveError):
            dispatcher.exec("viewiemedia", "web", ["ls"])
        assert runtime.calls_to("exec") == []

    def test_unknown_service(self, dispatcher: CommandDispatcher, active: ActiveProject) -> None:
        with pytest.raises(UnknownServiceError):
            dispatcher.exec("viewiemedia", "queue", ["ls"])

    def test_empty_command(self, dispatcher: CommandDispatcher, active: ActiveProject) -> None:
        with pytest.raises(LaunchFailedError):
            dispatcher.exec("viewiemedia", "web", [])

    def test_launch_failure_refreshes_status(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        def _vanished(argv: Sequence[str]) -> FakeProcess:
            del runtime.containers["viewiemedia_web"]
            return FakeProcess(returncode=EXEC_LAUNCH_FAILED)

        runtime.exec_results["viewiemedia_web"] = _vanished
        with pytest.raises(LaunchFailedError):
            dispatcher.exec("viewiemedia", "web", ["ls"])
        assert active.services["web"].status is ServiceStatus.STOPPED

    def test_generic_failure_of_vanished_container(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        def _gone(argv: Sequence[str]) -> FakeProcess:
            del runtime.containers["viewiemedia_web"]
            return FakeProcess(returncode=1, stderr_text="Error: No such container\n")

        runtime.exec_results["viewiemedia_web"] = _gone
        with pytest.raises(LaunchFailedError) as exc_info:
            dispatcher.exec("viewiemedia", "web", ["ls"], stderr=_Collector())
        assert exc_info.value.exit_code == 2
        assert exc_info.value.detail["runtime_exit"] == 1
        assert active.services["web"].status is ServiceStatus.STOPPED

    def test_nonzero_exit_checks_container_once(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        runtime.exec_results["viewiemedia_db"] = lambda argv: FakeProcess(returncode=1)
        runtime.calls.clear()
        outcome = dispatcher.exec("viewiemedia", "db", ["false"], stdout=_Collector())
        assert outcome.exit_code == 1
        assert runtime.calls_to("state") == [("state", "viewiemedia_db")]

    def test_timeout_interrupts_command(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        proc = FakeProcess(hang=True)
        runtime.exec_results["viewiemedia_web"] = lambda argv: proc
        with pytest.raises(DispatchTimeoutError) as exc_info:
            dispatcher.exec("viewiemedia", "web", ["sleep", "60"], timeout=0.01)
        assert exc_info.value.detail["timeout"] == 0.01
        assert runtime.calls_to("signal_exec") == [
            ("signal_exec", "viewiemedia_web", ("sleep", "60"), signal.SIGINT)
        ]
        assert proc.signals == [signal.SIGINT]

    def test_concurrent_execs(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        outcomes = []
        errors: list[BaseException] = []
        lock = threading.Lock()

        def _run(service: str, n: int) -> None:
            try:
                outcome = dispatcher.exec(
                    "viewiemedia", service, ["echo", str(n)], stdout=_Collector()
                )
            except BaseException as exc:
                errors.append(exc)
                return
            with lock:
                outcomes.append(outcome)

        threads = [
            threading.Thread(target=_run, args=(service, n))
            for n, service in enumerate(["web", "db", "cache", "web"] * 2)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(outcomes) == 8
        assert all(o.ok for o in outcomes)
        assert len(runtime.calls_to("exec")) == 8
        assert active.status is ServiceStatus.RUNNING

    def test_concurrent_execs_fail_independently(
        self, dispatcher: CommandDispatcher, runtime: FakeRuntime, active: ActiveProject
    ) -> None:
        def _cache_vanishes(argv: Sequence[str]) -> FakeProcess:
            runtime.containers.pop("viewiemedia_cache")
            return FakeProcess(returncode=137)

        runtime.exec_results["viewiemedia_db"] = lambda argv: FakeProcess(returncode=3)
        runtime.exec_results["viewiemedia_cache"] = _cache_vanishes
        outcomes: dict[int, object] = {}
        lock = threading.Lock()

        def _run(service: str, n: int) -> None:
            try:
                result: object = dispatcher.exec(
                    "viewiemedia", service, ["echo", str(n)], stdout=_Collector()
                )
            except LaunchFailedError as exc:
                result = exc
            with lock:
                outcomes[n] = result

        services = ["web", "db", "cache", "web", "db"]
        threads = [threading.Thread(target=_run, args=(s, n)) for n, s in enumerate(services)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(outcomes) == 5
        for n, service in enumerate(services):
            result = outcomes[n]
            if service == "cache":
                assert isinstance(result, LaunchFailedError)
                assert result.detail["service"] == "cache"
            else:
                assert isinstance(result, ExitOutcome)
                assert result.argv == ("echo", str(n))
                assert result.exit_code == (0 if service == "web" else 3)
        assert active.services["web"].status is ServiceStatus.RUNNING
        assert active.services["db"].status is ServiceStatus.RUNNING
        assert active.services["cache"].status is ServiceStatus.STOPPED
