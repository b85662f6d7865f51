"""CommandDispatcher — run a command inside a project's running container.

Dispatch never starts containers and never retries: a command that
exits nonzero is a normal :class:`ExitOutcome`. ``LaunchFailedError`` is
raised when the runtime could not launch the command (``docker exec``
exit 125) or the container was gone by the time it returned.
"""

from __future__ import annotations

import logging
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Sequence
from typing import IO, TYPE_CHECKING

from stackctl.domain.errors import (
    ContainerNotRunningError,
    DispatchTimeoutError,
    LaunchFailedError,
)
from stackctl.domain.models import ExitOutcome, ServiceStatus
from stackctl.domain.naming import ContainerNameRegistry
from stackctl.infrastructure.runtime import EXEC_LAUNCH_FAILED

if TYPE_CHECKING:
    from stackctl.infrastructure.runtime import ContainerRuntime
    from stackctl.services.registry import ProjectRegistry

logger = logging.getLogger(__name__)

type Sink = Callable[[str], None]


def _stdout_sink(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _stderr_sink(text: str) -> None:
    sys.stderr.write(text)
    sys.stderr.flush()


def _pump(stream: IO[str] | None, sink: Sink) -> threading.Thread | None:
    """Relay *stream* to *sink* line by line on a daemon thread."""
    if stream is None:
        return None

    def _relay() -> None:
        with stream:
            for line in iter(stream.readline, ""):
                sink(line)

    thread = threading.Thread(target=_relay, daemon=True)
    thread.start()
    return thread


class CommandDispatcher:
    """Execute commands in registered, running containers."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        registry: ProjectRegistry,
        *,
        interrupt_grace: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._runtime = runtime
        self._registry = registry
        self._interrupt_grace = interrupt_grace
        self._clock = clock

    def exec(
        self,
        project: str,
        service: str,
        argv: Sequence[str],
        *,
        interactive: bool = False,
        timeout: float | None = None,
        stdout: Sink = _stdout_sink,
        stderr: Sink = _stderr_sink,
    ) -> ExitOutcome:
        """Run *argv* in *service* of *project* and wait for it to finish.

        Output is relayed to *stdout*/*stderr* as it is produced.
        Interactive sessions inherit the terminal instead.
        """
        if not argv:
            raise LaunchFailedError("No command given", project=project, service=service)

        active = self._registry.lookup(project)
        container = ContainerNameRegistry(project, active.services).resolve(service)
        status = active.services[service].status
        if status is not ServiceStatus.RUNNING:
            raise ContainerNotRunningError(
                f"Service {service!r} of project {project} is {status}, not running",
                project=project,
                service=service,
                container=container,
                status=str(status),
            )

        argv = tuple(argv)
        started = self._clock()
        proc = self._runtime.exec(container, argv, interactive=interactive)
        pumps = [t for t in (_pump(proc.stdout, stdout), _pump(proc.stderr, stderr)) if t]
        try:
            code = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("%s in %s exceeded %ss; terminating", argv[0], container, timeout)
            self._interrupt(container, argv, proc)
            raise DispatchTimeoutError(
                f"Command {' '.join(argv)!r} in {container} timed out after {timeout}s",
                project=project,
                service=service,
                container=container,
                timeout=timeout,
            ) from None
        except KeyboardInterrupt:
            logger.warning("Interrupted; forwarding to %s in %s", argv[0], container)
            self._interrupt(container, argv, proc)
            raise
        finally:
            for thread in pumps:
                thread.join()

        # A nonzero exit is the command's own unless the container went away.
        if code != 0 and (
            not self._refresh_status(project, service, container)
            or code == EXEC_LAUNCH_FAILED
        ):
            raise LaunchFailedError(
                f"Runtime could not run {argv[0]!r} in {container}",
                project=project,
                service=service,
                container=container,
                runtime_exit=code,
            )
        outcome = ExitOutcome(
            container_name=container,
            argv=argv,
            exit_code=code,
            duration_s=round(self._clock() - started, 3),
        )
        logger.debug("%s in %s exited %d", argv[0], container, code)
        return outcome

    def _interrupt(self, container: str, argv: Sequence[str], proc: subprocess.Popen[str]) -> None:
        """Stop the command in the container first, then the runtime process."""
        self._runtime.signal_exec(container, argv, signal.SIGINT)
        if proc.poll() is None:
            proc.send_signal(signal.SIGINT)
        try:
            proc.wait(timeout=self._interrupt_grace)
        except subprocess.TimeoutExpired:
            logger.warning("Runtime process for %s did not exit; killing it", container)
            proc.kill()
            proc.wait()

    def _refresh_status(self, project: str, service: str, container: str) -> bool:
        """Re-read the container after a failed dispatch; False if it is gone."""
        state = self._runtime.state(container)
        if state.running:
            return True
        active = self._registry.lookup(project)
        active.set_status(service, ServiceStatus.STOPPED)
        logger.warning("Container %s is no longer running", container)
        return False
