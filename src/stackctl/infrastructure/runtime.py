"""Container runtime adapter.

stackctl never re-implements the runtime: it shells out to the ``docker``
CLI. :class:`ContainerRuntime` is the seam the launcher and dispatcher
depend on; :class:`DockerCliRuntime` is the production implementation.

Daemon-unreachable failures are retried with bounded exponential backoff.
Every other failure surfaces immediately.
"""

from __future__ import annotations

import json
import logging
import re
import signal
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, TypeVar

from stackctl.domain.errors import (
    ContainerRuntimeError,
    DaemonUnavailableError,
    LaunchFailedError,
    StopFailedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ``docker exec`` exits 125 when the daemon itself could not run the command.
EXEC_LAUNCH_FAILED = 125

_DAEMON_DOWN_MARKERS = (
    "cannot connect to the docker daemon",
    "is the docker daemon running",
    "error during connect",
)
_NO_SUCH_MARKERS = ("no such container", "no such object")

# Characters with special meaning in a POSIX extended regular expression.
_ERE_SPECIAL = re.compile(r"[\\.^$*+?()\[\]{}|]")


@dataclass(frozen=True)
class ContainerState:
    """Snapshot of one container as reported by the runtime."""

    exists: bool
    running: bool = False
    health: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def ready(self) -> bool:
        """Running, and healthy if the container defines a healthcheck."""
        if not self.running:
            return False
        return self.health in (None, "", "healthy")


MISSING = ContainerState(exists=False)


class ContainerRuntime(Protocol):
    """Operations stackctl needs from a container runtime."""

    def compose_up(self, project: str, compose_file: Path, services: Sequence[str]) -> None: ...

    def stop(self, container: str) -> bool: ...

    def state(self, container: str) -> ContainerState: ...

    def exec(
        self, container: str, argv: Sequence[str], *, interactive: bool = False
    ) -> subprocess.Popen[str]: ...

    def signal_exec(self, container: str, argv: Sequence[str], sig: int) -> bool: ...

    def ports(self, container: str) -> dict[str, str]: ...


def parse_port_output(text: str) -> dict[str, str]:
    """Parse ``docker port`` output into ``{container_port: host_binding}``.

    Lines look like ``3306/tcp -> 0.0.0.0:33060``. When a port is bound on
    both IPv4 and IPv6, the first binding listed wins.
    """
    ports: dict[str, str] = {}
    for line in text.splitlines():
        container_port, sep, binding = line.partition("->")
        if not sep:
            continue
        container_port, binding = container_port.strip(), binding.strip()
        if container_port and binding:
            ports.setdefault(container_port, binding)
    return ports


def host_port(binding: str) -> str:
    """Host port of a binding: ``0.0.0.0:33060`` and ``[::]:33060`` give ``33060``."""
    return binding.rpartition(":")[2]


def exact_command_pattern(argv: Sequence[str]) -> str:
    """Anchored ``pkill -f`` pattern matching exactly the command line *argv*."""
    escaped = _ERE_SPECIAL.sub(r"\\\g<0>", " ".join(argv))
    return f"^{escaped}$"


class DockerCliRuntime:
    """:class:`ContainerRuntime` backed by the ``docker`` command line."""

    def __init__(
        self,
        binary: str = "docker",
        *,
        compose_subcommand: Sequence[str] = ("compose",),
        retries: int = 3,
        retry_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.binary = binary
        self.compose_subcommand = list(compose_subcommand)
        self.retries = retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------------

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        cmd = [self.binary, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise ContainerRuntimeError(
                f"Container runtime binary not found: {self.binary}", binary=self.binary
            ) from exc
        if proc.returncode != 0:
            stderr = proc.stderr.lower()
            if any(marker in stderr for marker in _DAEMON_DOWN_MARKERS):
                raise DaemonUnavailableError(
                    f"Container runtime daemon unreachable: {proc.stderr.strip()}",
                    command=cmd,
                )
        return proc

    def _retrying(self, fn: Callable[[], T]) -> T:
        """Call *fn*, retrying daemon-unavailable failures with backoff."""
        delay = self.retry_delay
        for attempt in range(self.retries + 1):
            try:
                return fn()
            except DaemonUnavailableError:
                if attempt >= self.retries:
                    raise
                logger.warning(
                    "Runtime daemon unavailable, retrying in %.2fs (%d/%d)",
                    delay,
                    attempt + 1,
                    self.retries,
                )
                self._sleep(delay)
                delay *= 2
        raise AssertionError("unreachable")

    # ------------------------------------------------------------------
    # ContainerRuntime
    # ------------------------------------------------------------------

    def compose_up(self, project: str, compose_file: Path, services: Sequence[str]) -> None:
        args = [
            *self.compose_subcommand,
            "-p",
            project,
            "-f",
            str(compose_file),
            "up",
            "--detach",
            "--no-deps",
            *services,
        ]

        def _up() -> None:
            proc = self._run(args)
            if proc.returncode != 0:
                raise ContainerRuntimeError(
                    f"Failed to start {', '.join(services)}: {proc.stderr.strip()}",
                    services=list(services),
                )

        self._retrying(_up)

    def stop(self, container: str) -> bool:
        """Stop *container*. Returns False if it was missing or not running."""

        if not self.state(container).running:
            return False

        def _stop() -> bool:
            proc = self._run(["stop", container])
            if proc.returncode == 0:
                return True
            if any(marker in proc.stderr.lower() for marker in _NO_SUCH_MARKERS):
                return False
            raise StopFailedError(
                f"Failed to stop {container}: {proc.stderr.strip()}", container=container
            )

        return self._retrying(_stop)

    def state(self, container: str) -> ContainerState:
        def _inspect() -> ContainerState:
            proc = self._run(
                ["inspect", "--format", "{{json .State}}|{{json .Config.Labels}}", container]
            )
            if proc.returncode != 0:
                if any(marker in proc.stderr.lower() for marker in _NO_SUCH_MARKERS):
                    return MISSING
                raise ContainerRuntimeError(
                    f"Failed to inspect {container}: {proc.stderr.strip()}",
                    container=container,
                )
            raw_state, _, raw_labels = proc.stdout.strip().partition("|")
            state = json.loads(raw_state or "{}")
            labels = json.loads(raw_labels or "null") or {}
            health = (state.get("Health") or {}).get("Status")
            return ContainerState(
                exists=True,
                running=bool(state.get("Running")),
                health=health,
                labels=labels,
            )

        return self._retrying(_inspect)

    def exec(
        self, container: str, argv: Sequence[str], *, interactive: bool = False
    ) -> subprocess.Popen[str]:
        """Start ``docker exec``; the caller owns the returned process.

        Interactive sessions inherit the terminal. Otherwise stdout and
        stderr are pipes for the caller to stream.
        """
        flags = ["-it"] if interactive else ["-i"]
        cmd = [self.binary, "exec", *flags, container, *argv]
        logger.debug("Dispatching %s", " ".join(cmd))
        try:
            if interactive:
                return subprocess.Popen(cmd, text=True)
            return subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise LaunchFailedError(
                f"Could not launch command in {container}: {exc}", container=container
            ) from exc

    def signal_exec(self, container: str, argv: Sequence[str], sig: int) -> bool:
        """Deliver *sig* to the newest process running exactly *argv* in *container*."""
        pattern = exact_command_pattern(argv)
        name = signal.Signals(sig).name.removeprefix("SIG")
        proc = self._run(["exec", container, "pkill", f"-{name}", "-n", "-f", pattern])
        if proc.returncode != 0:
            logger.warning(
                "Could not signal %r in %s: %s", pattern, container, proc.stderr.strip()
            )
            return False
        return True

    def ports(self, container: str) -> dict[str, str]:
        def _ports() -> dict[str, str]:
            proc = self._run(["port", container])
            if proc.returncode != 0:
                raise ContainerRuntimeError(
                    f"Failed to query ports of {container}: {proc.stderr.strip()}",
                    container=container,
                )
            return parse_port_output(proc.stdout)

        return self._retrying(_ports)
