"""ComposeLauncher — bring a project's containers up and down.

Start walks the dependency DAG depth by depth. Every service in a depth
is started concurrently; the next depth begins only once all of them
report ready. If any service misses the readiness ceiling the project is
marked Degraded and, unless partial state is kept for inspection, every
container started by this call is stopped again in reverse start order.

Stop walks the same DAG in reverse and always unregisters the project.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stackctl.domain.dependencies import start_levels, stop_levels
from stackctl.domain.errors import (
    ContainerRuntimeError,
    ModeMismatchError,
    ProjectNotActiveError,
    StartFailedError,
)
from stackctl.domain.layers import merge
from stackctl.domain.models import (
    ActiveProject,
    MountMode,
    ProjectConfig,
    ServiceContainer,
    ServiceStatus,
)
from stackctl.domain.naming import ContainerNameRegistry

if TYPE_CHECKING:
    from stackctl.config.models import LauncherConfig
    from stackctl.infrastructure.runtime import ContainerRuntime, ContainerState
    from stackctl.plugins.manager import PluginManager
    from stackctl.plugins.readiness import ReadinessProbe
    from stackctl.services.registry import ProjectRegistry

logger = logging.getLogger(__name__)

MOUNT_MODE_LABEL = "io.stackctl.mount-mode"
PROJECT_LABEL = "io.stackctl.project"


@dataclass
class StopReport:
    project: str
    stopped: list[str] = field(default_factory=list)
    already_stopped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "stopped": self.stopped,
            "already_stopped": self.already_stopped,
            "failed": self.failed,
        }


class ComposeLauncher:
    """Start and stop projects against a :class:`ContainerRuntime`."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        registry: ProjectRegistry,
        config: LauncherConfig,
        *,
        plugins: PluginManager | None = None,
        state_dir: str = ".stackctl",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._runtime = runtime
        self._registry = registry
        self._config = config
        self._plugins = plugins
        self._state_dir = state_dir
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(
        self,
        config: ProjectConfig,
        *,
        leave_partial: bool | None = None,
        reclaim_stale: bool = False,
    ) -> ActiveProject:
        """Bring *config*'s project up and return its registry entry."""
        existing = self._registry.get(config.project_name)
        if existing is not None:
            self._check_mode(config.project_name, existing.mount_mode, config.mount_mode)
            self._registry.ensure_locked(config.project_name, reclaim_stale=reclaim_stale)
            if existing.status is ServiceStatus.RUNNING:
                logger.info("Project %s already running", config.project_name)
                return existing
            self._bring_up(existing, leave_partial=leave_partial)
            return existing

        active, states = self.inspect(config)
        live = [state for state in states.values() if state.running]
        for state in live:
            recorded = state.labels.get(MOUNT_MODE_LABEL)
            if recorded:
                self._check_mode(config.project_name, MountMode(recorded), config.mount_mode)

        self._registry.register(active, reclaim_stale=reclaim_stale)
        running = [s for s in active.services.values() if s.status is ServiceStatus.RUNNING]
        if running and len(running) == len(active.services):
            logger.info("Adopted running project %s", active.name)
            return active
        if live:
            active.degraded = True
            logger.warning(
                "Project %s is degraded (%d/%d services ready); starting the rest",
                active.name,
                len(running),
                len(active.services),
            )

        self._bring_up(active, leave_partial=leave_partial)
        return active

    def attach(
        self, config: ProjectConfig, *, reclaim_stale: bool = False, lock: bool = True
    ) -> ActiveProject:
        """Register a project that is already known to the runtime.

        With ``lock=False`` the entry is a read-only view for dispatch: no
        lock is taken, so it never contends with start or stop.
        """
        existing = self._registry.get(config.project_name)
        if existing is not None:
            if lock:
                self._registry.ensure_locked(existing.name, reclaim_stale=reclaim_stale)
            return existing
        active, states = self.inspect(config, prefer_rendered=True)
        if not any(state.exists for state in states.values()):
            raise ProjectNotActiveError(
                f"Project {config.project_name} has no containers; run 'stackctl start' first",
                project=config.project_name,
            )
        return self._registry.register(active, reclaim_stale=reclaim_stale, lock=lock)

    def stop(self, project_name: str) -> StopReport:
        """Stop every container of *project_name*, dependents first."""
        active = self._registry.lookup(project_name)
        report = StopReport(project=project_name)
        try:
            for level in self._stop_order(active):
                for logical in level:
                    self._stop_one(active, logical, report)
        finally:
            self._registry.unregister(project_name)
        if report.failed:
            logger.error(
                "Project %s stopped with failures: %s",
                project_name,
                ", ".join(report.failed),
            )
        return report

    def rendered_path(self, config: ProjectConfig) -> Path:
        """Where the effective compose file for *config* is written."""
        return config.container_dir / self._state_dir / f"{config.project_name}.compose.yml"

    def inspect(
        self, config: ProjectConfig, *, prefer_rendered: bool = False
    ) -> tuple[ActiveProject, dict[str, ContainerState]]:
        """Merge layers, derive names and read each container's state.

        With *prefer_rendered*, the compose file written by the last start
        is used when present, so a project started in another invocation
        is seen exactly as it was launched.
        """
        rendered = self.rendered_path(config)
        if prefer_rendered and rendered.is_file():
            layer = merge([rendered])
        else:
            layer = merge(config.layer_paths)
        naming = ContainerNameRegistry(config.project_name, layer.services())
        # Validates the DAG before any runtime call.
        start_levels(layer)

        states: dict[str, ContainerState] = {}
        services: dict[str, ServiceContainer] = {}
        for logical, container in naming.items():
            state = states[logical] = self._runtime.state(container)
            if state.ready:
                status = ServiceStatus.RUNNING
            elif state.running:
                # Running, but its healthcheck has not passed.
                status = ServiceStatus.DEGRADED
            elif state.exists:
                status = ServiceStatus.STOPPED
            else:
                status = ServiceStatus.UNKNOWN
            services[logical] = ServiceContainer(logical, container, status)
        return ActiveProject(config=config, services=services, layer=layer), states

    # ------------------------------------------------------------------
    # Start internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_mode(project: str, current: MountMode, requested: MountMode) -> None:
        if current is not requested:
            raise ModeMismatchError(
                f"Project {project} is running in {current} mode; stop it before "
                f"starting in {requested} mode",
                project=project,
                running_mode=str(current),
                requested_mode=str(requested),
            )

    def _compose_file(self, active: ActiveProject) -> Path:
        assert active.layer is not None
        naming = ContainerNameRegistry(active.name, active.layer.services())
        return active.layer.dump(
            self.rendered_path(active.config),
            naming.items(),
            labels={
                PROJECT_LABEL: active.name,
                MOUNT_MODE_LABEL: str(active.mount_mode),
            },
        )

    def _bring_up(self, active: ActiveProject, *, leave_partial: bool | None) -> None:
        assert active.layer is not None
        if leave_partial is None:
            leave_partial = self._config.leave_partial
        compose_file = self._compose_file(active)
        started_here: list[str] = []

        try:
            for depth, level in enumerate(start_levels(active.layer)):
                pending = [
                    s for s in level if active.services[s].status is not ServiceStatus.RUNNING
                ]
                if not pending:
                    continue
                logger.debug("Starting depth %d: %s", depth, ", ".join(pending))
                failures = self._start_level(active, pending, compose_file, started_here)
                if failures:
                    first = next(s for s in level if s in failures)
                    self._fail(active, first, failures, started_here, leave_partial)
        except BaseException:
            # Interrupted or crashed mid-start: leave a Degraded entry that
            # the next start can discover.
            if active.status is not ServiceStatus.RUNNING:
                active.degraded = True
            raise

        active.degraded = False
        logger.info("Project %s running (%d services)", active.name, len(active.services))

    def _start_level(
        self,
        active: ActiveProject,
        services: list[str],
        compose_file: Path,
        started_here: list[str],
    ) -> dict[str, str]:
        """Start *services* concurrently; return ``{service: reason}`` failures."""
        order_lock = threading.Lock()

        def _start_one(logical: str) -> str | None:
            active.set_status(logical, ServiceStatus.STARTING)
            try:
                self._runtime.compose_up(active.name, compose_file, [logical])
            except ContainerRuntimeError as exc:
                active.set_status(logical, ServiceStatus.DEGRADED)
                return exc.message
            with order_lock:
                started_here.append(logical)
                active.start_order.append(logical)
            if self._wait_ready(active, logical):
                active.set_status(logical, ServiceStatus.RUNNING)
                return None
            active.set_status(logical, ServiceStatus.DEGRADED)
            return f"not ready within {self._config.ceiling:g}s"

        workers = max(1, min(len(services), self._config.max_workers))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = dict(zip(services, pool.map(_start_one, services), strict=True))
        return {name: reason for name, reason in results.items() if reason is not None}

    def _wait_ready(self, active: ActiveProject, logical: str) -> bool:
        """Poll the service's readiness probe with bounded exponential backoff."""
        container = active.services[logical].container_name
        probe = self._probe_for(active, logical)
        delay = self._config.initial_delay
        deadline = self._clock() + self._config.ceiling
        while True:
            try:
                if probe(self._runtime, container):
                    return True
            except ContainerRuntimeError as exc:
                logger.debug("Readiness probe for %s failed: %s", container, exc.message)
            except Exception:
                logger.warning(
                    "Readiness probe for %s raised; treating it as not ready",
                    container,
                    exc_info=True,
                )
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            self._sleep(min(delay, remaining))
            delay = min(delay * 2, self._config.max_delay)

    def _probe_for(self, active: ActiveProject, logical: str) -> ReadinessProbe:
        from stackctl.plugins.readiness import runtime_state_probe

        if self._plugins is None:
            return runtime_state_probe
        assert active.layer is not None
        try:
            return self._plugins.readiness_probe(
                active.name, logical, active.layer.service(logical)
            )
        except Exception:
            logger.warning(
                "Readiness hook failed for %s; falling back to runtime state",
                logical,
                exc_info=True,
            )
            return runtime_state_probe

    def _fail(
        self,
        active: ActiveProject,
        first: str,
        failures: dict[str, str],
        started_here: list[str],
        leave_partial: bool,
    ) -> None:
        active.degraded = True
        for name, reason in failures.items():
            logger.error("Service %s of %s failed: %s", name, active.name, reason)
        skipped = [
            name
            for name, svc in active.services.items()
            if name not in failures and svc.status in (ServiceStatus.UNKNOWN, ServiceStatus.STOPPED)
        ]
        if skipped:
            logger.warning("Not started because of the failure: %s", ", ".join(skipped))

        reverted: list[str] = []
        rollback_failures: dict[str, str] = {}
        if leave_partial:
            logger.warning(
                "Leaving %s degraded for inspection; started: %s",
                active.name,
                ", ".join(started_here) or "none",
            )
        else:
            for logical in reversed(started_here):
                svc = active.services[logical]
                active.set_status(logical, ServiceStatus.STOPPING)
                try:
                    self._runtime.stop(svc.container_name)
                except ContainerRuntimeError as exc:
                    rollback_failures[logical] = exc.message
                    active.set_status(logical, ServiceStatus.UNKNOWN)
                    logger.error("Rollback of %s (%s) failed: %s", logical, svc.container_name, exc)
                    continue
                active.set_status(logical, ServiceStatus.STOPPED)
                reverted.append(logical)
                logger.warning("Rolled back %s (%s)", logical, svc.container_name)
            self._registry.unregister(active.name)

        raise StartFailedError(
            f"Service {first!r} of project {active.name} failed to start: {failures[first]}",
            project=active.name,
            service=first,
            status=str(ServiceStatus.DEGRADED),
            failures=failures,
            skipped=skipped,
            reverted=reverted,
            rollback_failures=rollback_failures,
            left_partial=leave_partial,
        )

    # ------------------------------------------------------------------
    # Stop internals
    # ------------------------------------------------------------------

    @staticmethod
    def _stop_order(active: ActiveProject) -> list[list[str]]:
        if active.layer is None:
            return [list(reversed(active.services))]
        return stop_levels(active.layer)

    def _stop_one(self, active: ActiveProject, logical: str, report: StopReport) -> None:
        svc = active.services[logical]
        if svc.status is ServiceStatus.STOPPED:
            report.already_stopped.append(logical)
            return
        active.set_status(logical, ServiceStatus.STOPPING)
        try:
            stopped = self._runtime.stop(svc.container_name)
        except ContainerRuntimeError as exc:
            active.set_status(logical, ServiceStatus.UNKNOWN)
            report.failed[logical] = exc.message
            logger.error("Failed to stop %s (%s): %s", logical, svc.container_name, exc.message)
            return
        active.set_status(logical, ServiceStatus.STOPPED)
        if stopped:
            report.stopped.append(logical)
            logger.info("Stopped %s (%s)", logical, svc.container_name)
        else:
            report.already_stopped.append(logical)
