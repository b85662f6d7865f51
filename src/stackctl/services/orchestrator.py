"""Orchestrator — the operations behind every CLI command.

Resolves the project in the configured container directory, drives the
launcher and dispatcher, and folds every outcome into a ServiceResult.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from stackctl.config import resolver
from stackctl.config.logging import project_context
from stackctl.domain.errors import EXIT_COMMAND_FAILED, StackctlError, StopFailedError
from stackctl.domain.models import MountMode, ProjectConfig
from stackctl.domain.naming import ContainerNameRegistry
from stackctl.infrastructure.runtime import host_port
from stackctl.services.base import BaseService
from stackctl.services.dispatcher import CommandDispatcher, Sink
from stackctl.services.launcher import ComposeLauncher
from stackctl.services.result import ServiceResult

if TYPE_CHECKING:
    from stackctl.config.settings import StackSettings
    from stackctl.infrastructure.runtime import ContainerRuntime
    from stackctl.plugins.manager import PluginManager
    from stackctl.services.registry import ProjectRegistry


class Orchestrator(BaseService):
    """Start, stop, exec and inspect projects."""

    def __init__(
        self,
        settings: StackSettings,
        runtime: ContainerRuntime,
        registry: ProjectRegistry,
        plugins: PluginManager | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(runtime, registry, plugins)
        self._settings = settings
        self.launcher = ComposeLauncher(
            runtime,
            registry,
            settings.launcher,
            plugins=plugins,
            state_dir=settings.layers.state_dir,
            sleep=sleep,
            clock=clock,
        )
        self.dispatcher = CommandDispatcher(
            runtime,
            registry,
            interrupt_grace=settings.dispatch.interrupt_grace,
            clock=clock,
        )

    def resolve(
        self,
        *,
        project: str | None = None,
        mount_mode: MountMode = MountMode.STANDARD,
        env_file: Path | None = None,
    ) -> ProjectConfig:
        return resolver.resolve(
            self._settings.container_dir,
            mount_mode,
            env_file=env_file,
            project_name=project,
            layers=self._settings.layers,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        *,
        project: str | None = None,
        mount_mode: MountMode = MountMode.STANDARD,
        env_file: Path | None = None,
        leave_partial: bool | None = None,
        reclaim_stale: bool = False,
    ) -> ServiceResult:
        op = "start"
        try:
            config = self.resolve(project=project, mount_mode=mount_mode, env_file=env_file)
            with project_context(config.project_name, op):
                active = self.launcher.start(
                    config, leave_partial=leave_partial, reclaim_stale=reclaim_stale
                )
        except StackctlError as exc:
            return self._failure(op, exc)

        warnings: list[str] = []
        self._dispatch_event(
            "post_start",
            {
                "project": active.name,
                "services": list(active.services),
                "mount_mode": str(active.mount_mode),
            },
            warnings,
        )
        data = active.to_dict()
        data["layers"] = [str(p) for p in config.layer_paths]
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    def stop(
        self,
        *,
        project: str | None = None,
        env_file: Path | None = None,
        reclaim_stale: bool = False,
    ) -> ServiceResult:
        op = "stop"
        try:
            config = self.resolve(project=project, env_file=env_file)
            with project_context(config.project_name, op):
                self.launcher.attach(config, reclaim_stale=reclaim_stale)
                report = self.launcher.stop(config.project_name)
        except StackctlError as exc:
            return self._failure(op, exc)

        warnings: list[str] = []
        self._dispatch_event(
            "post_stop",
            {
                "project": report.project,
                "stopped": report.stopped,
                "failed": list(report.failed),
            },
            warnings,
        )
        if not report.ok:
            failed = ", ".join(report.failed)
            exc = StopFailedError(
                f"Could not stop {failed} in project {report.project}", **report.to_dict()
            )
            return self._failure(op, exc)
        return ServiceResult(ok=True, op=op, data=report.to_dict(), warnings=warnings)

    def exec(
        self,
        service: str,
        argv: Sequence[str],
        *,
        project: str | None = None,
        env_file: Path | None = None,
        interactive: bool = False,
        timeout: float | None = None,
        stdout: Sink | None = None,
        stderr: Sink | None = None,
    ) -> ServiceResult:
        """Dispatch *argv* into *service*.

        A nonzero exit of the command is a successful dispatch whose
        result carries exit code 3.
        """
        op = "exec"
        if timeout is None and not interactive:
            timeout = self._settings.dispatch.timeout
        sinks = {k: v for k, v in (("stdout", stdout), ("stderr", stderr)) if v is not None}
        try:
            config = self.resolve(project=project, env_file=env_file)
            with project_context(config.project_name, op):
                self.launcher.attach(config, lock=False)
                outcome = self.dispatcher.exec(
                    config.project_name,
                    service,
                    argv,
                    interactive=interactive,
                    timeout=timeout,
                    **sinks,
                )
        except StackctlError as exc:
            return self._failure(op, exc)

        data = {
            "project": config.project_name,
            "service": service,
            "container": outcome.container_name,
            "command": list(outcome.argv),
            "exit_code": outcome.exit_code,
            "duration_s": outcome.duration_s,
        }
        return ServiceResult(
            ok=True,
            op=op,
            data=data,
            exit_code=0 if outcome.ok else EXIT_COMMAND_FAILED,
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def status(self, *, project: str | None = None, env_file: Path | None = None) -> ServiceResult:
        """Report container states and the lock holder without taking the lock."""
        op = "status"
        try:
            config = self.resolve(project=project, env_file=env_file)
            active = self._registry.get(config.project_name)
            if active is None:
                active, _states = self.launcher.inspect(config, prefer_rendered=True)
        except StackctlError as exc:
            return self._failure(op, exc)

        data = active.to_dict()
        data.pop("started_at", None)
        locks = self._registry.locks
        holder = locks.read(config.project_name)
        data["lock"] = (
            {**holder.to_dict(), "stale": locks.is_stale(holder)} if holder is not None else None
        )
        return ServiceResult(ok=True, op=op, data=data)

    def ports(
        self, service: str, *, project: str | None = None, env_file: Path | None = None
    ) -> ServiceResult:
        """Map container ports of *service* to their host bindings and host ports."""
        op = "ports"
        try:
            config = self.resolve(project=project, env_file=env_file)
            active, _states = self.launcher.inspect(config, prefer_rendered=True)
            container = ContainerNameRegistry(config.project_name, active.services).resolve(
                service
            )
            ports = self._runtime.ports(container)
        except StackctlError as exc:
            return self._failure(op, exc)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project": config.project_name,
                "service": service,
                "container": container,
                "ports": ports,
                "host_ports": {port: host_port(binding) for port, binding in ports.items()},
            },
        )

    def unlock(
        self,
        *,
        project: str | None = None,
        env_file: Path | None = None,
        force: bool = False,
    ) -> ServiceResult:
        """Explicitly reclaim a project lock.

        Stale locks are removed; a lock held by a live process is only
        removed with *force*.
        """
        op = "unlock"
        locks = self._registry.locks
        try:
            name = project or self.resolve(env_file=env_file).project_name
            holder = locks.read(name)
            if holder is None:
                return ServiceResult(ok=True, op=op, data={"project": name, "released": False})
            stale = locks.is_stale(holder)
            if not (stale or force):
                raise locks.held_error(name, holder)
            if locks.force_release(name, expected=holder) is None:
                # Someone else took the lock since it was read.
                raise locks.held_error(name, locks.read(name))
        except StackctlError as exc:
            return self._failure(op, exc)
        return ServiceResult(
            ok=True,
            op=op,
            data={"project": name, "released": True, "stale": stale, "holder": holder.to_dict()},
        )
