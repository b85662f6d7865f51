"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``. Builds the runtime, registry and orchestrator lazily
so ``--help`` and ``--version`` never touch the container runtime, and
centralizes result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from stackctl.config.settings import StackSettings
    from stackctl.infrastructure.runtime import ContainerRuntime
    from stackctl.services.orchestrator import Orchestrator
    from stackctl.services.registry import ProjectRegistry
    from stackctl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy."""

    def __init__(
        self,
        settings: StackSettings,
        *,
        runtime: ContainerRuntime | None = None,
    ) -> None:
        self.settings = settings
        self._runtime = runtime
        self._registry: ProjectRegistry | None = None
        self._orchestrator: Orchestrator | None = None

        from stackctl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    @property
    def runtime(self) -> ContainerRuntime:
        if self._runtime is None:
            from stackctl.infrastructure.runtime import DockerCliRuntime

            cfg = self.settings.runtime
            self._runtime = DockerCliRuntime(
                cfg.binary,
                compose_subcommand=cfg.compose_subcommand,
                retries=cfg.retries,
                retry_delay=cfg.retry_delay,
            )
        return self._runtime

    @property
    def registry(self) -> ProjectRegistry:
        if self._registry is None:
            from stackctl.infrastructure.locks import LockManager
            from stackctl.services.registry import ProjectRegistry

            self._registry = ProjectRegistry(LockManager(self.settings.locks.directory))
        return self._registry

    @property
    def orchestrator(self) -> Orchestrator:
        """The orchestrator (created lazily, with plugins loaded)."""
        if self._orchestrator is None:
            from stackctl.plugins.manager import PluginManager
            from stackctl.services.orchestrator import Orchestrator

            plugins = PluginManager()
            plugins.discover_and_load()
            self._orchestrator = Orchestrator(self.settings, self.runtime, self.registry, plugins)
        return self._orchestrator

    def close(self) -> None:
        """Release every lock this process holds; containers keep running."""
        if self._registry is not None:
            self._registry.release_all()

    def emit(self, result: ServiceResult, *, show_success: bool = True) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: writes to stdout (unless *show_success* is False outside
          JSON mode). Warnings go to stderr so they don't pollute pipes.
        * Success with a nonzero ``exit_code`` (a dispatched command
          failed): reported on stderr, exits with that code.
        * Failure: writes to stderr, exits with the error's code.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        if not result.ok:
            click.echo(format_result(result, settings=settings), err=True)
            raise SystemExit(result.exit_code or 1)

        if settings.json_output or show_success:
            output = format_result(result, settings=settings)
            if output:
                click.echo(output)
        if not settings.json_output:
            for warning in result.warnings:
                click.echo(f"WARNING: {warning}", err=True)
        if result.exit_code:
            if not settings.json_output:
                code = result.data.get("exit_code")
                click.echo(f"{result.op}: command exited with status {code}", err=True)
            raise SystemExit(result.exit_code)
