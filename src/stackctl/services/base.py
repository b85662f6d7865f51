"""BaseService — shared foundation for result-returning services.

A service receives the runtime, the project registry and the plugin
manager at construction time. Domain errors raised underneath are turned
into ``ServiceResult`` failures here so callers never see exceptions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from stackctl.services.result import ServiceError, ServiceResult

if TYPE_CHECKING:
    from stackctl.domain.errors import StackctlError
    from stackctl.infrastructure.runtime import ContainerRuntime
    from stackctl.plugins.manager import PluginManager
    from stackctl.services.registry import ProjectRegistry

logger = logging.getLogger(__name__)


class BaseService:
    """Base for service-layer classes.

    Usage::

        class Orchestrator(BaseService):
            def stop(self, ...) -> ServiceResult:
                try:
                    report = self.launcher.stop(name)
                except StackctlError as exc:
                    return self._failure("stop", exc)
                ...
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        registry: ProjectRegistry,
        plugins: PluginManager | None = None,
    ) -> None:
        self._runtime = runtime
        self._registry = registry
        self._plugins = plugins

    @staticmethod
    def _failure(op: str, exc: StackctlError) -> ServiceResult:
        logger.debug("%s failed: %s (%s)", op, exc.message, exc.code)
        return ServiceResult(
            ok=False,
            op=op,
            error=ServiceError.from_exception(exc),
            exit_code=exc.exit_code,
        )

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Call a lifecycle hook. No-op without a plugin manager.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        if self._plugins is None:
            return
        try:
            getattr(self._plugins.hook, hook_name)(**payload)
        except Exception:
            logger.debug("Plugin hook %s failed", hook_name, exc_info=True)
            warnings.append(f"Plugin hook {hook_name} failed")
