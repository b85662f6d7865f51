"""Pluggy hook specifications for stackctl.

One setup hook supplies per-service readiness predicates; two lifecycle
hooks observe project start and stop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from stackctl.plugins.readiness import ReadinessProbe

hookspec = pluggy.HookspecMarker("stackctl")


class StackctlHookSpec:
    """Hook specifications for the stackctl plugin system."""

    @hookspec(firstresult=True)
    def stackctl_readiness_probe(
        self,
        project: str,
        service: str,
        definition: dict[str, Any],
    ) -> ReadinessProbe | None:
        """Return a readiness predicate for *service*, or None to defer.

        The first non-None result wins. The built-in runtime-state probe
        runs last.
        """

    @hookspec
    def post_start(self, project: str, services: list[str], mount_mode: str) -> None:
        """Called after every service of *project* reports Running."""

    @hookspec
    def post_stop(self, project: str, stopped: list[str], failed: list[str]) -> None:
        """Called after *project* has been stopped and unregistered."""
