"""Readiness predicates.

A probe answers "is this container up?" for one service. The launcher
polls it with backoff; it must not block for long.
"""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from stackctl.infrastructure.runtime import ContainerRuntime

hookimpl = pluggy.HookimplMarker("stackctl")

logger = logging.getLogger(__name__)

type ReadinessProbe = Callable[[ContainerRuntime, str], bool]


def runtime_state_probe(runtime: ContainerRuntime, container: str) -> bool:
    """Running per the runtime, and healthy if a healthcheck is defined."""
    return runtime.state(container).ready


def tcp_probe(host: str, port: int, *, timeout: float = 1.0) -> ReadinessProbe:
    """Build a probe that also requires *host*:*port* to accept connections."""

    def probe(runtime: ContainerRuntime, container: str) -> bool:
        if not runtime_state_probe(runtime, container):
            return False
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            logger.debug("%s: %s:%d not accepting connections yet", container, host, port)
            return False

    return probe


class RuntimeStatePlugin:
    """Built-in fallback: trust the runtime's state and health report."""

    @hookimpl(trylast=True)
    def stackctl_readiness_probe(
        self,
        project: str,
        service: str,
        definition: dict[str, Any],
    ) -> ReadinessProbe | None:
        return runtime_state_probe
