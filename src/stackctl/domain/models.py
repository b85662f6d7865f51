"""Core domain models: project configuration, containers, active projects."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from stackctl.domain.layers import MergedLayer


class MountMode(StrEnum):
    """Where package dependencies are bound from."""

    STANDARD = "standard"
    LOCAL_PACKAGES = "local-packages"


class ServiceStatus(StrEnum):
    UNKNOWN = "unknown"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    DEGRADED = "degraded"


class ProjectConfig(BaseModel):
    """A project's resolved identity and compose layer list.

    Immutable; re-resolving the container directory re-reads the env file.
    """

    model_config = {"frozen": True}

    project_name: str
    container_dir: Path
    env_file_path: Path
    layer_paths: tuple[Path, ...]
    mount_mode: MountMode = MountMode.STANDARD
    env: dict[str, str] = Field(default_factory=dict)


@dataclass
class ServiceContainer:
    logical_name: str
    container_name: str
    status: ServiceStatus = ServiceStatus.UNKNOWN


@dataclass
class ActiveProject:
    """A registered project, holding its advisory lock unless read-only.

    ``services`` preserves declaration order. ``start_order`` lists the
    logical names in the order their containers were actually started.
    """

    config: ProjectConfig
    services: dict[str, ServiceContainer]
    layer: MergedLayer | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    lock_handle: Any = None
    start_order: list[str] = field(default_factory=list)
    degraded: bool = False
    _mutex: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def name(self) -> str:
        return self.config.project_name

    @property
    def mount_mode(self) -> MountMode:
        return self.config.mount_mode

    @property
    def status(self) -> ServiceStatus:
        """Aggregate status across all services."""
        if self.degraded:
            return ServiceStatus.DEGRADED
        states = {svc.status for svc in self.services.values()}
        if not states:
            return ServiceStatus.UNKNOWN
        if len(states) == 1:
            return states.pop()
        if ServiceStatus.RUNNING in states:
            return ServiceStatus.DEGRADED
        return ServiceStatus.UNKNOWN

    def set_status(self, logical_name: str, status: ServiceStatus) -> None:
        """Transition one service; safe to call from worker threads."""
        with self._mutex:
            self.services[logical_name].status = status

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.name,
            "mount_mode": str(self.mount_mode),
            "status": str(self.status),
            "started_at": self.started_at.isoformat(),
            "services": [
                {
                    "service": svc.logical_name,
                    "container": svc.container_name,
                    "status": str(svc.status),
                }
                for svc in self.services.values()
            ],
        }


class ExitOutcome(BaseModel):
    """Result of a command dispatched into a container."""

    model_config = {"frozen": True}

    container_name: str
    argv: tuple[str, ...]
    exit_code: int
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0
