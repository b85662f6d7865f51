"""Deterministic container naming.

``<project>_<service>`` is the only naming scheme. Collisions are a static
property of the service list, so they are rejected when the registry is
built rather than when a name is looked up.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from stackctl.domain.errors import (
    DuplicateContainerNameError,
    InvalidServiceNameError,
    UnknownServiceError,
)

SEPARATOR = "_"

# Container names accepted by the docker daemon.
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def container_name(project_name: str, logical_name: str) -> str:
    """Return the container name for *logical_name* in *project_name*."""
    return f"{project_name}{SEPARATOR}{logical_name}"


class ContainerNameRegistry:
    """Maps a project's logical services to container names."""

    def __init__(self, project_name: str, services: Iterable[str]) -> None:
        if not project_name or not _NAME_RE.match(project_name):
            raise InvalidServiceNameError(
                f"Invalid project name {project_name!r}", project=project_name
            )
        self.project_name = project_name
        self._names: dict[str, str] = {}
        owners: dict[str, str] = {}
        for logical in services:
            if not logical or not _NAME_RE.match(logical):
                raise InvalidServiceNameError(
                    f"Invalid service name {logical!r} in project {project_name}",
                    project=project_name,
                    service=logical,
                )
            name = container_name(project_name, logical)
            # Case-insensitive filesystems and some runtimes fold names.
            folded = name.lower()
            if folded in owners:
                raise DuplicateContainerNameError(
                    f"Services {owners[folded]!r} and {logical!r} both map to "
                    f"container {name!r}",
                    project=project_name,
                    services=[owners[folded], logical],
                )
            owners[folded] = logical
            self._names[logical] = name

    @property
    def services(self) -> list[str]:
        return list(self._names)

    def __contains__(self, logical_name: object) -> bool:
        return logical_name in self._names

    def resolve(self, logical_name: str) -> str:
        """Return the container name, or raise ``UnknownServiceError``."""
        try:
            return self._names[logical_name]
        except KeyError:
            known = ", ".join(self._names) or "none"
            raise UnknownServiceError(
                f"Unknown service {logical_name!r} for project {self.project_name} "
                f"(known: {known})",
                project=self.project_name,
                service=logical_name,
            ) from None

    def items(self) -> list[tuple[str, str]]:
        return list(self._names.items())
