"""ProjectRegistry — the table of active projects in this process.

Replaces an ambient "current project" with explicit entries: several
projects may be active at once, each registered under its name and
guarded by the advisory lock from :mod:`stackctl.infrastructure.locks`.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from stackctl.domain.errors import ProjectAlreadyActiveError, ProjectNotActiveError

if TYPE_CHECKING:
    from stackctl.domain.models import ActiveProject
    from stackctl.infrastructure.locks import LockManager

logger = logging.getLogger(__name__)


class ProjectRegistry:
    """Process-wide map of project name to :class:`ActiveProject`."""

    def __init__(self, locks: LockManager) -> None:
        self._locks = locks
        self._entries: dict[str, ActiveProject] = {}
        self._mutex = threading.RLock()

    @property
    def locks(self) -> LockManager:
        return self._locks

    def register(
        self, project: ActiveProject, *, reclaim_stale: bool = False, lock: bool = True
    ) -> ActiveProject:
        """Add *project* and, unless *lock* is false, take its lock.

        Raises ``ProjectAlreadyActiveError`` for a duplicate name and
        ``LockHeldError`` when another process holds the lock.
        """
        with self._mutex:
            if project.name in self._entries:
                raise ProjectAlreadyActiveError(
                    f"Project {project.name} is already active", project=project.name
                )
            if lock:
                project.lock_handle = self._locks.acquire(
                    project.name, reclaim_stale=reclaim_stale
                )
            self._entries[project.name] = project
            logger.debug("Registered project %s (locked: %s)", project.name, lock)
            return project

    def ensure_locked(self, name: str, *, reclaim_stale: bool = False) -> ActiveProject:
        """Take the lock for an entry that was registered without it."""
        with self._mutex:
            project = self.lookup(name)
            if project.lock_handle is None:
                project.lock_handle = self._locks.acquire(name, reclaim_stale=reclaim_stale)
            return project

    def lookup(self, name: str) -> ActiveProject:
        with self._mutex:
            try:
                return self._entries[name]
            except KeyError:
                raise ProjectNotActiveError(
                    f"Project {name} is not active", project=name
                ) from None

    def get(self, name: str) -> ActiveProject | None:
        with self._mutex:
            return self._entries.get(name)

    def unregister(self, name: str) -> ActiveProject:
        """Remove *name* and release its lock."""
        with self._mutex:
            project = self.lookup(name)
            del self._entries[name]
            if project.lock_handle is not None:
                self._locks.release(project.lock_handle)
                project.lock_handle = None
            logger.debug("Unregistered project %s", name)
            return project

    def active(self) -> list[ActiveProject]:
        with self._mutex:
            return list(self._entries.values())

    def __contains__(self, name: object) -> bool:
        with self._mutex:
            return name in self._entries

    def release_all(self) -> None:
        """Drop every entry and release its lock; containers are untouched."""
        with self._mutex:
            for name in list(self._entries):
                self.unregister(name)
