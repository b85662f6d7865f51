"""File-backed advisory locks, one per project.

A lock file ``<directory>/<project>.lock`` holds the holder's pid, host
and acquisition time as JSON. It is created with ``O_CREAT | O_EXCL`` so
two processes can never both believe they created it.

A lock whose holder pid is no longer alive on this host is *stale*.
Stale locks are reported like any other held lock; they are only removed
when the caller explicitly asks for reclamation.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from stackctl.domain.errors import LockHeldError

logger = logging.getLogger(__name__)


def pid_alive(pid: int) -> bool:
    """Whether *pid* names a live process on this host."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user.
        return True
    return True


@dataclass(frozen=True)
class LockInfo:
    pid: int
    host: str
    acquired_at: str

    @classmethod
    def for_current_process(cls) -> LockInfo:
        return cls(
            pid=os.getpid(),
            host=socket.gethostname(),
            acquired_at=datetime.now(UTC).isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LockHandle:
    """Proof of ownership returned by :meth:`LockManager.acquire`."""

    project: str
    path: Path
    info: LockInfo


class LockManager:
    """Acquire, inspect and release per-project lock files."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, project: str) -> Path:
        return self.directory / f"{project}.lock"

    def read(self, project: str) -> LockInfo | None:
        """Return the current holder, or None if unlocked or unreadable."""
        return self._load(self.path_for(project))

    @staticmethod
    def _load(path: Path) -> LockInfo | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return LockInfo(
                pid=int(data["pid"]),
                host=str(data["host"]),
                acquired_at=str(data["acquired_at"]),
            )
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError):
            logger.warning("Unreadable lock file %s", path)
            return None

    def is_stale(self, info: LockInfo) -> bool:
        """A lock is stale when its holder is gone.

        Liveness can only be checked for holders on this host; locks from
        other hosts are never considered stale.
        """
        if info.host != socket.gethostname():
            return False
        return not pid_alive(info.pid)

    def acquire(self, project: str, *, reclaim_stale: bool = False) -> LockHandle:
        """Take the lock for *project* or fail fast with ``LockHeldError``."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(project)
        info = LockInfo.for_current_process()
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            holder = self.read(project)
            if holder is not None and reclaim_stale and self.is_stale(holder):
                logger.warning(
                    "Reclaiming stale lock for %s held by pid %d on %s since %s",
                    project,
                    holder.pid,
                    holder.host,
                    holder.acquired_at,
                )
                if self._remove_if_held_by(project, holder):
                    return self.acquire(project, reclaim_stale=False)
                holder = self.read(project)
            raise self.held_error(project, holder) from None

        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(info.to_dict(), fh)
        logger.debug("Acquired lock %s", path)
        return LockHandle(project=project, path=path, info=info)

    def release(self, handle: LockHandle) -> bool:
        """Remove the lock file if it still belongs to *handle*."""
        holder = self.read(handle.project)
        if holder is None:
            return False
        if holder != handle.info or not self._remove_if_held_by(handle.project, handle.info):
            logger.warning("Lock for %s changed owner; leaving it in place", handle.project)
            return False
        logger.debug("Released lock %s", handle.path)
        return True

    def force_release(
        self, project: str, *, expected: LockInfo | None = None
    ) -> LockInfo | None:
        """Remove the lock whatever the liveness of its holder.

        With *expected*, the lock is only removed while that holder still
        owns it. Returns the removed holder, or None if nothing was removed.
        """
        holder = expected or self.read(project)
        if holder is None:
            return None
        logger.warning("Force-releasing lock %s (holder: %s)", self.path_for(project), holder)
        if not self._remove_if_held_by(project, holder):
            logger.warning("Lock for %s changed owner; leaving it in place", project)
            return None
        return holder

    def _remove_if_held_by(self, project: str, holder: LockInfo) -> bool:
        """Delete the lock file only if it still names *holder*.

        The file is first renamed aside, which is atomic, and checked there,
        so a lock another process created in the meantime is never deleted.
        """
        path = self.path_for(project)
        aside = path.with_name(f"{path.name}.{os.getpid()}.{uuid.uuid4().hex}")
        try:
            os.rename(path, aside)
        except FileNotFoundError:
            return False
        try:
            if self._load(aside) == holder:
                return True
            # Not the holder we read: put the newer lock back.
            try:
                os.link(aside, path)
            except FileExistsError:
                logger.warning("Lock for %s was replaced twice; dropping %s", project, aside)
            return False
        finally:
            aside.unlink(missing_ok=True)

    def held_error(self, project: str, holder: LockInfo | None) -> LockHeldError:
        if holder is None:
            return LockHeldError(
                f"Project {project} is locked by another process "
                f"(lock file {self.path_for(project)})",
                project=project,
                stale=False,
            )
        stale = self.is_stale(holder)
        msg = (
            f"Project {project} is locked by pid {holder.pid} on {holder.host} "
            f"since {holder.acquired_at}"
        )
        if stale:
            msg += (
                "; that process is no longer running. Re-run with --reclaim-stale "
                "or use 'stackctl unlock' to reclaim it"
            )
        return LockHeldError(msg, project=project, stale=stale, **holder.to_dict())
