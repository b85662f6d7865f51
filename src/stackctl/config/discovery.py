"""Locate ``stackctl.toml`` for a container directory.

``STACKCTL_CONFIG`` names the file outright. Otherwise the container
directory and its parents are searched, stopping at the enclosing
repository root (the first directory holding ``.git`` or ``.hg``).
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

CONFIG_FILENAME = "stackctl.toml"
CONFIG_ENV_VAR = "STACKCTL_CONFIG"

_REPO_MARKERS = (".git", ".hg")


def _search_dirs(start: Path) -> Iterator[Path]:
    for directory in (start, *start.parents):
        yield directory
        if any((directory / marker).exists() for marker in _REPO_MARKERS):
            return


def find_config(container_dir: Path | None = None) -> Path | None:
    """Return the config file governing *container_dir* (default: cwd), if any."""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser()
        return path if path.is_file() else None

    start = (container_dir or Path.cwd()).resolve()
    for directory in _search_dirs(start):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
