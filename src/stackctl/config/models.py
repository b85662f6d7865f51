"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, stackctl.toml only contains
overrides. Most projects need no config file at all.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


def _default_lock_dir() -> Path:
    return Path.home() / ".cache" / "stackctl" / "locks"


class RuntimeConfig(BaseModel):
    """[runtime] section."""

    model_config = {"frozen": True}

    binary: str = "docker"
    compose_subcommand: list[str] = Field(default_factory=lambda: ["compose"])
    retries: int = 3
    retry_delay: float = 0.5


class LauncherConfig(BaseModel):
    """[launcher] section.

    Readiness is polled starting at ``initial_delay`` seconds, doubling up
    to ``max_delay``, until ``ceiling`` seconds have elapsed.
    """

    model_config = {"frozen": True}

    initial_delay: float = 0.25
    max_delay: float = 5.0
    ceiling: float = 120.0
    leave_partial: bool = False
    max_workers: int = 8


class DispatchConfig(BaseModel):
    """[dispatch] section."""

    model_config = {"frozen": True}

    timeout: float | None = None
    interrupt_grace: float = 5.0


class LocksConfig(BaseModel):
    """[locks] section."""

    model_config = {"frozen": True}

    directory: Path = Field(default_factory=_default_lock_dir)


class LayersConfig(BaseModel):
    """[layers] section — file names inside the container directory."""

    model_config = {"frozen": True}

    env_file: str = ".env"
    base: str = "docker-compose.yml"
    environment_template: str = "docker-compose.{env}.yml"
    environment_key: str = "APP_ENV"
    local_packages: str = "docker-compose.local-packages.yml"
    state_dir: str = ".stackctl"
