"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``STACKCTL_*`` prefix
  3. TOML file    — ``stackctl.toml`` discovered via walk-up
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` that
reuses the walk-up discovery from :mod:`stackctl.config.discovery`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any, ClassVar

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from stackctl.config.discovery import find_config
from stackctl.config.models import (
    DispatchConfig,
    LauncherConfig,
    LayersConfig,
    LocksConfig,
    RuntimeConfig,
)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``stackctl.toml`` file discovered via walk-up."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                import click

                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class StackSettings(BaseSettings):
    """Unified settings for the entire stackctl CLI.

    Stored on the :class:`AppContext` at the CLI root level.

    Attributes:
        container_dir: Directory holding the project's env file and compose
            layers (``--dir``, or CWD).
        config_path: Resolved ``stackctl.toml`` path, or None.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "STACKCTL_",
        "env_nested_delimiter": "__",
    }

    container_dir: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    launcher: LauncherConfig = Field(default_factory=LauncherConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    locks: LocksConfig = Field(default_factory=LocksConfig)
    layers: LayersConfig = Field(default_factory=LayersConfig)

    # Retained for type-checker visibility; not used at runtime.
    _toml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        container_dir: Path | None = None,
        **cli_flags: Any,
    ) -> StackSettings:
        """Construct settings from CLI invocation.

        Discovers ``stackctl.toml`` via walk-up from *container_dir* (or
        uses the explicit *config_path*) and merges CLI flags as
        highest-priority overrides.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(container_dir)

        _tls.toml_path = toml_path
        try:
            return cls(
                container_dir=container_dir or Path.cwd(),
                config_path=toml_path,
                **cli_flags,
            )
        finally:
            _tls.toml_path = None
