"""Resolve a container directory into a :class:`ProjectConfig`.

The env file is newline-separated ``KEY=VALUE``. Lines starting with
``#`` and blank lines are ignored; an ``export`` prefix and matching
quotes around the value are stripped, as the shell would.
"""

from __future__ import annotations

from pathlib import Path

from stackctl.config.models import LayersConfig
from stackctl.domain.errors import (
    MalformedLineError,
    MissingEnvFileError,
    MissingProjectNameError,
)
from stackctl.domain.models import MountMode, ProjectConfig

PROJECT_NAME_KEY = "COMPOSE_PROJECT_NAME"


def parse_env(text: str, *, source: str = "<env>") -> dict[str, str]:
    """Parse env file *text* into an ordered mapping."""
    env: dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise MalformedLineError(
                f"{source}:{lineno}: expected KEY=VALUE, got {raw.strip()!r}",
                path=source,
                line=lineno,
            )
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        env[key] = value
    return env


def layer_paths(
    container_dir: Path,
    env: dict[str, str],
    mount_mode: MountMode,
    layers: LayersConfig,
) -> tuple[Path, ...]:
    """Derive the ordered compose layer list. Pure."""
    paths = [container_dir / layers.base]
    environment = env.get(layers.environment_key, "").strip()
    if environment:
        paths.append(container_dir / layers.environment_template.format(env=environment))
    if mount_mode is MountMode.LOCAL_PACKAGES:
        paths.append(container_dir / layers.local_packages)
    return tuple(paths)


def resolve(
    container_dir: Path,
    mount_mode: MountMode = MountMode.STANDARD,
    *,
    env_file: Path | None = None,
    project_name: str | None = None,
    layers: LayersConfig | None = None,
) -> ProjectConfig:
    """Read the env file under *container_dir* and build a ProjectConfig.

    *project_name* overrides ``COMPOSE_PROJECT_NAME`` when given.
    """
    layers = layers or LayersConfig()
    container_dir = Path(container_dir)
    env_path = Path(env_file) if env_file else container_dir / layers.env_file
    if not env_path.is_absolute() and env_file:
        env_path = container_dir / env_path
    if not env_path.is_file():
        raise MissingEnvFileError(f"Environment file not found: {env_path}", path=str(env_path))

    env = parse_env(env_path.read_text(encoding="utf-8"), source=str(env_path))
    name = (project_name or env.get(PROJECT_NAME_KEY, "")).strip()
    if not name:
        raise MissingProjectNameError(
            f"{PROJECT_NAME_KEY} is missing or empty in {env_path}",
            path=str(env_path),
        )

    return ProjectConfig(
        project_name=name,
        container_dir=container_dir,
        env_file_path=env_path,
        layer_paths=layer_paths(container_dir, env, mount_mode, layers),
        mount_mode=mount_mode,
        env=env,
    )
