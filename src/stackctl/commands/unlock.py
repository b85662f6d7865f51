"""Command: reclaim a project lock."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand, project_options

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext


@click.command(
    cls=StackCommand,
    examples="""\
  stackctl unlock
  stackctl unlock --project viewiemedia --force""",
)
@project_options
@click.option("--force", is_flag=True, help="Remove the lock even if its holder is alive.")
@click.pass_obj
def unlock(app: AppContext, project: str | None, env_file: Path | None, force: bool) -> None:
    """Remove a stale project lock (or any lock, with --force)."""
    app.emit(app.orchestrator.unlock(project=project, env_file=env_file, force=force))
