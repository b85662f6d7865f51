"""Command: stop a project in reverse dependency order."""

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
  stackctl stop
  stackctl stop --project viewiemedia
  stackctl stop --reclaim-stale""",
)
@project_options
@click.option(
    "--reclaim-stale",
    is_flag=True,
    help="Take over a lock left behind by a dead process on this host.",
)
@click.pass_obj
def stop(app: AppContext, project: str | None, env_file: Path | None, reclaim_stale: bool) -> None:
    """Stop every service of the project; dependents go down first."""
    app.emit(app.orchestrator.stop(project=project, env_file=env_file, reclaim_stale=reclaim_stale))
