"""Command: start every service of a project in dependency order."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand, project_options
from stackctl.domain.models import MountMode

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext


@click.command(
    cls=StackCommand,
    examples="""\
  stackctl start
  stackctl start --local-packages
  stackctl -C ./containers start --env .env.staging
  stackctl start --leave-partial
  stackctl --json start""",
)
@project_options
@click.option(
    "-p",
    "--local-packages",
    is_flag=True,
    help="Mount local package sources (adds the local-packages layer).",
)
@click.option(
    "--leave-partial",
    is_flag=True,
    help="On failure, keep already-started services running for inspection.",
)
@click.option(
    "--reclaim-stale",
    is_flag=True,
    help="Take over a lock left behind by a dead process on this host.",
)
@click.pass_obj
def start(
    app: AppContext,
    project: str | None,
    env_file: Path | None,
    local_packages: bool,
    leave_partial: bool,
    reclaim_stale: bool,
) -> None:
    """Start the project's services, waiting for each dependency level to be ready."""
    mode = MountMode.LOCAL_PACKAGES if local_packages else MountMode.STANDARD
    result = app.orchestrator.start(
        project=project,
        mount_mode=mode,
        env_file=env_file,
        leave_partial=leave_partial or None,
        reclaim_stale=reclaim_stale,
    )
    app.emit(result)
