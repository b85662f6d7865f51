"""Command: show container states and the lock holder."""

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
  stackctl status
  stackctl --json status
  stackctl -v status --env .env.staging""",
)
@project_options
@click.pass_obj
def status(app: AppContext, project: str | None, env_file: Path | None) -> None:
    """Show the status of each service without taking the project lock."""
    app.emit(app.orchestrator.status(project=project, env_file=env_file))
