"""Command: list published ports of a service."""

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
  stackctl ports web
  stackctl -q ports db
  stackctl --json ports web""",
)
@click.argument("service")
@project_options
@click.pass_obj
def ports(app: AppContext, service: str, project: str | None, env_file: Path | None) -> None:
    """Show host bindings for the ports SERVICE publishes."""
    app.emit(app.orchestrator.ports(service, project=project, env_file=env_file))
