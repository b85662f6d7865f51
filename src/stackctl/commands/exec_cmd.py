"""Command: run a command inside a running service container."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand, project_options

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext


@click.command(
    "exec",
    cls=StackCommand,
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
    examples="""\
  stackctl exec web python manage.py migrate
  stackctl exec db -- psql -U postgres -c 'select 1'
  stackctl exec -i web bash
  stackctl exec --timeout 30 web pytest -x""",
)
@project_options
@click.option("-i", "--interactive", is_flag=True, help="Attach the terminal (TTY + stdin).")
@click.option("--timeout", type=float, default=None, help="Seconds before the command is stopped.")
@click.argument("service")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def exec_cmd(
    app: AppContext,
    project: str | None,
    env_file: Path | None,
    interactive: bool,
    timeout: float | None,
    service: str,
    command: tuple[str, ...],
) -> None:
    """Run COMMAND in SERVICE and exit with its status.

    The service must already be running; exec never starts containers.
    """
    argv = list(command)
    if argv and argv[0] == "--":
        argv = argv[1:]

    captured: dict[str, list[str]] = {"stdout": [], "stderr": []}
    if app.settings.json_output:

        def out(text: str) -> None:
            captured["stdout"].append(text)

        def err(text: str) -> None:
            captured["stderr"].append(text)

    else:

        def out(text: str) -> None:
            click.echo(text, nl=False)

        def err(text: str) -> None:
            click.echo(text, nl=False, err=True)

    result = app.orchestrator.exec(
        service,
        argv,
        project=project,
        env_file=env_file,
        interactive=interactive,
        timeout=timeout,
        stdout=out,
        stderr=err,
    )
    if app.settings.json_output and result.ok:
        data = {**result.data, **{k: "".join(v) for k, v in captured.items()}}
        result = result.model_copy(update={"data": data})
    app.emit(result, show_success=False)
