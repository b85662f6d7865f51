"""Click base class with --examples support.

``StackCommand`` accepts an ``examples`` parameter. When ``--examples`` is
passed, the command prints usage examples and exits, keeping ``--help``
concise. Every command also gets the shared ``--project``/``--env``
options through :func:`project_options`.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

F = TypeVar("F", bound=Callable[..., Any])


def _show_examples(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    if not value:
        return
    command = ctx.command
    click.echo(f"Examples for '{ctx.command_path}':\n")
    click.echo(getattr(command, "examples", "") or "")
    ctx.exit(0)


class StackCommand(click.Command):
    """Click Command subclass that supports an ``--examples`` flag."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            self.params.append(
                click.Option(
                    ["--examples"],
                    is_flag=True,
                    expose_value=False,
                    is_eager=True,
                    callback=_show_examples,
                    help="Show usage examples.",
                )
            )


def project_options(fn: F) -> F:
    """Add ``--project`` and ``--env`` to a command."""
    fn = click.option(
        "--env",
        "env_file",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="Environment file (default: .env in the container directory).",
    )(fn)
    fn = click.option(
        "--project",
        default=None,
        help="Project name (default: COMPOSE_PROJECT_NAME from the env file).",
    )(fn)
    return fn
