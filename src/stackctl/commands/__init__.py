"""Subcommand modules for stackctl.

Provides register_commands() which uses deferred imports to keep
``stackctl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register every standalone command on the root CLI group."""
    from stackctl.commands.exec_cmd import exec_cmd
    from stackctl.commands.ports import ports
    from stackctl.commands.start import start
    from stackctl.commands.status import status
    from stackctl.commands.stop import stop
    from stackctl.commands.unlock import unlock

    cli.add_command(start)
    cli.add_command(stop)
    cli.add_command(exec_cmd)
    cli.add_command(status)
    cli.add_command(ports)
    cli.add_command(unlock)
