"""Root CLI group for stackctl with global flags and command registration."""

from __future__ import annotations

from pathlib import Path

import click

from stackctl import __version__
from stackctl.commands import register_commands
from stackctl.commands._context import AppContext
from stackctl.config.settings import StackSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="stackctl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option(
    "-C",
    "--dir",
    "container_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Container directory (default: current directory).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    container_dir: Path | None,
) -> None:
    """stackctl — start, stop and exec into docker compose projects."""
    overrides = ctx.ensure_object(dict)
    settings = StackSettings.from_cli(
        config_path=config_path,
        container_dir=container_dir,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
    )
    app = AppContext(settings, runtime=overrides.get("runtime"))
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
