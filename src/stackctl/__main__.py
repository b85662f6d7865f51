"""Allow ``python -m stackctl``."""

from stackctl.cli import cli

cli()
