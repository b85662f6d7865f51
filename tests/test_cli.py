"""Tests for the root CLI group."""

from __future__ import annotations

from pathlib import Path

from click.testing import CliRunner

from stackctl import __version__
from stackctl.cli import cli
from tests.conftest import FakeRuntime, invoke


class TestRootGroup:
    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert f"stackctl, version {__version__}" in result.output

    def test_no_subcommand_shows_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "Usage:" in result.output

    def test_unknown_dir(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        result = cli_runner.invoke(cli, ["-C", str(tmp_path / "missing"), "status"])
        assert result.exit_code == 2

    def test_quiet_start_prints_nothing(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path
    ) -> None:
        result = invoke(cli_runner, runtime, container_dir, "-q", "start")
        assert result.exit_code == 0
        assert result.stdout == ""

    def test_config_file_flag(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path, tmp_path: Path
    ) -> None:
        config = tmp_path / "custom.toml"
        config.write_text('[layers]\nenv_file = ".env.alt"\n')
        (container_dir / ".env.alt").write_text("COMPOSE_PROJECT_NAME=alt\n")
        result = invoke(cli_runner, runtime, container_dir, "-c", str(config), "-q", "start")
        assert result.exit_code == 0
        assert "alt_web" in {c[1] for c in runtime.calls_to("state")}

    def test_log_json_goes_to_stderr(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path
    ) -> None:
        result = invoke(cli_runner, runtime, container_dir, "-v", "--log-json", "--json", "start")
        assert result.exit_code == 0
        assert result.stdout.lstrip().startswith("{")
        assert '"project": "viewiemedia"' in result.stderr
