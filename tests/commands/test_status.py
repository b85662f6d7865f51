"""Tests for the status, ports and unlock CLI commands."""

from __future__ import annotations

import json
import os
from pathlib import Path

from click.testing import CliRunner

from stackctl.infrastructure.locks import LockManager
from tests.conftest import FakeRuntime, invoke


class TestStatusCommand:
    def test_status_not_started(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path
    ) -> None:
        result = invoke(cli_runner, runtime, container_dir, "--json", "status")
        assert result.exit_code == 0
        data = json.loads(result.stdout)["data"]
        assert data["status"] == "unknown"
        assert data["lock"] is None

    def test_status_running(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path
    ) -> None:
        invoke(cli_runner, runtime, container_dir, "start")
        result = invoke(cli_runner, runtime, container_dir, "status")
        assert result.exit_code == 0
        assert "running" in result.stdout
        assert "viewiemedia_cache" in result.stdout

    def test_status_shows_foreign_lock(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path, tmp_path: Path
    ) -> None:
        LockManager(tmp_path / "locks").acquire("viewiemedia")
        result = invoke(cli_runner, runtime, container_dir, "--json", "status")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["lock"]["pid"] == os.getpid()


class TestPortsCommand:
    def test_ports(self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path) -> None:
        invoke(cli_runner, runtime, container_dir, "start")
        runtime.port_map["viewiemedia_db"] = {"3306/tcp": "0.0.0.0:33060"}
        result = invoke(cli_runner, runtime, container_dir, "-q", "ports", "db")
        assert result.exit_code == 0
        assert result.stdout.strip() == "3306/tcp 33060"

    def test_ports_unknown_service(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path
    ) -> None:
        result = invoke(cli_runner, runtime, container_dir, "ports", "queue")
        assert result.exit_code == 1


class TestUnlockCommand:
    def test_unlock_live_lock_requires_force(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path, tmp_path: Path
    ) -> None:
        locks = LockManager(tmp_path / "locks")
        locks.acquire("viewiemedia")
        result = invoke(cli_runner, runtime, container_dir, "unlock")
        assert result.exit_code == 4
        result = invoke(cli_runner, runtime, container_dir, "--json", "unlock", "--force")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["released"] is True
        assert locks.read("viewiemedia") is None

    def test_unlock_by_project_name(
        self, cli_runner: CliRunner, runtime: FakeRuntime, container_dir: Path
    ) -> None:
        args = ["--json", "unlock", "--project", "other"]
        result = invoke(cli_runner, runtime, container_dir, *args)
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"] == {"project": "other", "released": False}
