"""Tests for the setup and reset commands."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from pipectl.cli import cli
from pipectl.domain.types import HealthState
from tests.conftest import FakeCompose


@pytest.mark.usefixtures("cli_env")
class TestSetupCommand:
    def test_setup(self, cli_runner: CliRunner, compose: FakeCompose) -> None:
        result = cli_runner.invoke(cli, ["setup"])
        assert result.exit_code == 0, result.output
        assert "OK" in result.output
        assert "pipectl verify" in result.output
        assert compose.call_names()[0] == "build"

    def test_setup_json_no_build(self, cli_runner: CliRunner, compose: FakeCompose) -> None:
        result = cli_runner.invoke(cli, ["--json", "setup", "--no-build"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["op"] == "setup"
        assert "build" not in compose.call_names()

    def test_readiness_timeout_exit_code(
        self, cli_runner: CliRunner, compose: FakeCompose
    ) -> None:
        compose.health["kafka"] = HealthState.UNHEALTHY
        result = cli_runner.invoke(cli, ["setup", "--timeout", "0"])
        assert result.exit_code == 3
        assert "readiness" in result.output
        assert "kafka" in result.output

    def test_negative_timeout_rejected(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["setup", "--timeout", "-5"])
        assert result.exit_code == 2

    def test_compose_failure_exit_code(self, cli_runner: CliRunner, compose: FakeCompose) -> None:
        compose.fail.add("build")
        result = cli_runner.invoke(cli, ["setup"])
        assert result.exit_code == 4


@pytest.mark.usefixtures("cli_env")
class TestResetCommand:
    def test_requires_confirmation(self, cli_runner: CliRunner, compose: FakeCompose) -> None:
        result = cli_runner.invoke(cli, ["reset"], input="n\n")
        assert result.exit_code == 1
        assert compose.calls == []

    def test_confirmed(self, cli_runner: CliRunner, compose: FakeCompose) -> None:
        result = cli_runner.invoke(cli, ["reset", "--no-build"], input="y\n")
        assert result.exit_code == 0, result.output
        assert compose.calls[0] == ("down", True)

    def test_yes_flag(self, cli_runner: CliRunner, compose: FakeCompose) -> None:
        result = cli_runner.invoke(cli, ["--json", "reset", "--yes", "--no-build"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["op"] == "reset"

    def test_no_interact_skips_prompt(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--no-interact", "reset", "--no-build"])
        assert result.exit_code == 0, result.output
