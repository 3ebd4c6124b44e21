"""Tests for the verify command."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from pipectl.cli import cli
from pipectl.domain.topology import DEFAULT_TOPICS
from pipectl.infrastructure.runtime import Runtime
from tests.conftest import FakeTopicAdmin, pipeline_handler


@pytest.fixture
def ready_env(
    project_root: Path,
    make_runtime: Callable[..., Runtime],
    monkeypatch: pytest.MonkeyPatch,
) -> Runtime:
    runtime = make_runtime(topic_admin=FakeTopicAdmin(DEFAULT_TOPICS))
    monkeypatch.chdir(project_root)
    monkeypatch.setattr("pipectl.infrastructure.runtime.Runtime", lambda settings: runtime)
    return runtime


@pytest.mark.usefixtures("ready_env")
class TestVerifyCommand:
    def test_verify_passes(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["verify"])
        assert result.exit_code == 0, result.output
        for step in ("liveness", "ingestion", "retrieval", "topics", "services"):
            assert step in result.output

    def test_verify_json(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "verify", "--environment-id", "env_ci"])
        assert result.exit_code == 0, result.output
        report = json.loads(result.output)["data"]["report"]
        assert report["overall_passed"] is True
        assert report["environment_id"].startswith("env_ci_")


class TestVerifyFailures:
    def test_failed_verification_exit_code(
        self,
        cli_runner: CliRunner,
        project_root: Path,
        make_runtime: Callable[..., Runtime],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        runtime = make_runtime(
            topic_admin=FakeTopicAdmin(DEFAULT_TOPICS),
            api_handler=pipeline_handler(ingest_status=401),
        )
        monkeypatch.chdir(project_root)
        monkeypatch.setattr("pipectl.infrastructure.runtime.Runtime", lambda settings: runtime)
        result = cli_runner.invoke(cli, ["verify"])
        assert result.exit_code == 6
        assert "ingestion" in result.output
        assert "401" in result.output

    def test_no_remediate_flag(
        self,
        cli_runner: CliRunner,
        cli_env: Runtime,
        topic_admin: FakeTopicAdmin,
    ) -> None:
        result = cli_runner.invoke(cli, ["verify", "--no-remediate"])
        assert result.exit_code == 6
        assert "pipectl provision" in result.output
        assert topic_admin.create_calls == []
