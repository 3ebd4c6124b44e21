"""Tests for SetupService — the setup/reset driver."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from pipectl.domain.topology import DEFAULT_TOPICS
from pipectl.domain.types import HealthState
from pipectl.infrastructure.runtime import Runtime
from pipectl.services.result import (
    COMPOSE_FAILED,
    CONFIG_WRITE_FAILED,
    PROVISION_FAILED,
    READINESS_TIMEOUT,
)
from pipectl.services.setup import SetupService
from tests.conftest import INFRA, FakeClock, FakeCompose, FakeTopicAdmin, healthy_compose


def _stage_names(stages: list[dict]) -> list[str]:
    return [s["stage"] for s in stages]


class TestSetup:
    def test_full_run(
        self,
        runtime: Runtime,
        compose: FakeCompose,
        topic_admin: FakeTopicAdmin,
        clock: FakeClock,
        project_root: Path,
    ) -> None:
        result = SetupService(runtime).setup()
        assert result.ok, result.error
        assert _stage_names(result.data["stages"]) == [
            "credential",
            "build",
            "infrastructure",
            "readiness",
            "topics",
            "topic_list",
            "services",
            "startup_grace",
        ]
        assert result.data["topics"] == sorted(DEFAULT_TOPICS)
        assert result.data["credential_changed"] is True
        assert result.data["api_url"] == "http://localhost:8080"
        assert topic_admin.topics == set(DEFAULT_TOPICS)
        assert compose.calls[0] == ("build",)
        assert compose.calls[1] == ("up", INFRA)
        assert compose.calls[-1] == ("up", ())
        assert clock.sleeps[-1] == 15.0
        config = project_root / "internal" / "config" / "config.yaml"
        assert "sk_local_setup_key" in config.read_text(encoding="utf-8")

    def test_idempotent_rerun(self, runtime: Runtime, topic_admin: FakeTopicAdmin) -> None:
        svc = SetupService(runtime)
        assert svc.setup().ok
        again = svc.setup(build=False)
        assert again.ok
        assert again.data["credential_changed"] is False
        topics_stage = next(s for s in again.data["stages"] if s["stage"] == "topics")
        assert topics_stage["created"] == []
        assert "build" not in _stage_names(again.data["stages"])

    def test_readiness_timeout_stops_before_topics(
        self, make_runtime: Callable[..., Runtime], topic_admin: FakeTopicAdmin
    ) -> None:
        health = dict.fromkeys(INFRA, HealthState.HEALTHY)
        health["clickhouse"] = HealthState.UNHEALTHY
        compose = healthy_compose(health=health)
        result = SetupService(make_runtime(compose=compose)).setup(timeout=20)
        assert not result.ok
        assert result.error is not None
        assert result.error.code == READINESS_TIMEOUT
        assert result.error.message.startswith("readiness: ")
        assert result.error.detail["stage"] == "readiness"
        assert result.error.detail["unhealthy_services"] == {"clickhouse": "unhealthy"}
        assert _stage_names(result.error.detail["stages"]) == [
            "credential",
            "build",
            "infrastructure",
        ]
        assert topic_admin.create_calls == []
        assert ("up", ()) not in compose.calls

    def test_build_failure(self, make_runtime: Callable[..., Runtime]) -> None:
        compose = healthy_compose(fail={"build"})
        result = SetupService(make_runtime(compose=compose)).setup()
        assert result.error is not None
        assert result.error.code == COMPOSE_FAILED
        assert result.error.detail["stage"] == "build"
        assert result.error.detail["command"] == ["docker", "compose", "build"]
        assert result.error.remediation is not None

    def test_topic_failure(self, make_runtime: Callable[..., Runtime]) -> None:
        admin = FakeTopicAdmin(fail_on={"events"})
        result = SetupService(make_runtime(topic_admin=admin)).setup()
        assert result.error is not None
        assert result.error.code == PROVISION_FAILED
        assert result.error.detail["stage"] == "topics"

    def test_config_failure_is_first(
        self, runtime: Runtime, compose: FakeCompose, project_root: Path
    ) -> None:
        (project_root / "internal" / "config" / "config.yaml").unlink()
        result = SetupService(runtime).setup()
        assert result.error is not None
        assert result.error.code == CONFIG_WRITE_FAILED
        assert result.error.detail["stage"] == "credential"
        assert compose.calls == []

    def test_cancelled_before_compose(self, runtime: Runtime, compose: FakeCompose) -> None:
        runtime.cancel_event.set()
        result = SetupService(runtime).setup()
        assert result.error is not None
        assert result.error.code == "CANCELLED"
        assert compose.calls == []


class TestReset:
    def test_tears_down_first(self, runtime: Runtime, compose: FakeCompose) -> None:
        result = SetupService(runtime).reset(build=False)
        assert result.ok
        assert result.op == "reset"
        assert compose.calls[0] == ("down", True)
        assert _stage_names(result.data["stages"])[0] == "teardown"

    def test_teardown_failure(self, make_runtime: Callable[..., Runtime]) -> None:
        compose = healthy_compose(fail={"down"})
        result = SetupService(make_runtime(compose=compose)).reset()
        assert result.error is not None
        assert result.error.code == COMPOSE_FAILED
        assert result.error.detail["stage"] == "teardown"
