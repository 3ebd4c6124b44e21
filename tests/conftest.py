"""Shared pytest fixtures and test doubles for pipectl tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Generator, Iterable, Mapping
from pathlib import Path
from typing import Any

import httpx
import pytest
from click.testing import CliRunner

from pipectl.config.settings import PipeSettings
from pipectl.domain.topology import DEFAULT_TOPICS, TopicSpec
from pipectl.domain.types import HealthState
from pipectl.infrastructure.api import EventApiClient
from pipectl.infrastructure.compose import ComposeError
from pipectl.infrastructure.kafka import TopicAdminError, TopicCreation
from pipectl.infrastructure.runtime import Runtime
from pipectl.services.telemetry import disable_telemetry

INFRA = ("clickhouse", "kafka", "postgres", "temporal")
ALL_SERVICES = (*INFRA, "flexprice-api", "flexprice-consumer")

CONFIG_YAML = """\
# Local development config
server:
  address: ":8080"

auth:
  provider: flexprice
  api_key:
    header: x-api-key
    keys:
      sk_existing_key:  # seeded by hand
        tenant_id: "00000000-0000-0000-0000-000000000000"
        user_id: "00000000-0000-0000-0000-000000000000"
        name: Existing Key
        is_active: true
"""


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeTopicAdmin:
    """In-memory broker implementing the TopicAdmin protocol."""

    def __init__(
        self,
        topics: Iterable[str] = (),
        *,
        fail_on: Iterable[str] = (),
        unreachable: bool = False,
    ) -> None:
        self.topics = set(topics)
        self.fail_on = set(fail_on)
        self.unreachable = unreachable
        self.create_calls: list[list[str]] = []

    def list_topics(self) -> set[str]:
        if self.unreachable:
            raise TopicAdminError("Kafka broker at localhost:9092 unreachable: timed out")
        return set(self.topics)

    def create_topics(self, specs: Iterable[TopicSpec]) -> TopicCreation:
        if self.unreachable:
            raise TopicAdminError("Kafka broker at localhost:9092 rejected create request")
        specs = sorted(specs, key=lambda s: s.name)
        self.create_calls.append([s.name for s in specs])
        outcome = TopicCreation()
        for spec in specs:
            if spec.name in self.fail_on:
                outcome.failures[spec.name] = "INVALID_REPLICATION_FACTOR"
            elif spec.name in self.topics:
                outcome.existing.add(spec.name)
            else:
                self.topics.add(spec.name)
                outcome.created.add(spec.name)
        return outcome


class FakeCompose:
    """Records compose calls; observation results are configurable."""

    def __init__(
        self,
        *,
        health: Mapping[str, HealthState] | None = None,
        states: Mapping[str, str] | None = None,
        logs: str = "",
        exec_outputs: Mapping[str, str] | None = None,
        fail: Iterable[str] = (),
    ) -> None:
        self.health = dict(health or {})
        self.states = dict(states or {})
        self.log_text = logs
        self.exec_outputs = dict(exec_outputs or {})
        self.fail = set(fail)
        self.calls: list[tuple[Any, ...]] = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise ComposeError(
                ["docker", "compose", name],
                f"`docker compose {name}` exited with 1: boom",
                returncode=1,
            )

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def build(self) -> None:
        self._record("build")

    def up(self, services: Iterable[str] = ()) -> None:
        self._record("up", tuple(sorted(services)))

    def down(self, *, volumes: bool = True) -> None:
        self._record("down", volumes)

    def service_health(self, services: Iterable[str]) -> dict[str, HealthState]:
        self._record("ps")
        return {s: self.health.get(s, HealthState.STARTING) for s in services}

    def service_states(self, services: Iterable[str]) -> dict[str, str]:
        self._record("ps")
        return {s: self.states.get(s, "missing") for s in services}

    def logs(self, service: str, *, tail: int = 10) -> str:
        self._record("logs", service)
        return self.log_text

    def exec(self, service: str, *command: str) -> str:
        self._record("exec", service)
        return self.exec_outputs.get(command[-1], "")


def healthy_compose(**kwargs: Any) -> FakeCompose:
    """A compose double where every default service is healthy and running."""
    kwargs.setdefault("health", dict.fromkeys(ALL_SERVICES, HealthState.HEALTHY))
    kwargs.setdefault("states", dict.fromkeys(ALL_SERVICES, "running"))
    kwargs.setdefault(
        "exec_outputs", {"SELECT 1": "1", "SELECT COUNT(*) FROM events": "42"}
    )
    return FakeCompose(**kwargs)


ApiHandler = Callable[[httpx.Request], httpx.Response]


def pipeline_handler(total_count: Any = 1, *, ingest_status: int = 201) -> ApiHandler:
    """MockTransport handler emulating a working ingestion API."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if request.url.path == "/api/v1/events":
            return httpx.Response(ingest_status, json={"message": "event accepted"})
        if request.url.path == "/api/v1/events/list":
            return httpx.Response(200, json={"events": [], "total_count": total_count})
        return httpx.Response(404)

    return handler


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment variables out of settings resolution."""
    for name in list(os.environ):
        if name.startswith("PIPECTL_"):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Generator[None]:
    """--verbose enables telemetry for the whole context; switch it back off."""
    yield
    disable_telemetry()


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    pipe = logging.getLogger("pipectl")
    pipe_level = pipe.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    pipe.setLevel(pipe_level)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Checkout with the ingestion API's YAML config in place."""
    config = tmp_path / "internal" / "config" / "config.yaml"
    config.parent.mkdir(parents=True)
    config.write_text(CONFIG_YAML, encoding="utf-8")
    return tmp_path


@pytest.fixture
def settings(project_root: Path) -> PipeSettings:
    return PipeSettings.from_cli(project_root=project_root)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def topic_admin() -> FakeTopicAdmin:
    return FakeTopicAdmin()


@pytest.fixture
def compose() -> FakeCompose:
    return healthy_compose()


@pytest.fixture
def api_handler() -> ApiHandler:
    """Override in a test module to change the API's behavior."""
    return pipeline_handler()


@pytest.fixture
def make_runtime(
    settings: PipeSettings,
    clock: FakeClock,
    topic_admin: FakeTopicAdmin,
    compose: FakeCompose,
    api_handler: ApiHandler,
) -> Generator[Callable[..., Runtime]]:
    """Factory for a Runtime wired to fakes; keyword overrides replace any of them."""
    created: list[Runtime] = []

    def factory(**overrides: Any) -> Runtime:
        handler = overrides.pop("api_handler", api_handler)
        cfg = overrides.get("settings", settings).api
        api = EventApiClient(
            cfg.base_url,
            cfg.api_key,
            transport=httpx.MockTransport(handler),
        )
        runtime = Runtime(
            overrides.pop("settings", settings),
            topic_admin=overrides.pop("topic_admin", topic_admin),
            compose=overrides.pop("compose", compose),
            api=api,
            clock=clock,
            sleep=clock.sleep,
        )
        created.append(runtime)
        return runtime

    yield factory
    for runtime in created:
        runtime.close()


@pytest.fixture
def runtime(make_runtime: Callable[..., Runtime]) -> Runtime:
    return make_runtime()


@pytest.fixture
def cli_env(
    project_root: Path,
    runtime: Runtime,
    monkeypatch: pytest.MonkeyPatch,
) -> Runtime:
    """Run CLI commands from *project_root* against the faked runtime."""
    monkeypatch.chdir(project_root)
    monkeypatch.setattr("pipectl.infrastructure.runtime.Runtime", lambda settings: runtime)
    return runtime


def all_topics() -> set[str]:
    return set(DEFAULT_TOPICS)
