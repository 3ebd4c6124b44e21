"""Runtime — the single dependency injected into every service.

Owns the adapters for the external pipeline: Kafka topic admin, the
Docker Compose runtime, the event API client, and the credential config
file. Each is built lazily from settings on first access so ``--help``
and commands that do not need a given collaborator never touch it.
Tests pass pre-built fakes through the constructor.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from pipectl.domain.topology import Topology
from pipectl.infrastructure.config_file import ConfigResource
from pipectl.infrastructure.retry import Cancelled, Clock, Deadline, Sleeper

if TYPE_CHECKING:
    from pipectl.config.settings import PipeSettings
    from pipectl.infrastructure.api import EventApiClient
    from pipectl.infrastructure.compose import ComposeRuntime
    from pipectl.infrastructure.kafka import TopicAdmin


class Runtime:
    """Lazily-wired collaborators plus the run's cancel event.

    Args:
        settings: Resolved settings.
        topic_admin: Override for the Kafka admin adapter.
        compose: Override for the compose adapter.
        api: Override for the event API client.
        clock: Monotonic time source for deadlines.
        sleep: Sleep override; None waits on :attr:`cancel_event`.
    """

    def __init__(
        self,
        settings: PipeSettings,
        *,
        topic_admin: TopicAdmin | None = None,
        compose: ComposeRuntime | None = None,
        api: EventApiClient | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper | None = None,
    ) -> None:
        self.settings = settings
        self.topology = Topology.from_config(settings.topology)
        self.cancel_event = threading.Event()
        self._topic_admin = topic_admin
        self._compose = compose
        self._api = api
        self._clock = clock
        self._sleep = sleep

    @property
    def topic_admin(self) -> TopicAdmin:
        if self._topic_admin is None:
            from pipectl.infrastructure.kafka import KafkaTopicAdmin

            self._topic_admin = KafkaTopicAdmin(
                self.settings.kafka.bootstrap_servers,
                timeout=self.settings.kafka.request_timeout,
            )
        return self._topic_admin

    @property
    def compose(self) -> ComposeRuntime:
        if self._compose is None:
            from pipectl.infrastructure.compose import ComposeRuntime

            cfg = self.settings.compose
            self._compose = ComposeRuntime(
                self.settings.resolve_path(cfg.project_dir),
                command=cfg.command,
                timeout=cfg.command_timeout,
            )
        return self._compose

    @property
    def api(self) -> EventApiClient:
        """The event API client configured from the ``[api]`` section."""
        if self._api is None:
            from pipectl.infrastructure.api import EventApiClient

            cfg = self.settings.api
            self._api = EventApiClient(cfg.base_url, cfg.api_key, timeout=cfg.request_timeout)
        return self._api

    @contextmanager
    def open_api(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
    ) -> Iterator[EventApiClient]:
        """Yield an API client, honoring per-call overrides.

        Without overrides this is :attr:`api`. Overrides get a dedicated
        client that is closed on exit.
        """
        cfg = self.settings.api
        same_url = base_url is None or base_url.rstrip("/") == cfg.base_url.rstrip("/")
        same_key = api_key is None or api_key == cfg.api_key
        if same_url and same_key:
            yield self.api
            return

        from pipectl.infrastructure.api import EventApiClient

        client = EventApiClient(
            base_url or cfg.base_url,
            api_key or cfg.api_key,
            timeout=cfg.request_timeout,
        )
        try:
            yield client
        finally:
            client.close()

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise Cancelled

    def config_resource(self) -> ConfigResource:
        cfg = self.settings.credential
        return ConfigResource(
            self.settings.resolve_path(cfg.config_path),
            backup_suffix=cfg.backup_suffix,
        )

    def deadline(self, timeout: float) -> Deadline:
        """A cancellable deadline on this runtime's clock."""
        return Deadline(timeout, clock=self._clock, sleep=self._sleep, cancel=self.cancel_event)

    def close(self) -> None:
        if self._api is not None:
            self._api.close()
