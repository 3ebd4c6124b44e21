"""Kafka topic administration via confluent-kafka's AdminClient.

``create_topics`` submits every spec in one request; the broker creates
them concurrently and each topic resolves through its own future, so an
"already exists" answer for one topic never masks a result for another.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from confluent_kafka import KafkaError, KafkaException
from confluent_kafka.admin import AdminClient, NewTopic

from pipectl.domain.topology import TopicSpec

logger = logging.getLogger(__name__)


class TopicAdminError(Exception):
    """The broker could not be reached or rejected an admin request."""


@dataclass
class TopicCreation:
    """Aggregate outcome of a create-if-absent batch."""

    created: set[str] = field(default_factory=set)
    existing: set[str] = field(default_factory=set)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class TopicAdmin(Protocol):
    """Broker administration capability used by the provisioner."""

    def list_topics(self) -> set[str]: ...

    def create_topics(self, specs: Iterable[TopicSpec]) -> TopicCreation: ...


class KafkaTopicAdmin:
    """TopicAdmin backed by a confluent-kafka AdminClient.

    Args:
        bootstrap_servers: Broker address list.
        timeout: Seconds to wait for metadata and create requests.
        client: Pre-built AdminClient (tests inject a stand-in).
    """

    def __init__(
        self,
        bootstrap_servers: str,
        *,
        timeout: float = 10.0,
        client: Any | None = None,
    ) -> None:
        self._bootstrap = bootstrap_servers
        self._timeout = timeout
        self._client = client or AdminClient({"bootstrap.servers": bootstrap_servers})

    def list_topics(self) -> set[str]:
        """Return user topic names (internal ``__``-prefixed topics excluded)."""
        try:
            metadata = self._client.list_topics(timeout=self._timeout)
        except KafkaException as exc:
            msg = f"Kafka broker at {self._bootstrap} unreachable: {exc}"
            raise TopicAdminError(msg) from exc
        return {name for name in metadata.topics if not name.startswith("__")}

    def create_topics(self, specs: Iterable[TopicSpec]) -> TopicCreation:
        new_topics = [
            NewTopic(
                spec.name,
                num_partitions=spec.partitions,
                replication_factor=spec.replication_factor,
            )
            for spec in sorted(specs, key=lambda s: s.name)
        ]
        outcome = TopicCreation()
        if not new_topics:
            return outcome

        try:
            futures = self._client.create_topics(
                new_topics,
                operation_timeout=self._timeout,
                request_timeout=self._timeout,
            )
        except KafkaException as exc:
            msg = f"Kafka broker at {self._bootstrap} rejected create request: {exc}"
            raise TopicAdminError(msg) from exc

        for name, future in futures.items():
            try:
                future.result()
            except KafkaException as exc:
                error = exc.args[0] if exc.args else None
                if isinstance(error, KafkaError) and error.code() == KafkaError.TOPIC_ALREADY_EXISTS:
                    outcome.existing.add(name)
                else:
                    outcome.failures[name] = str(exc)
                continue
            logger.debug("Created topic %s", name)
            outcome.created.add(name)
        return outcome
