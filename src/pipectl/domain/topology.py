"""Topology definition — required Kafka topics and compose services.

Pure data with construction-time validation. The default topology
mirrors the pipeline's stock docker-compose deployment.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from pipectl.config.models import TopologyConfig

DEFAULT_TOPICS: tuple[str, ...] = (
    "events",
    "events_post_processing",
    "events_post_processing_backfill",
    "feature_tracking_service_backfill",
    "system_events",
)
DEFAULT_PARTITIONS = 3
DEFAULT_REPLICATION_FACTOR = 1

DEFAULT_INFRASTRUCTURE_SERVICES: tuple[str, ...] = ("postgres", "kafka", "clickhouse", "temporal")
DEFAULT_APPLICATION_SERVICES: tuple[str, ...] = ("flexprice-api", "flexprice-consumer")


class TopicSpec(BaseModel):
    """A Kafka topic the pipeline needs. Hashable and immutable."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    partitions: int = Field(default=DEFAULT_PARTITIONS, ge=1)
    replication_factor: int = Field(default=DEFAULT_REPLICATION_FACTOR, ge=1)


class Topology(BaseModel):
    """Static declaration of required topics and service dependencies.

    Infrastructure services must be healthy before topics are provisioned;
    application services are started afterwards and only audited.
    """

    model_config = {"frozen": True}

    topics: tuple[TopicSpec, ...] = Field(
        default_factory=lambda: tuple(TopicSpec(name=name) for name in DEFAULT_TOPICS)
    )
    # never empty: `docker compose up` with no names starts every service
    infrastructure: tuple[str, ...] = Field(default=DEFAULT_INFRASTRUCTURE_SERVICES, min_length=1)
    application: tuple[str, ...] = DEFAULT_APPLICATION_SERVICES

    @model_validator(mode="after")
    def _unique_topic_names(self) -> Self:
        seen: set[str] = set()
        for spec in self.topics:
            if spec.name in seen:
                msg = f"Duplicate topic name in topology: {spec.name!r}"
                raise ValueError(msg)
            seen.add(spec.name)
        return self

    @classmethod
    def from_config(cls, config: TopologyConfig) -> Topology:
        """Build a topology from the ``[topology]`` settings section."""
        return cls(
            topics=tuple(
                TopicSpec(
                    name=t.name,
                    partitions=t.partitions,
                    replication_factor=t.replication_factor,
                )
                for t in config.topics
            ),
            infrastructure=tuple(config.infrastructure_services),
            application=tuple(config.application_services),
        )

    def required_topics(self) -> frozenset[TopicSpec]:
        return frozenset(self.topics)

    def topic_names(self) -> frozenset[str]:
        return frozenset(t.name for t in self.topics)

    def infrastructure_services(self) -> frozenset[str]:
        return frozenset(self.infrastructure)

    def required_services(self) -> frozenset[str]:
        return frozenset(self.infrastructure) | frozenset(self.application)
