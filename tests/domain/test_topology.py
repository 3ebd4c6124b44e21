"""Tests for the topology definition."""

import pytest
from pydantic import ValidationError

from pipectl.config.models import TopicConfig, TopologyConfig
from pipectl.domain.topology import TopicSpec, Topology


class TestTopicSpec:
    def test_defaults(self) -> None:
        spec = TopicSpec(name="events")
        assert spec.partitions == 3
        assert spec.replication_factor == 1

    @pytest.mark.parametrize(
        "kwargs",
        [{"name": ""}, {"name": "events", "partitions": 0}, {"name": "events", "replication_factor": 0}],
    )
    def test_rejects_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValidationError):
            TopicSpec(**kwargs)

    def test_hashable(self) -> None:
        assert len({TopicSpec(name="a"), TopicSpec(name="a")}) == 1


class TestTopology:
    def test_default_topology(self) -> None:
        topology = Topology()
        assert len(topology.topics) == 5
        assert "system_events" in topology.topic_names()
        assert topology.infrastructure_services() == {"postgres", "kafka", "clickhouse", "temporal"}
        assert topology.required_services() == {
            "postgres",
            "kafka",
            "clickhouse",
            "temporal",
            "flexprice-api",
            "flexprice-consumer",
        }

    def test_duplicate_topic_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate topic"):
            Topology(topics=(TopicSpec(name="events"), TopicSpec(name="events", partitions=6)))

    def test_empty_infrastructure_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 1"):
            Topology(infrastructure=())

    def test_from_config(self) -> None:
        config = TopologyConfig(
            topics=[TopicConfig(name="events", partitions=6)],
            infrastructure_services=["kafka"],
            application_services=[],
        )
        topology = Topology.from_config(config)
        assert topology.required_topics() == {TopicSpec(name="events", partitions=6)}
        assert topology.required_services() == {"kafka"}

    def test_from_default_config_matches_default(self) -> None:
        assert Topology.from_config(TopologyConfig()) == Topology()
