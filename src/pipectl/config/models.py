"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, pipectl.toml only contains
overrides. A stock local deployment needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from pipectl.domain.topology import (
    DEFAULT_APPLICATION_SERVICES,
    DEFAULT_INFRASTRUCTURE_SERVICES,
    DEFAULT_PARTITIONS,
    DEFAULT_REPLICATION_FACTOR,
    DEFAULT_TOPICS,
)

# --- pipectl.toml sections ---


class ApiConfig(BaseModel):
    """[api] section."""

    model_config = {"frozen": True}

    base_url: str = "http://localhost:8080"
    api_key: str = "sk_local_setup_key"
    request_timeout: float = 5.0


class KafkaConfig(BaseModel):
    """[kafka] section."""

    model_config = {"frozen": True}

    bootstrap_servers: str = "localhost:9092"
    request_timeout: float = 10.0


class ComposeConfig(BaseModel):
    """[compose] section."""

    model_config = {"frozen": True}

    command: list[str] = Field(default_factory=lambda: ["docker", "compose"])
    project_dir: str = "."
    startup_grace: float = 15.0
    command_timeout: float = 600.0


class TopicConfig(BaseModel):
    """One entry of [[topology.topics]]."""

    model_config = {"frozen": True}

    name: str
    partitions: int = DEFAULT_PARTITIONS
    replication_factor: int = DEFAULT_REPLICATION_FACTOR


class TopologyConfig(BaseModel):
    """[topology] section."""

    model_config = {"frozen": True}

    topics: list[TopicConfig] = Field(
        default_factory=lambda: [TopicConfig(name=name) for name in DEFAULT_TOPICS]
    )
    infrastructure_services: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INFRASTRUCTURE_SERVICES), min_length=1
    )
    application_services: list[str] = Field(
        default_factory=lambda: list(DEFAULT_APPLICATION_SERVICES)
    )


class ReadinessConfig(BaseModel):
    """[readiness] section."""

    model_config = {"frozen": True}

    timeout: float = Field(default=300.0, ge=0)
    poll_interval: float = Field(default=5.0, gt=0)
    unknown_is_healthy: bool = True


class VerifyConfig(BaseModel):
    """[verify] section."""

    model_config = {"frozen": True}

    timeout: float = Field(default=60.0, ge=0)
    liveness_attempts: int = Field(default=30, ge=1)
    liveness_interval: float = Field(default=2.0, ge=0)
    liveness_backoff: float = Field(default=1.0, ge=1.0)
    propagation_grace: float = Field(default=8.0, ge=0)
    list_limit: int = Field(default=10, ge=1)
    environment_prefix: str = "env_test_setup"
    auto_remediate: bool = True
    api_service: str = "flexprice-api"
    consumer_service: str = "flexprice-consumer"
    consumer_log_tail: int = 10
    storage_check: bool = True
    storage_service: str = "clickhouse"
    storage_table: str = "events"


class CredentialConfig(BaseModel):
    """[credential] section."""

    model_config = {"frozen": True}

    config_path: str = "internal/config/config.yaml"
    table_path: str = "auth.api_key.keys"
    backup_suffix: str = ".backup"
    tenant_id: str = "00000000-0000-0000-0000-000000000000"
    user_id: str = "00000000-0000-0000-0000-000000000000"
    name: str = "Working API Key"
    is_active: bool = True
