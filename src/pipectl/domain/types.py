"""State and classification enums shared across layers."""

from __future__ import annotations

from enum import StrEnum


class HealthState(StrEnum):
    """Observed health of a compose service.

    Derived only from polling the container runtime; never written.
    """

    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class StepStatus(StrEnum):
    """Outcome of a single verification step."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class StepName(StrEnum):
    """Verification steps in execution order."""

    LIVENESS = "liveness"
    INGESTION = "ingestion"
    PROPAGATION = "propagation"
    RETRIEVAL = "retrieval"
    TOPICS = "topics"
    SERVICES = "services"
    STORAGE = "storage"


# Steps whose failure fails the whole verification run.
HARD_STEPS: frozenset[StepName] = frozenset(
    {StepName.LIVENESS, StepName.INGESTION, StepName.TOPICS, StepName.SERVICES}
)
