"""ServiceResult and ServiceError — the universal service contract.

INVARIANT: All service-layer methods return ServiceResult.
Infrastructure adapters raise typed exceptions; services convert them
into a ServiceError whose ``detail["remediation"]`` tells the operator
what to do next.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# Error codes. The CLI maps each to a distinct exit code.
READINESS_TIMEOUT = "READINESS_TIMEOUT"
PROVISION_FAILED = "PROVISION_FAILED"
CONFIG_WRITE_FAILED = "CONFIG_WRITE_FAILED"
COMPOSE_FAILED = "COMPOSE_FAILED"
VERIFICATION_FAILED = "VERIFICATION_FAILED"
CANCELLED = "CANCELLED"


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @property
    def remediation(self) -> str | None:
        value = self.detail.get("remediation")
        return str(value) if value else None


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"ensure_topics"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing, telemetry).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None


def failure(
    op: str,
    code: str,
    message: str,
    *,
    remediation: str | None = None,
    warnings: list[str] | None = None,
    **detail: Any,
) -> ServiceResult:
    """Build a failed ServiceResult."""
    if remediation:
        detail["remediation"] = remediation
    return ServiceResult(
        ok=False,
        op=op,
        warnings=warnings or [],
        error=ServiceError(code=code, message=message, detail=detail),
    )
