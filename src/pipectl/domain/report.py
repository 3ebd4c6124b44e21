"""Verification report — the structured outcome of a ``verify`` run.

Steps are appended by the verifier while the run is in progress; the
report is frozen once built.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, computed_field

from pipectl.domain.types import HARD_STEPS, StepName, StepStatus


class VerificationStep(BaseModel):
    """Outcome of one verification step."""

    model_config = {"frozen": True}

    name: StepName
    status: StepStatus
    detail: str = ""
    remediation: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hard(self) -> bool:
        return self.name in HARD_STEPS

    @computed_field  # type: ignore[prop-decorator]
    @property
    def passed(self) -> bool:
        return self.status is StepStatus.PASSED


class VerificationReport(BaseModel):
    """Ordered step outcomes for a single run.

    ``overall_passed`` is true only when every hard step passed; soft
    steps (retrieval, propagation, storage) never fail a run by themselves.
    """

    model_config = {"frozen": True}

    run_id: str
    environment_id: str
    steps: tuple[VerificationStep, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall_passed(self) -> bool:
        hard = [s for s in self.steps if s.hard]
        return bool(hard) and all(s.passed for s in hard)

    def failed_steps(self) -> list[VerificationStep]:
        return [s for s in self.steps if s.hard and not s.passed]
