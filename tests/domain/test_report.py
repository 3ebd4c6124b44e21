"""Tests for the verification report model."""

from pipectl.domain.report import VerificationReport, VerificationStep
from pipectl.domain.types import StepName, StepStatus


def _step(name: StepName, status: StepStatus) -> VerificationStep:
    return VerificationStep(name=name, status=status, detail=f"{name} {status}")


class TestVerificationStep:
    def test_hard_classification(self) -> None:
        assert _step(StepName.LIVENESS, StepStatus.PASSED).hard is True
        assert _step(StepName.RETRIEVAL, StepStatus.PASSED).hard is False
        assert _step(StepName.STORAGE, StepStatus.PASSED).hard is False

    def test_warning_is_not_passed(self) -> None:
        assert _step(StepName.TOPICS, StepStatus.WARNING).passed is False


class TestVerificationReport:
    def test_all_hard_passed_with_soft_warning(self) -> None:
        report = VerificationReport(
            run_id="r1",
            environment_id="env",
            steps=(
                _step(StepName.LIVENESS, StepStatus.PASSED),
                _step(StepName.INGESTION, StepStatus.PASSED),
                _step(StepName.RETRIEVAL, StepStatus.WARNING),
                _step(StepName.TOPICS, StepStatus.PASSED),
                _step(StepName.SERVICES, StepStatus.PASSED),
            ),
        )
        assert report.overall_passed is True
        assert report.failed_steps() == []

    def test_hard_failure_fails_run(self) -> None:
        report = VerificationReport(
            run_id="r1",
            environment_id="env",
            steps=(
                _step(StepName.LIVENESS, StepStatus.PASSED),
                _step(StepName.SERVICES, StepStatus.FAILED),
            ),
        )
        assert report.overall_passed is False
        assert [s.name for s in report.failed_steps()] == [StepName.SERVICES]

    def test_empty_report_does_not_pass(self) -> None:
        assert VerificationReport(run_id="r", environment_id="e").overall_passed is False

    def test_dump_includes_computed_fields(self) -> None:
        report = VerificationReport(
            run_id="r1",
            environment_id="env",
            steps=(_step(StepName.LIVENESS, StepStatus.PASSED),),
        )
        payload = report.model_dump(mode="json")
        assert payload["overall_passed"] is True
        assert payload["steps"][0]["name"] == "liveness"
        assert payload["steps"][0]["hard"] is True
