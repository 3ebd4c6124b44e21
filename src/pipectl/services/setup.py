"""SetupService — top-level driver for ``setup`` and ``reset``.

Stage order: (teardown on reset) → credential → build → infrastructure
up → readiness → topics → topic listing → application up → startup
grace. The first failing stage stops the run; its error is returned with
``detail["stage"]`` naming it and ``detail["stages"]`` listing what
already completed.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from pipectl.infrastructure.compose import ComposeError
from pipectl.infrastructure.retry import Cancelled
from pipectl.services.base import BaseService
from pipectl.services.provision import ProvisionService
from pipectl.services.readiness import ReadinessService
from pipectl.services.result import (
    CANCELLED,
    COMPOSE_FAILED,
    ServiceError,
    ServiceResult,
    failure,
)
from pipectl.services.telemetry import trace_span, traced

log = structlog.get_logger(__name__)


class _StageFailed(Exception):
    def __init__(self, stage: str, result: ServiceResult) -> None:
        super().__init__(stage)
        self.stage = stage
        self.result = result


class SetupService(BaseService):
    """Brings a fresh checkout of the pipeline to a verified-ready state."""

    @traced
    def setup(self, *, build: bool = True, timeout: float | None = None) -> ServiceResult:
        """Provision and start the pipeline.

        Args:
            build: Run ``docker compose build`` first.
            timeout: Readiness timeout override in seconds.
        """
        return self._run("setup", build=build, timeout=timeout)

    @traced
    def reset(self, *, build: bool = True, timeout: float | None = None) -> ServiceResult:
        """Tear the deployment down (volumes included) and set it up again."""
        return self._run("reset", build=build, timeout=timeout, teardown=True)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def _run(
        self,
        op: str,
        *,
        build: bool,
        timeout: float | None,
        teardown: bool = False,
    ) -> ServiceResult:
        stages: list[dict[str, Any]] = []
        warnings: list[str] = []
        compose = self._runtime.compose
        topology = self._runtime.topology
        provision = ProvisionService(self._runtime)

        try:
            if teardown:
                self._compose_stage("teardown", lambda: compose.down(volumes=True), stages)

            credential = self._stage("credential", provision.ensure_credential(), stages)
            if build:
                self._compose_stage("build", compose.build, stages)
            infra = sorted(topology.infrastructure_services())
            self._compose_stage("infrastructure", lambda: compose.up(infra), stages)

            self._stage(
                "readiness",
                ReadinessService(self._runtime).wait_until_ready(infra, timeout=timeout),
                stages,
            )
            self._stage("topics", provision.ensure_topics(), stages)
            listing = self._stage("topic_list", provision.list_topics(), stages)
            if listing.data["missing"]:
                missing = ", ".join(listing.data["missing"])
                warnings.append(f"Topics still missing after provisioning: {missing}")

            self._compose_stage("services", compose.up, stages)
            grace = self.settings.compose.startup_grace
            with trace_span("startup_grace"):
                self._runtime.deadline(grace).sleep(grace)
            stages.append({"stage": "startup_grace", "seconds": grace})
        except _StageFailed as exc:
            return self._abort(op, exc.stage, exc.result, stages, warnings)
        except Cancelled:
            return failure(op, CANCELLED, f"{op} was cancelled", stages=stages)

        log.info(f"{op}.complete", stages=[s["stage"] for s in stages])
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "stages": stages,
                "topics": listing.data["topics"],
                "credential_changed": credential.data["changed"],
                "api_url": self.settings.api.base_url,
            },
            warnings=warnings,
        )

    @staticmethod
    def _stage(name: str, result: ServiceResult, stages: list[dict[str, Any]]) -> ServiceResult:
        if not result.ok:
            raise _StageFailed(name, result)
        stages.append({"stage": name, **result.data})
        return result

    def _compose_stage(
        self,
        name: str,
        action: Callable[[], None],
        stages: list[dict[str, Any]],
    ) -> None:
        self._runtime.check_cancelled()
        try:
            with trace_span(name):
                action()
        except ComposeError as exc:
            raise _StageFailed(
                name,
                failure(
                    name,
                    COMPOSE_FAILED,
                    str(exc),
                    remediation=(
                        "Check Docker is running and the compose file is valid "
                        "(`docker compose config`)"
                    ),
                    command=exc.command,
                    returncode=exc.returncode,
                ),
            ) from exc
        stages.append({"stage": name})

    @staticmethod
    def _abort(
        op: str,
        stage: str,
        result: ServiceResult,
        stages: list[dict[str, Any]],
        warnings: list[str],
    ) -> ServiceResult:
        error = result.error or ServiceError(code="UNKNOWN", message="stage failed")
        log.warning(f"{op}.failed", stage=stage, code=error.code)
        return ServiceResult(
            ok=False,
            op=op,
            warnings=[*warnings, *result.warnings],
            error=ServiceError(
                code=error.code,
                message=f"{stage}: {error.message}",
                detail={**error.detail, "stage": stage, "stages": stages},
            ),
        )
