"""ReadinessService — bounded polling until services report healthy."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

import structlog

from pipectl.domain.types import HealthState
from pipectl.infrastructure.compose import ComposeError
from pipectl.infrastructure.retry import Cancelled
from pipectl.services.base import BaseService
from pipectl.services.result import CANCELLED, READINESS_TIMEOUT, ServiceResult, failure
from pipectl.services.telemetry import annotate, traced

log = structlog.get_logger(__name__)

HealthProbe = Callable[[frozenset[str]], Mapping[str, HealthState]]


def is_ready(state: HealthState, *, unknown_is_healthy: bool) -> bool:
    """Readiness policy for a single observed state.

    UNKNOWN (running, no healthcheck defined) counts only when configured.
    """
    if state is HealthState.HEALTHY:
        return True
    return state is HealthState.UNKNOWN and unknown_is_healthy


class ReadinessService(BaseService):
    """Waits for compose services to become healthy. Observation only."""

    @traced
    def wait_until_ready(
        self,
        services: Iterable[str] | None = None,
        *,
        timeout: float | None = None,
        poll_interval: float | None = None,
        probe: HealthProbe | None = None,
        unknown_is_healthy: bool | None = None,
    ) -> ServiceResult:
        """Poll *probe* until every service is ready or *timeout* elapses.

        Defaults come from the ``[readiness]`` section; *services* defaults
        to the topology's infrastructure services and *probe* to
        ``docker compose ps``. A probe failure is retried until the deadline.
        """
        op = "wait_until_ready"
        cfg = self.settings.readiness
        targets = (
            frozenset(services)
            if services is not None
            else self._runtime.topology.infrastructure_services()
        )
        timeout = cfg.timeout if timeout is None else timeout
        interval = cfg.poll_interval if poll_interval is None else poll_interval
        unknown_ok = cfg.unknown_is_healthy if unknown_is_healthy is None else unknown_is_healthy
        if probe is None:
            probe = self._runtime.compose.service_health

        deadline = self._runtime.deadline(timeout)
        polls = 0
        health: dict[str, HealthState] = {}
        last_error: str | None = None
        try:
            while True:
                polls += 1
                try:
                    health = dict(probe(targets)) if targets else {}
                    last_error = None
                except ComposeError as exc:
                    last_error = str(exc)
                    health = {}
                    log.warning("readiness.probe_failed", error=last_error, poll=polls)

                pending = {
                    name: health.get(name, HealthState.STARTING)
                    for name in sorted(targets)
                    if not is_ready(
                        health.get(name, HealthState.STARTING), unknown_is_healthy=unknown_ok
                    )
                }
                if not pending:
                    annotate(polls=polls)
                    log.info("readiness.ready", services=sorted(targets), polls=polls)
                    return ServiceResult(
                        ok=True,
                        op=op,
                        data={
                            "services": sorted(targets),
                            "elapsed": round(deadline.elapsed, 2),
                            "polls": polls,
                        },
                    )

                if deadline.expired:
                    names = ", ".join(pending)
                    return failure(
                        op,
                        READINESS_TIMEOUT,
                        f"Services not healthy after {timeout:g}s: {names}",
                        remediation=(
                            "Inspect `docker compose ps` and `docker compose logs <service>`, "
                            "then re-run `pipectl setup` or raise readiness.timeout"
                        ),
                        elapsed=round(deadline.elapsed, 2),
                        unhealthy_services={k: v.value for k, v in pending.items()},
                        last_error=last_error,
                    )

                log.debug(
                    "readiness.waiting",
                    pending=sorted(pending),
                    ready=len(targets) - len(pending),
                    total=len(targets),
                    elapsed=round(deadline.elapsed, 2),
                )
                deadline.sleep(interval)
        except Cancelled:
            return failure(
                op,
                CANCELLED,
                "Wait for services was cancelled",
                elapsed=round(deadline.elapsed, 2),
                last_observed={k: v.value for k, v in health.items()},
            )
