"""VerifyService — end-to-end verification of a running pipeline.

Runs seven independent steps and aggregates them into a
:class:`VerificationReport`. A failing step is recorded and the run moves
on, so one report shows everything that is wrong at once:

1. liveness     — the API answers ``/health`` (bounded retries)
2. ingestion    — a synthetic event is accepted (2xx)
3. propagation  — grace period for async processing; consumer log scan
4. retrieval    — the event is queryable (zero results is only a warning)
5. topics       — required topics exist, optionally auto-created
6. services     — required compose services are running
7. storage      — ClickHouse answers queries (soft)

Only liveness, ingestion, topics, and services decide the overall result.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from pipectl.domain.report import VerificationReport, VerificationStep
from pipectl.domain.types import StepName, StepStatus
from pipectl.infrastructure.api import ApiRequestError
from pipectl.infrastructure.compose import ComposeError
from pipectl.infrastructure.kafka import TopicAdminError
from pipectl.infrastructure.retry import Cancelled, Deadline, RetryPolicy
from pipectl.services.base import BaseService
from pipectl.services.provision import ProvisionService
from pipectl.services.result import CANCELLED, VERIFICATION_FAILED, ServiceResult, failure
from pipectl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from pipectl.infrastructure.api import EventApiClient

log = structlog.get_logger(__name__)

EVENT_TYPE = "setup_test"
_ERROR_LINE = re.compile(r"error", re.IGNORECASE)
_MAX_LOG_LINES = 3


def new_environment_id(prefix: str) -> str:
    """A fresh identifier so runs never see each other's events."""
    return f"{prefix}_{int(time.time())}_{uuid4().hex[:8]}"


def _body_excerpt(text: str, limit: int = 200) -> str:
    text = text.strip()
    return text if len(text) <= limit else f"{text[:limit]}…"


def _record(
    steps: list[VerificationStep], name: str, check: Callable[[], VerificationStep]
) -> VerificationStep:
    with trace_span(name) as span:
        step = check()
        if span is not None:
            span.annotate("status", str(step.status))
    steps.append(step)
    return step


class VerifyService(BaseService):
    """Exercises the ingestion path and audits the deployment."""

    @traced
    def verify(
        self,
        base_url: str | None = None,
        credential_key: str | None = None,
        environment_id: str | None = None,
        timeout: float | None = None,
        *,
        auto_remediate: bool | None = None,
    ) -> ServiceResult:
        """Run every verification step and report.

        Args:
            base_url: API root; defaults to ``api.base_url``.
            credential_key: Value for the ``x-api-key`` header.
            environment_id: Prefix for the generated environment id.
            timeout: Upper bound for the liveness step, in seconds.
            auto_remediate: Create missing topics during the topic audit.
        """
        op = "verify"
        cfg = self.settings.verify
        timeout = cfg.timeout if timeout is None else timeout
        remediate = cfg.auto_remediate if auto_remediate is None else auto_remediate
        env_id = new_environment_id(environment_id or cfg.environment_prefix)
        run_id = uuid4().hex[:12]
        steps: list[VerificationStep] = []

        log.info("verify.start", run_id=run_id, environment_id=env_id)
        try:
            with self._runtime.open_api(base_url, credential_key) as api:
                deadline = self._runtime.deadline(timeout)
                _record(steps, "liveness", lambda: self._check_liveness(api, deadline))
                ingestion = _record(steps, "ingestion", lambda: self._check_ingestion(api, env_id))
                _record(
                    steps,
                    "propagation",
                    lambda: self._wait_for_propagation(ingested=ingestion.passed),
                )
                _record(steps, "retrieval", lambda: self._check_retrieval(api, env_id))
            _record(steps, "topics", lambda: self._audit_topics(auto_remediate=remediate))
            _record(steps, "services", self._audit_services)
            if cfg.storage_check:
                _record(steps, "storage", self._check_storage)
        except Cancelled:
            partial = VerificationReport(run_id=run_id, environment_id=env_id, steps=tuple(steps))
            return failure(
                op,
                CANCELLED,
                "Verification was cancelled",
                report=partial.model_dump(mode="json"),
            )

        report = VerificationReport(run_id=run_id, environment_id=env_id, steps=tuple(steps))
        warnings = [f"{s.name}: {s.detail}" for s in report.steps if s.status is StepStatus.WARNING]
        payload = report.model_dump(mode="json")
        log.info("verify.done", run_id=run_id, passed=report.overall_passed)

        if report.overall_passed:
            return ServiceResult(ok=True, op=op, data={"report": payload}, warnings=warnings)

        failed = report.failed_steps()
        hints = [s.remediation for s in failed if s.remediation]
        return failure(
            op,
            VERIFICATION_FAILED,
            "Failed checks: " + ", ".join(s.name for s in failed),
            remediation="; ".join(hints) if hints else None,
            warnings=warnings,
            report=payload,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _check_liveness(self, api: EventApiClient, deadline: Deadline) -> VerificationStep:
        cfg = self.settings.verify
        policy = RetryPolicy(
            max_attempts=cfg.liveness_attempts,
            interval=cfg.liveness_interval,
            backoff=cfg.liveness_backoff,
        )
        url = f"{api.base_url}/health"
        attempts = 0
        last_problem = "no attempt made"
        for attempt in policy.attempts(deadline):
            attempts = attempt
            try:
                response = api.health()
            except ApiRequestError as exc:
                last_problem = str(exc)
                log.debug("liveness.retry", attempt=attempt, error=last_problem)
                continue
            if response.status_code < 500:
                return VerificationStep(
                    name=StepName.LIVENESS,
                    status=StepStatus.PASSED,
                    detail=f"{url} responded with HTTP {response.status_code}",
                    data={"attempts": attempt, "status_code": response.status_code},
                )
            last_problem = f"HTTP {response.status_code}"
            log.debug("liveness.retry", attempt=attempt, status_code=response.status_code)

        return VerificationStep(
            name=StepName.LIVENESS,
            status=StepStatus.FAILED,
            detail=f"{url} did not respond after {attempts} attempts ({last_problem})",
            remediation=(
                f"Check the API container: `docker compose logs {cfg.api_service}`; "
                "start it with `docker compose up -d`"
            ),
            data={"attempts": attempts},
        )

    def _check_ingestion(self, api: EventApiClient, environment_id: str) -> VerificationStep:
        api_service = self.settings.verify.api_service
        properties = {
            "test": "setup_verification",
            "timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "setup_id": str(uuid4()),
        }
        try:
            response = api.send_event(environment_id, EVENT_TYPE, properties)
        except ApiRequestError as exc:
            return VerificationStep(
                name=StepName.INGESTION,
                status=StepStatus.FAILED,
                detail=f"Failed to connect to the API: {exc}",
                remediation="Is the API running? Try `docker compose ps`",
            )

        data = {"status_code": response.status_code, "environment_id": environment_id}
        if response.is_success:
            return VerificationStep(
                name=StepName.INGESTION,
                status=StepStatus.PASSED,
                detail=f"Event accepted (HTTP {response.status_code})",
                data=data,
            )
        return VerificationStep(
            name=StepName.INGESTION,
            status=StepStatus.FAILED,
            detail=(
                f"Event rejected (HTTP {response.status_code}): {_body_excerpt(response.text)}"
            ),
            remediation=(
                "Check the API key is configured (`pipectl provision`) and the API logs: "
                f"`docker compose logs {api_service}`"
            ),
            data=data,
        )

    def _wait_for_propagation(self, *, ingested: bool) -> VerificationStep:
        cfg = self.settings.verify
        if not ingested:
            return VerificationStep(
                name=StepName.PROPAGATION,
                status=StepStatus.WARNING,
                detail="Skipped grace period: no event was ingested",
            )

        error_lines: list[str] = []
        logs_checked = True
        try:
            logs = self._runtime.compose.logs(cfg.consumer_service, tail=cfg.consumer_log_tail)
            error_lines = [ln.strip() for ln in logs.splitlines() if _ERROR_LINE.search(ln)]
        except ComposeError as exc:
            logs_checked = False
            log.debug("propagation.logs_unavailable", error=str(exc))

        grace = cfg.propagation_grace
        self._runtime.deadline(grace).sleep(grace)

        if error_lines:
            shown = error_lines[-_MAX_LOG_LINES:]
            return VerificationStep(
                name=StepName.PROPAGATION,
                status=StepStatus.WARNING,
                detail=f"Waited {grace:g}s; consumer errors detected: " + " | ".join(shown),
                remediation=(
                    f"Check `docker compose logs {cfg.consumer_service}`; "
                    f"restart with `docker compose restart {cfg.consumer_service}`"
                ),
                data={"error_lines": shown},
            )
        detail = f"Waited {grace:g}s for asynchronous processing"
        if not logs_checked:
            detail += " (consumer logs unavailable)"
        return VerificationStep(name=StepName.PROPAGATION, status=StepStatus.PASSED, detail=detail)

    def _check_retrieval(self, api: EventApiClient, environment_id: str) -> VerificationStep:
        cfg = self.settings.verify
        api_logs = f"Check the API logs: `docker compose logs {cfg.api_service}`"
        try:
            response = api.list_events(environment_id, limit=cfg.list_limit)
        except ApiRequestError as exc:
            return VerificationStep(
                name=StepName.RETRIEVAL,
                status=StepStatus.FAILED,
                detail=f"Events query failed: {exc}",
                remediation=api_logs,
            )
        if response.status_code != 200:
            return VerificationStep(
                name=StepName.RETRIEVAL,
                status=StepStatus.FAILED,
                detail=(
                    f"Events query failed (HTTP {response.status_code}): "
                    f"{_body_excerpt(response.text)}"
                ),
                remediation=api_logs,
                data={"status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        total = self._total_count(body)
        if total is None:
            return VerificationStep(
                name=StepName.RETRIEVAL,
                status=StepStatus.FAILED,
                detail="Events query response has no integer total_count",
                remediation=api_logs,
            )
        if total == 0:
            return VerificationStep(
                name=StepName.RETRIEVAL,
                status=StepStatus.WARNING,
                detail="Event not yet visible (total_count 0); processing is asynchronous",
                remediation=(
                    "Re-run in ~30s. If it persists: check the consumer circuit breaker "
                    f"(`docker compose logs {cfg.consumer_service}`), the Kafka topics "
                    "(`pipectl provision`), and ClickHouse "
                    f"(`docker compose exec {cfg.storage_service} clickhouse-client "
                    f'--query "SELECT COUNT(*) FROM {cfg.storage_table}"`)'
                ),
                data={"total_count": 0},
            )
        return VerificationStep(
            name=StepName.RETRIEVAL,
            status=StepStatus.PASSED,
            detail=f"Found {total} event(s) for {environment_id}",
            data={"total_count": total},
        )

    @staticmethod
    def _total_count(body: Any) -> int | None:
        if not isinstance(body, dict):
            return None
        total = body.get("total_count")
        if isinstance(total, bool) or not isinstance(total, int):
            return None
        return total

    def _audit_topics(self, *, auto_remediate: bool) -> VerificationStep:
        topology = self._runtime.topology
        consumer = self.settings.verify.consumer_service
        try:
            live = self._runtime.topic_admin.list_topics()
        except TopicAdminError as exc:
            return VerificationStep(
                name=StepName.TOPICS,
                status=StepStatus.FAILED,
                detail=str(exc),
                remediation="Check the broker is up: `docker compose ps kafka`",
            )

        missing = sorted(topology.topic_names() - live)
        if not missing:
            return VerificationStep(
                name=StepName.TOPICS,
                status=StepStatus.PASSED,
                detail=f"All {len(topology.topics)} required topics exist",
            )

        if not auto_remediate:
            return VerificationStep(
                name=StepName.TOPICS,
                status=StepStatus.FAILED,
                detail="Missing topics: " + ", ".join(missing),
                remediation="Run `pipectl provision` to create them",
                data={"missing": missing},
            )

        specs = [t for t in topology.topics if t.name in missing]
        result = ProvisionService(self._runtime).ensure_topics(specs)
        if not result.ok:
            message = result.error.message if result.error else "unknown error"
            return VerificationStep(
                name=StepName.TOPICS,
                status=StepStatus.FAILED,
                detail=f"Missing topics: {', '.join(missing)}; auto-create failed: {message}",
                remediation="Run `pipectl provision` once the broker is healthy",
                data={"missing": missing},
            )
        log.info("topics.remediated", topics=missing)
        return VerificationStep(
            name=StepName.TOPICS,
            status=StepStatus.PASSED,
            detail="Created missing topics: " + ", ".join(missing),
            remediation=f"Restart the consumer: `docker compose restart {consumer}`",
            data={"missing": missing, "remediated": missing},
        )

    def _audit_services(self) -> VerificationStep:
        required = sorted(self._runtime.topology.required_services())
        try:
            states = self._runtime.compose.service_states(required)
        except ComposeError as exc:
            return VerificationStep(
                name=StepName.SERVICES,
                status=StepStatus.FAILED,
                detail=f"Cannot read service states: {exc}",
                remediation="Is Docker running? Try `docker compose ps`",
            )
        down = {name: state for name, state in states.items() if state != "running"}
        if not down:
            return VerificationStep(
                name=StepName.SERVICES,
                status=StepStatus.PASSED,
                detail=f"All {len(required)} services running",
            )
        listed = ", ".join(f"{name} ({state})" for name, state in sorted(down.items()))
        first = min(down)
        return VerificationStep(
            name=StepName.SERVICES,
            status=StepStatus.FAILED,
            detail=f"Not running: {listed}",
            remediation=f"Run `docker compose up -d` and check `docker compose logs {first}`",
            data={"not_running": dict(sorted(down.items()))},
        )

    def _check_storage(self) -> VerificationStep:
        cfg = self.settings.verify
        compose = self._runtime.compose
        try:
            probe = compose.exec(cfg.storage_service, "clickhouse-client", "--query", "SELECT 1")
        except ComposeError as exc:
            probe = ""
            log.debug("storage.unreachable", error=str(exc))
        if probe != "1":
            return VerificationStep(
                name=StepName.STORAGE,
                status=StepStatus.WARNING,
                detail="ClickHouse connection failed",
                remediation=f"Check `docker compose logs {cfg.storage_service}`",
            )

        query = f"SELECT COUNT(*) FROM {cfg.storage_table}"
        try:
            raw = compose.exec(cfg.storage_service, "clickhouse-client", "--query", query)
            count: int | None = int(raw)
        except (ComposeError, ValueError):
            count = None
        if count is None:
            return VerificationStep(
                name=StepName.STORAGE,
                status=StepStatus.WARNING,
                detail=f"ClickHouse reachable but `{query}` failed",
            )
        return VerificationStep(
            name=StepName.STORAGE,
            status=StepStatus.PASSED,
            detail=f"ClickHouse connected; {count} rows in {cfg.storage_table}",
            data={"event_count": count},
        )
