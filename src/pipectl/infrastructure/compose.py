"""Docker Compose runtime adapter.

Wraps the ``docker compose`` CLI. Read-only calls (``ps``, ``logs``) are
used by the readiness waiter and the verifier; lifecycle calls (``build``,
``up``, ``down``) only by the setup driver.
"""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pipectl.domain.types import HealthState

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess[str]]

_HEALTH_MAP: dict[str, HealthState] = {
    "healthy": HealthState.HEALTHY,
    "starting": HealthState.STARTING,
    "unhealthy": HealthState.UNHEALTHY,
}


class ComposeError(Exception):
    """A docker compose command failed or could not be started."""

    def __init__(self, args: Sequence[str], message: str, *, returncode: int | None = None) -> None:
        self.command = list(args)
        self.returncode = returncode
        super().__init__(message)


@dataclass(frozen=True)
class ContainerStatus:
    """One row of ``docker compose ps``."""

    name: str
    service: str
    state: str
    health: str = ""

    @property
    def running(self) -> bool:
        return self.state == "running"

    @property
    def health_state(self) -> HealthState:
        """Map compose state/health to a :class:`HealthState`.

        A running container without a healthcheck reports an empty Health
        and maps to UNKNOWN; the readiness policy decides whether that
        counts as healthy.
        """
        if self.state in {"exited", "dead"}:
            return HealthState.UNHEALTHY
        mapped = _HEALTH_MAP.get(self.health.lower())
        if mapped is not None:
            return mapped
        if self.running:
            return HealthState.UNKNOWN
        return HealthState.STARTING

    def matches(self, service: str) -> bool:
        return service in (self.service, self.name)


def parse_ps_output(raw: str) -> list[ContainerStatus]:
    """Parse ``docker compose ps --format json``.

    Older Compose releases emit a single JSON array, newer ones one JSON
    object per line; both are accepted.
    """
    text = raw.strip()
    if not text:
        return []
    rows: list[dict[str, Any]]
    if text.startswith("["):
        rows = json.loads(text)
    else:
        rows = [json.loads(line) for line in text.splitlines() if line.strip()]
    return [
        ContainerStatus(
            name=str(row.get("Name") or ""),
            service=str(row.get("Service") or row.get("Name") or ""),
            state=str(row.get("State") or "").lower(),
            health=str(row.get("Health") or ""),
        )
        for row in rows
    ]


class ComposeRuntime:
    """Runs ``docker compose`` subcommands in a project directory.

    Args:
        project_dir: Directory containing the compose file.
        command: Compose invocation prefix (``["docker", "compose"]``).
        timeout: Per-command timeout in seconds.
        runner: ``subprocess.run`` compatible callable (injectable).
    """

    def __init__(
        self,
        project_dir: Path,
        *,
        command: Sequence[str] = ("docker", "compose"),
        timeout: float = 600.0,
        runner: Runner = subprocess.run,
    ) -> None:
        self._project_dir = project_dir
        self._command = list(command)
        self._timeout = timeout
        self._runner = runner

    # ------------------------------------------------------------------
    # Subprocess helper
    # ------------------------------------------------------------------

    def _run(self, *args: str, timeout: float | None = None) -> subprocess.CompletedProcess[str]:
        """Run a compose subcommand. Raises ComposeError on failure."""
        argv = [*self._command, *args]
        logger.debug("Running %s", " ".join(argv))
        try:
            return self._runner(
                argv,
                cwd=self._project_dir,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout or self._timeout,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            msg = f"`{' '.join(argv)}` exited with {exc.returncode}: {stderr}"
            raise ComposeError(argv, msg, returncode=exc.returncode) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"`{' '.join(argv)}` timed out after {exc.timeout}s"
            raise ComposeError(argv, msg) from exc
        except OSError as exc:
            msg = f"Could not run `{' '.join(argv)}`: {exc}"
            raise ComposeError(argv, msg) from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def build(self) -> None:
        self._run("build")

    def up(self, services: Iterable[str] = ()) -> None:
        """Start *services* detached (all services when empty)."""
        self._run("up", "-d", *sorted(services))

    def down(self, *, volumes: bool = True) -> None:
        args = ["down", "--remove-orphans"]
        if volumes:
            args.append("--volumes")
        self._run(*args)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def ps(self) -> list[ContainerStatus]:
        result = self._run("ps", "--all", "--format", "json", timeout=30.0)
        try:
            return parse_ps_output(result.stdout)
        except json.JSONDecodeError as exc:
            msg = f"Unparsable `docker compose ps` output: {exc}"
            raise ComposeError(["ps"], msg) from exc

    def service_health(self, services: Iterable[str]) -> dict[str, HealthState]:
        """Current health of each requested service.

        Services with no container yet are reported as STARTING.
        """
        containers = self.ps()
        health: dict[str, HealthState] = {}
        for service in services:
            match = next((c for c in containers if c.matches(service)), None)
            health[service] = match.health_state if match else HealthState.STARTING
        return health

    def service_states(self, services: Iterable[str]) -> dict[str, str]:
        """Container ``State`` per requested service (``"missing"`` if absent)."""
        containers = self.ps()
        states: dict[str, str] = {}
        for service in services:
            match = next((c for c in containers if c.matches(service)), None)
            states[service] = match.state if match else "missing"
        return states

    def logs(self, service: str, *, tail: int = 10) -> str:
        result = self._run("logs", "--no-color", f"--tail={tail}", service, timeout=30.0)
        return result.stdout

    def exec(self, service: str, *command: str) -> str:
        """Run *command* inside *service* without a TTY and return stdout."""
        result = self._run("exec", "-T", service, *command, timeout=60.0)
        return result.stdout.strip()
