"""Command: wait for compose services to become healthy."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pipectl.commands._base import PipeCommand

if TYPE_CHECKING:
    from pipectl.commands._context import AppContext


@click.command(
    cls=PipeCommand,
    examples="""\
  pipectl wait
  pipectl wait --service kafka --service clickhouse --timeout 120
  pipectl wait --all --strict""",
)
@click.option("-s", "--service", "services", multiple=True, help="Service to wait for (repeatable).")
@click.option("--all", "all_services", is_flag=True, help="Wait for application services too.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds before giving up (default: readiness.timeout).",
)
@click.option(
    "--interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between polls (default: readiness.poll_interval).",
)
@click.option("--strict", is_flag=True, help="Require an explicit healthy status.")
@click.pass_obj
def wait(
    app: AppContext,
    services: tuple[str, ...],
    all_services: bool,
    timeout: float | None,
    interval: float | None,
    strict: bool,
) -> None:
    """Poll `docker compose ps` until services report healthy."""
    from pipectl.services.readiness import ReadinessService

    runtime = app.runtime
    targets: frozenset[str] | None = None
    if services:
        targets = frozenset(services)
    elif all_services:
        targets = runtime.topology.required_services()

    with app.cancellable():
        result = ReadinessService(runtime).wait_until_ready(
            targets,
            timeout=timeout,
            poll_interval=interval,
            unknown_is_healthy=False if strict else None,
        )
    app.emit(result)
