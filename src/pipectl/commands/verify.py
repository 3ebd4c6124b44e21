"""Command: end-to-end verification of a running pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pipectl.commands._base import PipeCommand

if TYPE_CHECKING:
    from pipectl.commands._context import AppContext


@click.command(
    cls=PipeCommand,
    examples="""\
  pipectl verify
  pipectl verify --base-url http://localhost:8080
  pipectl verify --environment-id env_ci --timeout 120
  pipectl verify --no-remediate
  pipectl --json verify""",
)
@click.option("--base-url", default=None, help="API root (default: api.base_url).")
@click.option("--api-key", default=None, help="Value for the x-api-key header (default: api.api_key).")
@click.option(
    "--environment-id",
    default=None,
    help="Prefix for the generated test environment id (default: verify.environment_prefix).",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds allowed for the liveness check (default: verify.timeout).",
)
@click.option("--no-remediate", is_flag=True, help="Report missing topics without creating them.")
@click.pass_obj
def verify(
    app: AppContext,
    base_url: str | None,
    api_key: str | None,
    environment_id: str | None,
    timeout: float | None,
    no_remediate: bool,
) -> None:
    """Send a test event, read it back, and audit topics and services."""
    from pipectl.services.verify import VerifyService

    with app.cancellable():
        result = VerifyService(app.runtime).verify(
            base_url,
            api_key,
            environment_id,
            timeout,
            auto_remediate=False if no_remediate else None,
        )
    app.emit(result)
