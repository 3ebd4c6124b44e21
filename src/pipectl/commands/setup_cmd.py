"""Command: provision and start the pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pipectl.commands._base import PipeCommand

if TYPE_CHECKING:
    from pipectl.commands._context import AppContext


@click.command(
    "setup",
    cls=PipeCommand,
    examples="""\
  pipectl setup
  pipectl setup --no-build
  pipectl setup --timeout 600
  pipectl --json setup""",
)
@click.option("--no-build", is_flag=True, help="Skip `docker compose build`.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait for infrastructure health (default: readiness.timeout).",
)
@click.pass_obj
def setup(app: AppContext, no_build: bool, timeout: float | None) -> None:
    """Add the API key, start services, wait for health, and create topics."""
    from pipectl.services.setup import SetupService

    with app.cancellable():
        result = SetupService(app.runtime).setup(build=not no_build, timeout=timeout)
    app.emit(result)
