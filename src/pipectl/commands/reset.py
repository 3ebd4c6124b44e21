"""Command: tear down and re-provision the pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pipectl.commands._base import PipeCommand

if TYPE_CHECKING:
    from pipectl.commands._context import AppContext


@click.command(
    cls=PipeCommand,
    examples="""\
  pipectl reset
  pipectl reset --yes
  pipectl --no-interact reset --no-build""",
)
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.option("--no-build", is_flag=True, help="Skip `docker compose build`.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait for infrastructure health (default: readiness.timeout).",
)
@click.pass_obj
def reset(app: AppContext, yes: bool, no_build: bool, timeout: float | None) -> None:
    """Remove all containers and volumes, then run setup again."""
    if not (yes or app.settings.no_interact):
        click.confirm(
            "This deletes all pipeline containers and volumes. Continue?",
            abort=True,
            err=True,
        )

    from pipectl.services.setup import SetupService

    with app.cancellable():
        result = SetupService(app.runtime).reset(build=not no_build, timeout=timeout)
    app.emit(result)
