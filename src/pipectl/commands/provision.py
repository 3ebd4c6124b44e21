"""Command: create topics and the API key entry without touching containers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pipectl.commands._base import PipeCommand

if TYPE_CHECKING:
    from pipectl.commands._context import AppContext


@click.command(
    cls=PipeCommand,
    examples="""\
  pipectl provision
  pipectl provision --topics-only
  pipectl provision --list
  pipectl provision --restore-config""",
)
@click.option("--topics-only", is_flag=True, help="Skip the API key entry.")
@click.option("--list", "list_only", is_flag=True, help="Only list live topics.")
@click.option(
    "--restore-config",
    is_flag=True,
    help="Restore the config file from the backup taken before the last key insert.",
)
@click.pass_obj
def provision(app: AppContext, topics_only: bool, list_only: bool, restore_config: bool) -> None:
    """Ensure the required Kafka topics and API key exist (idempotent)."""
    from pipectl.services.provision import ProvisionService

    svc = ProvisionService(app.runtime)
    if restore_config:
        app.emit(svc.restore_config())
    elif list_only:
        app.emit(svc.list_topics())
    else:
        app.emit(svc.provision(credential=not topics_only))
