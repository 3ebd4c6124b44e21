"""Subcommand modules for pipectl.

Provides register_commands() which uses deferred imports to keep
``pipectl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all standalone commands on the root CLI group."""
    from pipectl.commands.provision import provision
    from pipectl.commands.reset import reset
    from pipectl.commands.setup_cmd import setup
    from pipectl.commands.verify import verify
    from pipectl.commands.wait import wait

    cli.add_command(setup)
    cli.add_command(verify)
    cli.add_command(reset)
    cli.add_command(wait)
    cli.add_command(provision)
