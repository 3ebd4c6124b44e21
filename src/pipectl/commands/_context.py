"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``. Provides lazy Runtime initialization, signal-driven
cancellation, and centralized result emission (stdout/stderr routing
and per-category exit codes).
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import click

from pipectl.output.formatters import OutputSettings, format_result
from pipectl.services.result import (
    CANCELLED,
    COMPOSE_FAILED,
    CONFIG_WRITE_FAILED,
    PROVISION_FAILED,
    READINESS_TIMEOUT,
    VERIFICATION_FAILED,
)

if TYPE_CHECKING:
    from pipectl.config.settings import PipeSettings
    from pipectl.infrastructure.runtime import Runtime
    from pipectl.services.result import ServiceResult

EXIT_FAILURE = 1
EXIT_CODES: dict[str, int] = {
    READINESS_TIMEOUT: 3,
    PROVISION_FAILED: 4,
    COMPOSE_FAILED: 4,
    CONFIG_WRITE_FAILED: 5,
    VERIFICATION_FAILED: 6,
    CANCELLED: 130,
}


def exit_code_for(result: ServiceResult) -> int:
    if result.ok:
        return 0
    code = result.error.code if result.error else ""
    return EXIT_CODES.get(code, EXIT_FAILURE)


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The runtime is lazily initialized on first use so ``--help`` and
    ``--version`` never build a Kafka or HTTP client.
    """

    def __init__(self, settings: PipeSettings, runtime: Runtime | None = None) -> None:
        self.settings = settings
        self._runtime = runtime

        from pipectl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from pipectl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def runtime(self) -> Runtime:
        """The runtime instance (created lazily on first access)."""
        if self._runtime is None:
            from pipectl.infrastructure.runtime import Runtime

            self._runtime = Runtime(self.settings)
        return self._runtime

    @contextmanager
    def cancellable(self) -> Iterator[None]:
        """Route SIGINT/SIGTERM to the runtime's cancel event while active.

        Pending waits then end with a CANCELLED result instead of a
        traceback. Handlers are only installed from the main thread.
        """
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        event = self.runtime.cancel_event

        def _cancel(_signum: int, _frame: Any) -> None:
            event.set()

        previous = {sig: signal.signal(sig, _cancel) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with the error category's code.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(exit_code_for(result))
