"""Bounded waiting — deadlines and retry policies.

Every wait in pipectl goes through a :class:`Deadline`, so no loop can
block past its timeout and any wait can be interrupted by setting the
cancel event (e.g. from a signal handler).
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

Clock = Callable[[], float]
Sleeper = Callable[[float], None]


class Cancelled(Exception):
    """A wait was interrupted by the cancel event."""


class Deadline:
    """A finite time budget measured on a monotonic clock.

    Args:
        timeout: Budget in seconds. Must be finite and non-negative.
        clock: Time source (injectable for tests).
        sleep: Optional sleep function. When None, sleeping waits on the
            cancel event so cancellation is immediate.
        cancel: Event that interrupts any pending sleep.
    """

    def __init__(
        self,
        timeout: float,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        if timeout < 0 or timeout != timeout or timeout == float("inf"):
            msg = f"timeout must be a finite, non-negative number of seconds: {timeout!r}"
            raise ValueError(msg)
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._cancel = cancel or threading.Event()
        self._start = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._start

    @property
    def remaining(self) -> float:
        return max(0.0, self.timeout - self.elapsed)

    @property
    def expired(self) -> bool:
        return self.elapsed >= self.timeout

    def check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise Cancelled

    def sleep(self, seconds: float) -> None:
        """Sleep for *seconds*, never past the deadline.

        Raises:
            Cancelled: If the cancel event is set before or during the sleep.
        """
        self.check_cancelled()
        seconds = min(seconds, self.remaining)
        if seconds <= 0:
            return
        if self._sleep is not None:
            self._sleep(seconds)
        elif self._cancel.wait(seconds):
            raise Cancelled
        self.check_cancelled()


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget with fixed or exponential spacing.

    ``backoff == 1.0`` gives a fixed interval; larger values multiply the
    interval after each attempt, capped at ``max_interval``.
    """

    max_attempts: int = 3
    interval: float = 1.0
    backoff: float = 1.0
    max_interval: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)
        if self.interval < 0 or self.backoff < 1.0:
            msg = "interval must be >= 0 and backoff >= 1.0"
            raise ValueError(msg)

    def delay(self, attempt: int) -> float:
        """Delay after the 1-indexed *attempt* before the next one."""
        return min(self.interval * (self.backoff ** (attempt - 1)), self.max_interval)

    def attempts(self, deadline: Deadline) -> Iterator[int]:
        """Yield attempt numbers, sleeping between them.

        Stops after ``max_attempts`` or once *deadline* has expired,
        whichever comes first. The first attempt is always made.
        """
        for attempt in range(1, self.max_attempts + 1):
            yield attempt
            if attempt == self.max_attempts or deadline.expired:
                return
            deadline.sleep(self.delay(attempt))
            if deadline.expired:
                return
