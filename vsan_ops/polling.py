"""
Polling helpers for long-running vCenter and host waits.

Every wait in the project goes through wait_until so that intervals,
periodic "still waiting" warnings, optional deadlines and cancellation behave
the same way everywhere. Without a deadline a wait never gives up.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from vsan_ops.errors import PollCancelled, PollTimeoutError
from vsan_ops.utils import console_log


class CancellationToken:
    """Shared flag checked by every polling loop between polls."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, returning early (True) once cancelled."""
        return self._event.wait(seconds)


@dataclass(frozen=True)
class PollPolicy:
    interval: float
    warn_after: Optional[float] = None
    deadline: Optional[float] = None


def wait_until(
    condition: Callable[[], bool],
    description: str,
    policy: PollPolicy,
    logger: Optional[Callable] = None,
    cancel: Optional[CancellationToken] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """
    Evaluate `condition` until it returns True.

    The condition is checked once immediately, then again after every
    `policy.interval` seconds. A WARN line is logged each time another
    `policy.warn_after` seconds pass without success.

    Args:
        condition: Zero-argument callable reading fresh remote state
        description: What is being waited for, used in log and error messages
        policy: Interval, warning period and optional deadline (seconds)
        logger: Logging function (defaults to console_log)
        cancel: Optional token aborting the wait with PollCancelled
        sleep: Sleep function; defaults to the token's wait or time.sleep
        clock: Monotonic clock used for warnings and the deadline

    Returns:
        Number of polls performed after the initial check
    """
    log = logger or console_log
    if sleep is None:
        sleep = cancel.wait if cancel is not None else time.sleep

    start = clock()
    last_warn = start
    polls = 0

    while True:
        if cancel is not None and cancel.cancelled:
            raise PollCancelled(description)

        if condition():
            return polls

        now = clock()
        if policy.deadline is not None and now - start >= policy.deadline:
            raise PollTimeoutError(description, now - start)

        if policy.warn_after and now - last_warn >= policy.warn_after:
            log(f"Still waiting for {description} after {int(now - start)}s", "WARN")
            last_warn = now

        sleep(policy.interval)
        polls += 1
