"""
Bounded-wait execution.

run_with_timeout() runs an operation on the calling thread and starts a
monitor thread that flips a cooperative flag once the window elapses. The
operation is expected to poll the flag between steps and give up when it
goes stale. Nothing is preempted: an operation stuck inside a blocking read
only notices the flag after that read returns, so the real worst case is
the window plus one transport read timeout.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

from .errors import TransferTimeoutError
from .interfaces import Deadline

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeadlineFlag(Deadline):
    """Deadline backed by a threading.Event that starts out live."""

    def __init__(self):
        self._live = threading.Event()
        self._live.set()

    def is_live(self) -> bool:
        return self._live.is_set()

    def expire(self) -> None:
        self._live.clear()


def run_with_timeout(operation: Callable[[Deadline], T], seconds: float) -> T:
    """
    Run operation(deadline), failing it if the window runs out first.

    Returns as soon as the operation returns; the monitor is told to stand
    down instead of being waited out.

    Args:
        operation: Callable receiving the Deadline it must poll.
        seconds: Length of the window.

    Returns:
        Whatever the operation returned.

    Raises:
        TransferTimeoutError: the flag went stale before the operation
            returned.
        Any exception raised by the operation itself.
    """
    deadline = DeadlineFlag()
    stand_down = threading.Event()

    def monitor() -> None:
        if not stand_down.wait(seconds):
            logger.debug("bounded wait of %.3fs expired", seconds)
            deadline.expire()

    watcher = threading.Thread(target=monitor, name="bounded-wait", daemon=True)
    watcher.start()
    try:
        result = operation(deadline)
    finally:
        stand_down.set()
        watcher.join()

    if not deadline.is_live():
        raise TransferTimeoutError(f"operation did not finish within {seconds:g}s")
    return result
