"""Cooperative cancellation for long-running optimizations and simulations.

Workers check the token between evaluations; an evaluation that has started
always runs to completion.
"""

import threading
import time
from typing import Callable, Optional


class CancellationToken:
    """Cancel flag with an optional deadline.

    Args:
        deadline: Absolute time (in `clock` units) after which the token reads as cancelled
        timeout: Seconds from now; converted to a deadline
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._event = threading.Event()
        self._clock = clock
        if timeout is not None:
            deadline = clock() + timeout
        self.deadline = deadline

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline is not None and self._clock() >= self.deadline:
            self._event.set()
            return True
        return False

    @property
    def reason(self) -> Optional[str]:
        if not self.is_cancelled():
            return None
        if self.deadline is not None and self._clock() >= self.deadline:
            return "deadline exceeded"
        return "cancelled"
