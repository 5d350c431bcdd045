from __future__ import annotations
import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class SourceGate:
    """Per-source call gate: minimum spacing between calls plus failure backoff.

    A call is allowed once ``min_interval + min(failures * backoff_step,
    max_backoff)`` seconds have elapsed since the previous call.  A success
    resets the failure count, a failure increments it.
    """

    def __init__(
        self,
        source: str,
        min_interval: float,
        backoff_step: float = 1.0,
        max_backoff: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.min_interval = min_interval
        self.backoff_step = backoff_step
        self.max_backoff = max_backoff
        self._clock = clock
        self._last_call: float | None = None
        self.error_count = 0

    def required_wait(self) -> float:
        """Seconds that must separate the last call from the next one."""
        backoff = min(self.error_count * self.backoff_step, self.max_backoff)
        return self.min_interval + backoff

    def can_call(self) -> bool:
        if self._last_call is None:
            return True
        return self._clock() - self._last_call >= self.required_wait()

    def record(self, success: bool) -> None:
        self._last_call = self._clock()
        if success:
            if self.error_count:
                logger.info(f"{self.source}: recovered after {self.error_count} failures")
            self.error_count = 0
        else:
            self.error_count += 1
            logger.debug(
                "%s: failure #%d, next call allowed in %.1fs",
                self.source, self.error_count, self.required_wait(),
            )
