"""RateLimiter — hold a loop to a fixed wall-clock rate.

The limiter never skips work: when an iteration overruns its period the
next deadline is re-anchored to the current time, so the following
iteration simply starts late.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sleep away whatever is left of each period.

    Parameters
    ----------
    rate_hz:
        Target iterations per second.  Must be positive.
    clock:
        Monotonic time source in seconds.
    sleep:
        Blocking sleep function.
    """

    def __init__(
        self,
        rate_hz: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate_hz <= 0.0:
            raise ValueError(f"rate_hz must be positive, got {rate_hz}.")
        self._period = 1.0 / rate_hz
        self._clock = clock
        self._sleep = sleep
        self._deadline = clock() + self._period
        self._overruns = 0

    @property
    def period(self) -> float:
        return self._period

    @property
    def overruns(self) -> int:
        """Number of periods whose work outlasted the period."""
        return self._overruns

    def reset(self) -> None:
        """Start a fresh period from now."""
        self._deadline = self._clock() + self._period

    def sleep(self) -> float:
        """Wait until the end of the current period.

        Returns
        -------
        float
            Seconds actually slept; ``0.0`` after an overrun.
        """
        now = self._clock()
        remaining = self._deadline - now
        if remaining <= 0.0:
            self._overruns += 1
            logger.debug("Loop overran its %.4fs period by %.4fs", self._period, -remaining)
            self._deadline = now + self._period
            return 0.0
        self._sleep(remaining)
        self._deadline += self._period
        return remaining

    def __repr__(self) -> str:
        return f"RateLimiter(rate_hz={1.0 / self._period:.3f}, overruns={self._overruns})"
