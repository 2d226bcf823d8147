from __future__ import annotations

import time
from typing import Callable


class FixedIntervalTicker:
    """Paces a sequential dispatch loop to at most one item per ``interval``.

    Call :meth:`wait` immediately before each send. The first call returns at
    once; every later call sleeps until ``interval`` seconds have passed since
    the previous tick. Time already spent inside the send counts towards the
    interval, so a slow provider call is not followed by a full extra pause.

    ``clock`` and ``sleep`` are injectable so tests can drive time by hand.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = float(interval)
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self.ticks = 0
        self.total_waited = 0.0

    def wait(self) -> float:
        """Block until the next slot; returns the seconds slept."""
        waited = 0.0
        if self._last is not None and self.interval > 0:
            remaining = self.interval - (self._clock() - self._last)
            if remaining > 0:
                self._sleep(remaining)
                waited = remaining
        self._last = self._clock()
        self.ticks += 1
        self.total_waited += waited
        return waited

    def reset(self) -> None:
        self._last = None
        self.ticks = 0
        self.total_waited = 0.0
