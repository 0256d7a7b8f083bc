from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Optional


class Throttle(ABC):
    @abstractmethod
    def wait(self) -> None:
        raise NotImplementedError


class NoThrottle(Throttle):
    def wait(self) -> None:
        return None


class FixedIntervalThrottle(Throttle):
    """Keeps at least ``interval_sec`` between consecutive ``wait()`` returns.

    The first call returns immediately. Clock and sleep are injectable so callers
    can run without real delays.
    """

    def __init__(
        self,
        interval_sec: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if interval_sec < 0:
            raise ValueError("interval_sec must be >= 0")
        self.interval_sec = interval_sec
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None

    def wait(self) -> None:
        if self._last is not None:
            remaining = self.interval_sec - (self._clock() - self._last)
            if remaining > 0:
                self._sleep(remaining)
        self._last = self._clock()
