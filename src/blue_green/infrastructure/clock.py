"""Time source with cooperative, cancellable sleeps.

Readiness polling, validation retries and the bake loop are the only places a
deployment cycle suspends.  They all go through ``Clock.sleep`` so that an
operator abort (a set ``threading.Event``) wakes the cycle immediately, and
so tests can substitute a clock that advances instantly.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Abstract time source."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds since the epoch."""

    @abstractmethod
    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        """Suspend for *seconds*.

        Returns ``True`` if *cancel* was set before or during the wait,
        ``False`` if the full duration elapsed.
        """


class SystemClock(Clock):
    """Wall-clock implementation backed by ``time`` and ``Event.wait``."""

    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        if cancel is None:
            if seconds > 0:
                time.sleep(seconds)
            return False
        if cancel.is_set():
            return True
        return cancel.wait(max(seconds, 0.0))
