"""Tests for the system clock and the fake clock used by the suite."""

from __future__ import annotations

import threading
import time

from blue_green.infrastructure.clock import SystemClock
from blue_green.testing.fakes import FakeClock


class TestSystemClock:
    def test_now_tracks_wall_clock(self) -> None:
        assert abs(SystemClock().now() - time.time()) < 1.0

    def test_sleep_returns_false_when_not_cancelled(self) -> None:
        assert SystemClock().sleep(0.01, threading.Event()) is False
        assert SystemClock().sleep(0.0) is False

    def test_sleep_returns_immediately_when_cancelled(self) -> None:
        cancel = threading.Event()
        cancel.set()
        start = time.monotonic()
        assert SystemClock().sleep(30.0, cancel) is True
        assert time.monotonic() - start < 1.0

    def test_sleep_wakes_on_cancel_from_other_thread(self) -> None:
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        try:
            assert SystemClock().sleep(10.0, cancel) is True
        finally:
            timer.cancel()


class TestFakeClock:
    def test_sleep_advances_instantly(self) -> None:
        clock = FakeClock(start=100.0)
        assert clock.sleep(5.0) is False
        assert clock.now() == 105.0
        assert clock.sleeps == [5.0]

    def test_advance(self) -> None:
        clock = FakeClock(start=0.0)
        clock.advance(3.5)
        assert clock.now() == 3.5

    def test_timers_fire_in_order(self) -> None:
        clock = FakeClock(start=0.0)
        fired: list[tuple[str, float]] = []
        clock.call_after(2.0, lambda: fired.append(("b", clock.now())))
        clock.call_at(1.0, lambda: fired.append(("a", clock.now())))
        clock.advance(5.0)
        assert fired == [("a", 1.0), ("b", 2.0)]
        assert clock.now() == 5.0

    def test_timer_cancelling_a_sleep(self) -> None:
        clock = FakeClock(start=0.0)
        cancel = threading.Event()
        clock.call_after(1.0, cancel.set)
        assert clock.sleep(10.0, cancel) is True

    def test_already_cancelled_sleep(self) -> None:
        clock = FakeClock(start=0.0)
        cancel = threading.Event()
        cancel.set()
        assert clock.sleep(10.0, cancel) is True
