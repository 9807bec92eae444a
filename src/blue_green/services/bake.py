"""Bake-window supervision.

After cutover the candidate carries production traffic for a bake window.
``BakeSupervisor`` polls its health at a fixed interval and decides whether
the cutover stands: any unhealthy verdict ends the window early with
``FAILED``; only a window where every poll was healthy ends ``PASSED``.
"""

from __future__ import annotations

import logging
import threading

from blue_green.domain.enums import BakeOutcome
from blue_green.domain.events import BakeCompleted, BakePolled
from blue_green.domain.exceptions import MonitorUnavailableError
from blue_green.infrastructure.clock import Clock, SystemClock
from blue_green.infrastructure.event_bus import EventBus
from blue_green.services.health import HealthMonitor

logger = logging.getLogger(__name__)


class BakeSupervisor:
    """Watches a pool for the duration of its bake window.

    Parameters
    ----------
    monitor:
        Health monitor polled once per interval.
    clock:
        Time source.  Waits go through ``Clock.sleep`` so an abort wakes
        the supervisor immediately.
    event_bus:
        Optional bus receiving ``BakePolled`` and ``BakeCompleted``.
    """

    def __init__(
        self,
        monitor: HealthMonitor,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._monitor = monitor
        self._clock = clock or SystemClock()
        self._event_bus = event_bus

    def supervise(
        self,
        pool_id: str,
        duration: float,
        poll_interval: float,
        cancel: threading.Event | None = None,
    ) -> BakeOutcome:
        """Run the bake window for *pool_id*.

        Each iteration waits ``poll_interval`` (the last wait is cut short at
        the end of the window) and then checks health once.

        Returns
        -------
        BakeOutcome
            ``FAILED`` on the first unhealthy verdict, on
            ``MonitorUnavailableError`` or when *cancel* is set;
            ``PASSED`` once the full window elapsed with every poll healthy.
        """
        if duration <= 0:
            raise ValueError(f"duration must be > 0, got {duration}")
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")

        start = self._clock.now()
        deadline = start + duration
        polls = 0
        logger.info("Baking %s for %.0fs (poll every %.0fs)", pool_id, duration, poll_interval)

        while True:
            remaining = deadline - self._clock.now()
            if remaining <= 0:
                return self._finish(pool_id, BakeOutcome.PASSED, polls, start)

            if self._clock.sleep(min(poll_interval, remaining), cancel):
                logger.warning("Bake of %s cancelled after %d poll(s)", pool_id, polls)
                return self._finish(pool_id, BakeOutcome.FAILED, polls, start)

            polls += 1
            try:
                verdict = self._monitor.check(pool_id)
            except MonitorUnavailableError as exc:
                logger.warning("Bake poll %d of %s: monitor unavailable: %s", polls, pool_id, exc)
                self._publish_poll(pool_id, polls, False, start, str(exc))
                return self._finish(pool_id, BakeOutcome.FAILED, polls, start)

            self._publish_poll(pool_id, polls, verdict.healthy, start)
            if not verdict.healthy:
                logger.warning(
                    "Bake poll %d of %s unhealthy (%d/%d endpoints)",
                    polls, pool_id, verdict.healthy_count, verdict.total,
                )
                return self._finish(pool_id, BakeOutcome.FAILED, polls, start)
            logger.debug("Bake poll %d of %s healthy", polls, pool_id)

    # -- internals -----------------------------------------------------------

    def _publish_poll(
        self,
        pool_id: str,
        poll_number: int,
        healthy: bool,
        start: float,
        error: str = "",
    ) -> None:
        if self._event_bus is None:
            return
        now = self._clock.now()
        self._event_bus.publish(
            BakePolled(
                timestamp=now,
                source_id="bake",
                pool_id=pool_id,
                poll_number=poll_number,
                healthy=healthy,
                elapsed=now - start,
                error=error,
            )
        )

    def _finish(
        self,
        pool_id: str,
        outcome: BakeOutcome,
        polls: int,
        start: float,
    ) -> BakeOutcome:
        now = self._clock.now()
        logger.info("Bake of %s %s after %d poll(s)", pool_id, outcome.value, polls)
        if self._event_bus is not None:
            self._event_bus.publish(
                BakeCompleted(
                    timestamp=now,
                    source_id="bake",
                    pool_id=pool_id,
                    outcome=outcome,
                    polls=polls,
                    elapsed=now - start,
                )
            )
        return outcome
