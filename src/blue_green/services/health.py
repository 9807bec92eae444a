"""Pool health monitoring with per-endpoint debounce.

``HealthMonitor.check`` runs one poll round over a pool and folds the probe
results into debounced per-endpoint states:

* an endpoint becomes healthy after ``healthy_threshold_count`` consecutive
  successes,
* a healthy endpoint becomes unhealthy after ``unhealthy_threshold_count``
  consecutive failures (1 by default, so a single failed probe counts),
* a newly seen endpoint starts unhealthy.

The pool is healthy when it has endpoints and the healthy fraction reaches
``healthy_fraction``.  Endpoint failures never raise; only
``MonitorUnavailableError`` from the probe propagates.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from blue_green.domain.events import HealthChecked
from blue_green.domain.exceptions import MonitorUnavailableError
from blue_green.domain.values import Endpoint, EndpointHealth, HealthVerdict
from blue_green.infrastructure.clock import Clock, SystemClock
from blue_green.infrastructure.config import HealthCheckConfig
from blue_green.infrastructure.event_bus import EventBus
from blue_green.infrastructure.probes import HealthProbe, ProbeResult, probe_for
from blue_green.services.pools import TargetPoolManager

logger = logging.getLogger(__name__)


@dataclass
class _EndpointStreak:
    healthy: bool = False
    successes: int = 0
    failures: int = 0


class HealthMonitor:
    """Polls a pool's endpoints and reports an aggregate verdict.

    Parameters
    ----------
    pools:
        Pool manager used to look up endpoints.
    config:
        Health-check parameters, passed to the probe unchanged.
    probe:
        Endpoint probe.  Defaults to the probe matching ``config.protocol``.
    event_bus:
        Optional bus receiving ``HealthChecked`` events.
    clock:
        Time source for verdict timestamps.
    """

    def __init__(
        self,
        pools: TargetPoolManager,
        config: HealthCheckConfig | None = None,
        probe: HealthProbe | None = None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._pools = pools
        self._config = config or HealthCheckConfig()
        self._config.validate()
        self._probe = probe or probe_for(self._config)
        self._event_bus = event_bus
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._streaks: dict[str, dict[Endpoint, _EndpointStreak]] = {}

    @property
    def config(self) -> HealthCheckConfig:
        return self._config

    def check(self, pool_id: str) -> HealthVerdict:
        """Poll every endpoint of *pool_id* once and return the verdict.

        Raises
        ------
        MonitorUnavailableError
            If the probe cannot reach the monitoring substrate.
        PoolNotFoundError
            If *pool_id* is unknown.
        """
        endpoints = sorted(self._pools.list_endpoints(pool_id), key=str)
        cfg = self._config
        results: list[EndpointHealth] = []

        with self._lock:
            streaks = self._streaks.setdefault(pool_id, {})
            for stale in set(streaks) - set(endpoints):
                del streaks[stale]

        for endpoint in endpoints:
            try:
                result = self._probe.probe(endpoint, cfg)
            except MonitorUnavailableError:
                raise
            except Exception as exc:
                logger.warning("Probe of %s raised: %s", endpoint, exc)
                result = ProbeResult(success=False, error=str(exc) or type(exc).__name__)
            with self._lock:
                streak = streaks.setdefault(endpoint, _EndpointStreak())
                if result.success:
                    streak.successes += 1
                    streak.failures = 0
                    if streak.successes >= cfg.healthy_threshold_count:
                        streak.healthy = True
                else:
                    streak.failures += 1
                    streak.successes = 0
                    if not streak.healthy or streak.failures >= cfg.unhealthy_threshold_count:
                        streak.healthy = False
                results.append(
                    EndpointHealth(
                        endpoint=endpoint,
                        healthy=streak.healthy,
                        consecutive_successes=streak.successes,
                        consecutive_failures=streak.failures,
                        latency_ms=result.latency_ms,
                        last_error=result.error,
                    )
                )

        healthy_count = sum(1 for r in results if r.healthy)
        total = len(results)
        verdict = HealthVerdict(
            pool_id=pool_id,
            healthy=total > 0 and healthy_count / total >= cfg.healthy_fraction,
            healthy_count=healthy_count,
            total=total,
            threshold=cfg.healthy_fraction,
            checked_at=self._clock.now(),
            endpoints=tuple(results),
        )
        logger.debug(
            "check(%s): %d/%d healthy -> %s",
            pool_id, healthy_count, total, "healthy" if verdict.healthy else "unhealthy",
        )
        if self._event_bus is not None:
            self._event_bus.publish(
                HealthChecked(
                    timestamp=verdict.checked_at,
                    source_id="health",
                    pool_id=pool_id,
                    healthy=verdict.healthy,
                    healthy_count=healthy_count,
                    total=total,
                )
            )
        return verdict

    def reset(self, pool_id: str) -> None:
        """Forget the debounce counters of *pool_id*."""
        with self._lock:
            self._streaks.pop(pool_id, None)
