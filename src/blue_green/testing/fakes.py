"""Deterministic fakes for tests, examples and the CLI simulation.

``FakeClock`` advances instantly and can fire callbacks at given times, so a
two-minute bake window runs in microseconds and an operator abort can be
injected mid-bake.  ``ScriptedProbe`` answers health probes from a script.
``build_in_memory_stack`` wires a complete controller on top of the
in-memory substrate and load balancer.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from blue_green.domain.enums import PoolColor
from blue_green.domain.values import Endpoint, PoolSpec
from blue_green.infrastructure.clock import Clock
from blue_green.infrastructure.config import (
    ControllerConfig,
    HealthCheckConfig,
    RoutingConfig,
)
from blue_green.infrastructure.event_bus import EventBus, EventStore
from blue_green.infrastructure.probes import HealthProbe, ProbeResult
from blue_green.infrastructure.substrate import (
    InMemoryComputeSubstrate,
    InMemoryLoadBalancer,
    ProvisionBehavior,
)
from blue_green.services.audit_trail import DeploymentAuditTrail
from blue_green.services.bake import BakeSupervisor
from blue_green.services.controller import DeploymentController
from blue_green.services.health import HealthMonitor
from blue_green.services.pools import TargetPoolManager
from blue_green.services.routing import RoutingTable

# ===================================================================== #
#  FakeClock                                                             #
# ===================================================================== #


class FakeClock(Clock):
    """A clock that only moves when something sleeps on it.

    Parameters
    ----------
    start:
        Initial time in seconds since the epoch.
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = start
        self._lock = threading.Lock()
        self._timers: list[tuple[float, int, Callable[[], None]]] = []
        self._seq = itertools.count()
        self.sleeps: list[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        """Move time forward, firing any timers that fall due."""
        self._advance_to(self.now() + seconds, None)

    def call_at(self, when: float, callback: Callable[[], None]) -> None:
        """Run *callback* once the clock reaches *when*."""
        with self._lock:
            heapq.heappush(self._timers, (when, next(self._seq), callback))

    def call_after(self, seconds: float, callback: Callable[[], None]) -> None:
        self.call_at(self.now() + seconds, callback)

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        with self._lock:
            self.sleeps.append(seconds)
        if cancel is not None and cancel.is_set():
            return True
        return self._advance_to(self.now() + max(seconds, 0.0), cancel)

    def _advance_to(self, target: float, cancel: threading.Event | None) -> bool:
        while True:
            with self._lock:
                if not self._timers or self._timers[0][0] > target:
                    self._now = max(self._now, target)
                    break
                when, _, callback = heapq.heappop(self._timers)
                self._now = max(self._now, when)
            callback()
            if cancel is not None and cancel.is_set():
                return True
        return cancel is not None and cancel.is_set()


# ===================================================================== #
#  ScriptedProbe                                                         #
# ===================================================================== #

ProbeOutcome = bool | ProbeResult | Exception


class ScriptedProbe(HealthProbe):
    """Probe answering from a queue of outcomes, then from a default.

    Each outcome is consumed by one ``probe()`` call and may be a ``bool``,
    a ``ProbeResult``, or an exception instance to raise.  Addresses marked
    down with :meth:`set_down` always fail.
    """

    def __init__(self, healthy: bool = True) -> None:
        self._lock = threading.Lock()
        self._default = healthy
        self._queue: deque[ProbeOutcome] = deque()
        self._down: set[str] = set()
        self.calls: list[Endpoint] = []

    def script(self, *outcomes: ProbeOutcome) -> None:
        with self._lock:
            self._queue.extend(outcomes)

    def set_default(self, healthy: bool) -> None:
        with self._lock:
            self._default = healthy

    def set_down(self, address: str, down: bool = True) -> None:
        with self._lock:
            if down:
                self._down.add(address)
            else:
                self._down.discard(address)

    def probe(self, endpoint: Endpoint, config: HealthCheckConfig) -> ProbeResult:
        with self._lock:
            self.calls.append(endpoint)
            outcome: ProbeOutcome = self._queue.popleft() if self._queue else self._default
            if endpoint.address in self._down:
                outcome = False
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ProbeResult):
            return outcome
        if outcome:
            return ProbeResult(success=True, latency_ms=1.0)
        return ProbeResult(success=False, latency_ms=1.0, error="scripted failure")


# ===================================================================== #
#  In-memory stack                                                       #
# ===================================================================== #


@dataclass
class InMemoryStack:
    """Every component of a controller wired on in-memory substrates."""

    clock: Clock
    event_bus: EventBus
    event_store: EventStore
    audit_trail: DeploymentAuditTrail
    substrate: InMemoryComputeSubstrate
    load_balancer: InMemoryLoadBalancer
    probe: HealthProbe
    pools: TargetPoolManager
    routing: RoutingTable
    monitor: HealthMonitor
    supervisor: BakeSupervisor
    controller: DeploymentController
    initial_pool_id: str


def build_in_memory_stack(
    service: str = "web",
    version: str = "v1",
    desired_count: int = 1,
    probe: HealthProbe | None = None,
    clock: Clock | None = None,
    health_config: HealthCheckConfig | None = None,
    controller_config: ControllerConfig | None = None,
    routing_config: RoutingConfig | None = None,
    provision: ProvisionBehavior | None = None,
    propagation_polls: int = 0,
) -> InMemoryStack:
    """Build a controller whose production route serves *service*:*version*.

    The running fleet is adopted as the active blue pool and both routes
    point at it.  Defaults to a ``FakeClock`` and an always-healthy
    ``ScriptedProbe``.
    """
    clock = clock or FakeClock()
    probe = probe or ScriptedProbe()
    controller_config = controller_config or ControllerConfig()

    event_bus = EventBus()
    event_store = EventStore()
    event_bus.subscribe_all(event_store.append)
    audit_trail = DeploymentAuditTrail(event_bus)

    substrate = InMemoryComputeSubstrate(default=provision)
    load_balancer = InMemoryLoadBalancer(propagation_polls=propagation_polls)
    pools = TargetPoolManager(substrate, event_bus=event_bus, clock=clock)

    spec = PoolSpec(service=service, version=version, desired_count=desired_count)
    pool_id = f"{PoolColor.BLUE.value}-{uuid.uuid4().hex[:8]}"
    endpoints = substrate.register_running(pool_id, spec)
    pools.adopt(spec, endpoints, color=PoolColor.BLUE, pool_id=pool_id)

    routing = RoutingTable(
        pools,
        load_balancer,
        production_pool_id=pool_id,
        config=routing_config,
        event_bus=event_bus,
        clock=clock,
        ack_timeout=controller_config.bind_ack_timeout_seconds,
        ack_poll_interval=controller_config.bind_ack_poll_interval_seconds,
    )
    monitor = HealthMonitor(
        pools, config=health_config, probe=probe, event_bus=event_bus, clock=clock
    )
    supervisor = BakeSupervisor(monitor, clock=clock, event_bus=event_bus)
    controller = DeploymentController(
        pools,
        routing,
        monitor,
        supervisor,
        event_bus=event_bus,
        config=controller_config,
        clock=clock,
    )
    return InMemoryStack(
        clock=clock,
        event_bus=event_bus,
        event_store=event_store,
        audit_trail=audit_trail,
        substrate=substrate,
        load_balancer=load_balancer,
        probe=probe,
        pools=pools,
        routing=routing,
        monitor=monitor,
        supervisor=supervisor,
        controller=controller,
        initial_pool_id=pool_id,
    )
