"""Target pool management.

``TargetPoolManager`` owns every ``TargetPool`` of one service: it creates
candidates through the compute substrate, waits for their readiness signal,
moves them through their lifecycle, and retires them once no route refers to
them any more.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from blue_green.domain.entities import TargetPool
from blue_green.domain.enums import PoolColor, PoolState
from blue_green.domain.events import PoolStateChanged
from blue_green.domain.exceptions import (
    DeploymentAborted,
    PoolInUseError,
    PoolNotFoundError,
    ProvisionFailure,
)
from blue_green.domain.values import Endpoint, PoolSpec
from blue_green.infrastructure.clock import Clock, SystemClock
from blue_green.infrastructure.event_bus import EventBus
from blue_green.infrastructure.substrate import ComputeSubstrate

logger = logging.getLogger(__name__)

ReferenceSource = Callable[[str], Iterable[str]]


class TargetPoolManager:
    """Creates, tracks and retires target pools.

    Parameters
    ----------
    substrate:
        Compute substrate that provisions and tears down capacity.
    event_bus:
        Optional bus receiving ``PoolStateChanged`` events.
    clock:
        Time source used while waiting for readiness.
    """

    def __init__(
        self,
        substrate: ComputeSubstrate,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._substrate = substrate
        self._event_bus = event_bus
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._pools: dict[str, TargetPool] = {}
        self._reference_sources: list[ReferenceSource] = []

    # -- wiring --------------------------------------------------------------

    def register_reference_source(self, source: ReferenceSource) -> None:
        """Register a callable returning the route names that use a pool."""
        self._reference_sources.append(source)

    def references(self, pool_id: str) -> tuple[str, ...]:
        names: list[str] = []
        for source in self._reference_sources:
            names.extend(source(pool_id))
        return tuple(names)

    # -- queries -------------------------------------------------------------

    def get(self, pool_id: str) -> TargetPool:
        with self._lock:
            try:
                return self._pools[pool_id]
            except KeyError:
                raise PoolNotFoundError(pool_id) from None

    def pools(self, state: PoolState | None = None) -> list[TargetPool]:
        with self._lock:
            pools = list(self._pools.values())
        if state is not None:
            pools = [p for p in pools if p.state is state]
        return pools

    def list_endpoints(self, pool_id: str) -> frozenset[Endpoint]:
        return self.get(pool_id).endpoints

    def _next_color(self) -> PoolColor:
        active = self.pools(PoolState.ACTIVE)
        if not active:
            return PoolColor.BLUE
        return active[-1].color.opposite

    # -- lifecycle -----------------------------------------------------------

    def adopt(
        self,
        spec: PoolSpec,
        endpoints: Iterable[Endpoint],
        color: PoolColor = PoolColor.BLUE,
        pool_id: str = "",
    ) -> str:
        """Register an already-running fleet as the active pool."""
        pool = TargetPool(
            color=color,
            spec=spec,
            pool_id=pool_id,
            endpoints=frozenset(endpoints),
            state=PoolState.ACTIVE,
        )
        with self._lock:
            self._pools[pool.pool_id] = pool
        logger.info("Adopted running pool %s (%s)", pool.pool_id, spec.version)
        self._publish(pool.pool_id, None, PoolState.ACTIVE)
        return pool.pool_id

    def create(self, spec: PoolSpec, color: PoolColor | None = None) -> str:
        """Register a new pool in ``provisioning`` and request capacity.

        Raises
        ------
        ProvisionFailure
            If the substrate rejects the request.  The pool is retired.
        """
        pool = TargetPool(color=color or self._next_color(), spec=spec)
        with self._lock:
            self._pools[pool.pool_id] = pool
        self._publish(pool.pool_id, None, PoolState.PROVISIONING)
        logger.info(
            "Creating pool %s for %s:%s", pool.pool_id, spec.service, spec.version
        )
        try:
            self._substrate.provision(pool.pool_id, spec)
        except ProvisionFailure:
            self.mark_state(pool.pool_id, PoolState.RETIRED)
            raise
        return pool.pool_id

    def wait_until_ready(
        self,
        pool_id: str,
        timeout: float,
        poll_interval: float,
        cancel: threading.Event | None = None,
    ) -> frozenset[Endpoint]:
        """Poll the substrate readiness signal until the pool is ready.

        On readiness the endpoints are recorded and the pool becomes
        ``ready``.

        Raises
        ------
        ProvisionFailure
            If readiness is not reported within *timeout* seconds.
        DeploymentAborted
            If *cancel* is set while waiting.
        """
        pool = self.get(pool_id)
        deadline = self._clock.now() + timeout
        while True:
            if cancel is not None and cancel.is_set():
                raise DeploymentAborted(f"Provisioning of {pool_id} aborted")
            if self._substrate.is_ready(pool_id):
                endpoints = frozenset(self._substrate.endpoints(pool_id))
                with self._lock:
                    pool.endpoints = endpoints
                self.mark_state(pool_id, PoolState.READY)
                logger.info("Pool %s ready with %d endpoint(s)", pool_id, len(endpoints))
                return endpoints
            remaining = deadline - self._clock.now()
            if remaining <= 0:
                raise ProvisionFailure(
                    f"Pool {pool_id} not ready after {timeout:.0f}s",
                    pool_id=pool_id,
                )
            if self._clock.sleep(min(poll_interval, remaining), cancel):
                raise DeploymentAborted(f"Provisioning of {pool_id} aborted")

    def mark_state(self, pool_id: str, state: PoolState) -> None:
        """Move a pool through its lifecycle (validated)."""
        pool = self.get(pool_id)
        with self._lock:
            if pool.state is state:
                return
            previous = pool.transition(state)
        logger.debug("Pool %s: %s -> %s", pool_id, previous.value, state.value)
        self._publish(pool_id, previous, state)

    def retire(self, pool_id: str) -> None:
        """Tear down a pool no route refers to.

        Raises
        ------
        PoolInUseError
            If a route still references the pool.
        """
        pool = self.get(pool_id)
        if pool.is_retired:
            return
        routes = self.references(pool_id)
        if routes:
            raise PoolInUseError(pool_id=pool_id, routes=routes)
        self._substrate.teardown(pool_id)
        self.mark_state(pool_id, PoolState.RETIRED)
        logger.info("Retired pool %s", pool_id)

    # -- internals -----------------------------------------------------------

    def _publish(self, pool_id: str, previous: PoolState | None, new: PoolState) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(
                PoolStateChanged(
                    timestamp=self._clock.now(),
                    source_id="pools",
                    pool_id=pool_id,
                    previous_state=previous,
                    new_state=new,
                )
            )
