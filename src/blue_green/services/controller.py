"""Deployment controller -- the operator surface of the blue-green cycle.

``DeploymentController`` owns the deployment records and runs one cycle at a
time through the compiled deployment graph::

    Idle -> Provisioning -> TestValidating -> CuttingOver -> Baking
         -> Finalizing | RollingBack -> Idle

Every transition goes through :meth:`DeploymentController._enter`, which
updates the record under the controller lock and publishes
``DeploymentStateChanged``; the graph nodes make every other record write
through :meth:`DeploymentController._mutate`, under the same lock.  Operator
aborts set a cancel event that the cycle observes at its next suspension
point.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from blue_green.domain.entities import DeploymentRecord
from blue_green.domain.enums import ControllerState, DeploymentOutcome, RouteName
from blue_green.domain.events import (
    DeploymentAbortRequested,
    DeploymentCompleted,
    DeploymentStarted,
    DeploymentStateChanged,
    DomainEvent,
)
from blue_green.domain.exceptions import (
    AbortNotAllowedError,
    DeploymentAborted,
    DeploymentInProgressError,
    DeploymentNotFoundError,
    UnresolvedDeploymentError,
)
from blue_green.domain.values import PoolSpec
from blue_green.infrastructure.clock import Clock, SystemClock
from blue_green.infrastructure.config import ControllerConfig
from blue_green.infrastructure.event_bus import EventBus
from blue_green.services.bake import BakeSupervisor
from blue_green.services.health import HealthMonitor
from blue_green.services.pools import TargetPoolManager
from blue_green.services.routing import RoutingTable

logger = logging.getLogger(__name__)

_ABORTABLE_STATES = frozenset({
    ControllerState.IDLE,
    ControllerState.PROVISIONING,
    ControllerState.TEST_VALIDATING,
    ControllerState.BAKING,
})


class DeploymentController:
    """Runs blue-green deployment cycles for one service.

    Parameters
    ----------
    pools:
        Pool manager holding the previous and candidate pools.
    routing:
        Routing table whose production route is flipped.
    monitor:
        Health monitor used during test validation.
    supervisor:
        Bake supervisor used after cutover.
    event_bus:
        Bus receiving the deployment lifecycle events.
    config:
        Timing and retry budgets.
    clock:
        Time source for timestamps and cooperative waits.
    """

    def __init__(
        self,
        pools: TargetPoolManager,
        routing: RoutingTable,
        monitor: HealthMonitor,
        supervisor: BakeSupervisor,
        event_bus: EventBus | None = None,
        config: ControllerConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        from blue_green.graph.graph import build_deployment_graph

        self._pools = pools
        self._routing = routing
        self._event_bus = event_bus or EventBus()
        self._config = config or ControllerConfig()
        self._config.validate()
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._records: dict[str, DeploymentRecord] = {}
        self._active: DeploymentRecord | None = None
        self._cancel: threading.Event | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._graph = build_deployment_graph(
            pools=pools,
            routing=routing,
            monitor=monitor,
            supervisor=supervisor,
            config=self._config,
            clock=self._clock,
            enter=self._enter,
            mutate=self._mutate,
        )

    # -- read-only -----------------------------------------------------------

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def state(self) -> ControllerState:
        with self._lock:
            return self._active.state if self._active is not None else ControllerState.IDLE

    @property
    def current(self) -> DeploymentRecord | None:
        """Snapshot of the in-flight deployment, or ``None`` when idle."""
        with self._lock:
            return self._active.snapshot() if self._active is not None else None

    def status(self, deployment_id: str) -> DeploymentRecord:
        """Return a detached copy of a deployment record.

        Raises
        ------
        DeploymentNotFoundError
            If the controller never issued *deployment_id*.
        """
        with self._lock:
            record = self._records.get(deployment_id)
            if record is None:
                raise DeploymentNotFoundError(deployment_id)
            return record.snapshot()

    def history(self) -> list[DeploymentRecord]:
        """All records, oldest first."""
        with self._lock:
            return [r.snapshot() for r in self._records.values()]

    # -- operator surface ----------------------------------------------------

    def start_deployment(
        self,
        spec: PoolSpec,
        bake_duration: float | None = None,
    ) -> DeploymentRecord:
        """Run a full deployment cycle in the caller's thread.

        Returns the final record (outcome finalized, rolled_back or aborted).

        Raises
        ------
        DeploymentInProgressError
            If another cycle is not idle.
        UnresolvedDeploymentError
            If finalizing or rolling back failed and manual intervention is
            required.  The exception carries the final record.
        """
        record, cancel = self._reserve(spec, bake_duration)
        return self._run(record, spec, cancel)

    def submit_deployment(
        self,
        spec: PoolSpec,
        bake_duration: float | None = None,
    ) -> Future[DeploymentRecord]:
        """Reserve a cycle now and run it on the controller's worker thread.

        ``DeploymentInProgressError`` is raised to the caller immediately;
        the returned future resolves to the final record.
        """
        record, cancel = self._reserve(spec, bake_duration)
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="blue-green"
                )
            executor = self._executor
        return executor.submit(self._run, record, spec, cancel)

    def abort_deployment(self, deployment_id: str) -> DeploymentRecord:
        """Request an abort of the in-flight deployment.

        The cycle rolls back at its next suspension point and completes with
        outcome ``aborted``.  Repeated requests are no-ops.

        Raises
        ------
        DeploymentNotFoundError
            Unknown deployment.
        AbortNotAllowedError
            The deployment already completed, or is cutting over, finalizing
            or rolling back.
        """
        with self._lock:
            record = self._records.get(deployment_id)
            if record is None:
                raise DeploymentNotFoundError(deployment_id)
            if record is not self._active or record.outcome is not None:
                state = record.outcome.value if record.outcome is not None else record.state.value
                raise AbortNotAllowedError(deployment_id=deployment_id, state=state)
            if record.state not in _ABORTABLE_STATES:
                raise AbortNotAllowedError(
                    deployment_id=deployment_id, state=record.state.value
                )
            if record.abort_requested:
                return record.snapshot()
            record.abort_requested = True
            if self._cancel is not None:
                self._cancel.set()
            state = record.state
            snapshot = record.snapshot()

        logger.warning("%s: abort requested while %s", deployment_id, state.value)
        self._publish(
            DeploymentAbortRequested(
                timestamp=self._clock.now(),
                source_id="controller",
                deployment_id=deployment_id,
                state=state,
            )
        )
        return snapshot

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker thread used by :meth:`submit_deployment`."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    # -- cycle ---------------------------------------------------------------

    def _reserve(
        self,
        spec: PoolSpec,
        bake_duration: float | None,
    ) -> tuple[DeploymentRecord, threading.Event]:
        bake = self._config.bake_duration_seconds if bake_duration is None else bake_duration
        if bake <= 0:
            raise ValueError(f"bake_duration must be > 0, got {bake}")

        with self._lock:
            if self._active is not None:
                raise DeploymentInProgressError(self._active.deployment_id)
            record = DeploymentRecord(
                service=spec.service,
                previous_pool_id=self._routing.resolve(RouteName.PRODUCTION),
                started_at=self._clock.now(),
                bake_duration=bake,
            )
            cancel = threading.Event()
            self._records[record.deployment_id] = record
            self._active = record
            self._cancel = cancel

        logger.info(
            "%s: deploying %s:%s (production on %s, bake %.0fs)",
            record.deployment_id, spec.service, spec.version,
            record.previous_pool_id, bake,
        )
        self._publish(
            DeploymentStarted(
                timestamp=record.started_at,
                source_id="controller",
                deployment_id=record.deployment_id,
                service=spec.service,
                version=spec.version,
                previous_pool_id=record.previous_pool_id,
                bake_duration=bake,
            )
        )
        return record, cancel

    def _run(
        self,
        record: DeploymentRecord,
        spec: PoolSpec,
        cancel: threading.Event,
    ) -> DeploymentRecord:
        outcome = DeploymentOutcome.ABORTED
        try:
            result = self._graph.invoke(
                {
                    "record": record,
                    "spec": spec,
                    "bake_duration": record.bake_duration,
                    "cancel": cancel,
                    "reason": f"deploying {spec.service}:{spec.version}",
                    "trace": [],
                }
            )
            outcome = result.get("outcome") or DeploymentOutcome.ABORTED
        except Exception as exc:
            logger.exception("%s: deployment cycle crashed", record.deployment_id)
            with self._lock:
                record.unresolved_error = (
                    record.unresolved_error or f"{type(exc).__name__}: {exc}"
                )
        finally:
            self._complete(record, outcome)

        snapshot = self.status(record.deployment_id)
        if snapshot.is_unresolved:
            raise UnresolvedDeploymentError(
                f"Deployment {record.deployment_id} needs manual intervention: "
                f"{snapshot.unresolved_error}",
                record=snapshot,
            )
        return snapshot

    def _complete(self, record: DeploymentRecord, outcome: DeploymentOutcome) -> None:
        now = self._clock.now()
        with self._lock:
            record.complete(outcome, at=now)
        self._enter(record, ControllerState.IDLE, f"deployment {outcome.value}")
        with self._lock:
            self._active = None
            self._cancel = None

        log = logger.error if record.is_unresolved else logger.info
        log("%s: completed with outcome %s", record.deployment_id, outcome.value)
        self._publish(
            DeploymentCompleted(
                timestamp=now,
                source_id="controller",
                deployment_id=record.deployment_id,
                outcome=outcome,
                previous_pool_id=record.previous_pool_id,
                candidate_pool_id=record.candidate_pool_id or "",
                failure=record.failure,
                unresolved_error=record.unresolved_error,
            )
        )

    def _mutate(
        self, record: DeploymentRecord, change: Callable[[DeploymentRecord], None]
    ) -> None:
        """Apply *change* to *record* while holding the controller lock."""
        with self._lock:
            change(record)

    def _enter(
        self,
        record: DeploymentRecord,
        new_state: ControllerState,
        reason: str = "",
        *,
        abortable: bool = True,
    ) -> None:
        """Record ``record.state -> new_state`` and publish it.

        Raises
        ------
        DeploymentAborted
            When *abortable* is false and an abort was already accepted.
        """
        with self._lock:
            if not abortable and record.abort_requested:
                raise DeploymentAborted(
                    f"Deployment {record.deployment_id} aborted before {new_state.value}"
                )
            transition = record.enter(new_state, reason, at=self._clock.now())

        logger.info(
            "%s: %s -> %s%s",
            record.deployment_id,
            transition.previous_state.value,
            new_state.value,
            f" ({reason})" if reason else "",
        )
        self._publish(
            DeploymentStateChanged(
                timestamp=transition.timestamp,
                source_id="controller",
                deployment_id=record.deployment_id,
                previous_state=transition.previous_state,
                new_state=new_state,
                previous_pool_id=record.previous_pool_id,
                candidate_pool_id=record.candidate_pool_id or "",
                reason=reason,
            )
        )

    def _publish(self, event: DomainEvent) -> None:
        self._event_bus.publish(event)
