"""External collaborators consumed by the controller.

``ComputeSubstrate`` provisions and tears down fleet capacity;
``LoadBalancer`` maps listener ports to endpoint sets through atomic rule
replacement.  Real deployments implement these against their cloud APIs; the
in-memory implementations here back the CLI simulation and the test suite.
"""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

from blue_green.domain.exceptions import ProvisionFailure, RouteBindError
from blue_green.domain.values import Endpoint, PoolSpec

logger = logging.getLogger(__name__)


# ===================================================================== #
#  Interfaces                                                            #
# ===================================================================== #

class ComputeSubstrate(ABC):
    """Provisions compute capacity for a pool."""

    @abstractmethod
    def provision(self, pool_id: str, spec: PoolSpec) -> None:
        """Start provisioning capacity for *pool_id*.

        May raise ``ProvisionFailure`` if the request is rejected outright.
        """

    @abstractmethod
    def is_ready(self, pool_id: str) -> bool:
        """Readiness signal: ``True`` once every task of the pool is running."""

    @abstractmethod
    def endpoints(self, pool_id: str) -> tuple[Endpoint, ...]:
        """Endpoints currently registered for *pool_id*."""

    @abstractmethod
    def teardown(self, pool_id: str) -> None:
        """Release the capacity of *pool_id*."""


class LoadBalancer(ABC):
    """Load-balancer control plane with atomic rule replacement."""

    @abstractmethod
    def replace_rule(
        self,
        listener_port: int,
        pool_id: str,
        endpoints: Sequence[Endpoint],
    ) -> str:
        """Atomically replace the forward rule of *listener_port*.

        Returns a change id whose propagation can be polled with
        :meth:`is_propagated`.
        """

    @abstractmethod
    def is_propagated(self, change_id: str) -> bool:
        """``True`` once the change is live on every load-balancer node."""


# ===================================================================== #
#  In-memory compute substrate                                           #
# ===================================================================== #

@dataclass(frozen=True)
class ProvisionBehavior:
    """How the in-memory substrate treats one provisioning request.

    Attributes
    ----------
    ready_after_polls:
        Readiness polls answered ``False`` before the pool reports ready.
    fail:
        Reject the request immediately with ``ProvisionFailure``.
    never_ready:
        Accept the request but never report readiness.
    """

    ready_after_polls: int = 0
    fail: bool = False
    never_ready: bool = False


class InMemoryComputeSubstrate(ComputeSubstrate):
    """Simulated compute substrate.

    Each provisioning request consumes the next scripted ``ProvisionBehavior``
    (see :meth:`script`); once the script is exhausted the default behaviour
    applies.  Endpoints are synthesised as ``10.0.<pool>.<task>``.
    """

    def __init__(self, default: ProvisionBehavior | None = None) -> None:
        self._default = default or ProvisionBehavior()
        self._script: deque[ProvisionBehavior] = deque()
        self._lock = threading.Lock()
        self._pools: dict[str, tuple[PoolSpec, ProvisionBehavior]] = {}
        self._polls: dict[str, int] = {}
        self._endpoints: dict[str, tuple[Endpoint, ...]] = {}
        self._subnets = itertools.count(1)
        self.torn_down: list[str] = []

    def script(self, *behaviors: ProvisionBehavior) -> None:
        """Queue behaviours for the next provisioning requests, in order."""
        with self._lock:
            self._script.extend(behaviors)

    def provision(self, pool_id: str, spec: PoolSpec) -> None:
        with self._lock:
            behavior = self._script.popleft() if self._script else self._default
        self._provision(pool_id, spec, behavior)

    def _provision(self, pool_id: str, spec: PoolSpec, behavior: ProvisionBehavior) -> None:
        with self._lock:
            if behavior.fail:
                raise ProvisionFailure(
                    f"Substrate rejected capacity for {spec.service}:{spec.version}",
                    pool_id=pool_id,
                )
            subnet = next(self._subnets)
            self._pools[pool_id] = (spec, behavior)
            self._polls[pool_id] = 0
            self._endpoints[pool_id] = tuple(
                Endpoint(address=f"10.0.{subnet}.{10 + i}", port=spec.container_port)
                for i in range(spec.desired_count)
            )
        logger.debug("substrate: provisioning %s (%s)", pool_id, spec.version)

    def register_running(self, pool_id: str, spec: PoolSpec) -> tuple[Endpoint, ...]:
        """Register a pool that is already running and return its endpoints."""
        self._provision(pool_id, spec, ProvisionBehavior())
        return self.endpoints(pool_id)

    def is_ready(self, pool_id: str) -> bool:
        with self._lock:
            if pool_id not in self._pools:
                return False
            _, behavior = self._pools[pool_id]
            if behavior.never_ready:
                return False
            self._polls[pool_id] += 1
            return self._polls[pool_id] > behavior.ready_after_polls

    def endpoints(self, pool_id: str) -> tuple[Endpoint, ...]:
        with self._lock:
            return self._endpoints.get(pool_id, ())

    def teardown(self, pool_id: str) -> None:
        with self._lock:
            self._pools.pop(pool_id, None)
            self._polls.pop(pool_id, None)
            self._endpoints.pop(pool_id, None)
            self.torn_down.append(pool_id)
        logger.debug("substrate: tore down %s", pool_id)


# ===================================================================== #
#  In-memory load balancer                                               #
# ===================================================================== #

class InMemoryLoadBalancer(LoadBalancer):
    """Simulated load balancer with per-listener forward rules.

    Parameters
    ----------
    propagation_polls:
        ``is_propagated`` answers ``False`` this many times per change before
        acknowledging it.
    """

    def __init__(self, propagation_polls: int = 0) -> None:
        self._propagation_polls = propagation_polls
        self._lock = threading.Lock()
        self._rules: dict[int, tuple[str, tuple[Endpoint, ...]]] = {}
        self._pending: dict[str, int] = {}
        self._reject: set[int] = set()
        self._never_ack: set[int] = set()
        self._change_ports: dict[str, int] = {}
        self.changes: list[tuple[int, str]] = []

    def reject_next(self, listener_port: int) -> None:
        """Make the next rule replacement on *listener_port* fail."""
        with self._lock:
            self._reject.add(listener_port)

    def never_acknowledge(self, listener_port: int) -> None:
        """Stop acknowledging changes on *listener_port*."""
        with self._lock:
            self._never_ack.add(listener_port)

    def replace_rule(
        self,
        listener_port: int,
        pool_id: str,
        endpoints: Sequence[Endpoint],
    ) -> str:
        with self._lock:
            if listener_port in self._reject:
                self._reject.discard(listener_port)
                raise RouteBindError(
                    f"Listener {listener_port} rejected rule update",
                    pool_id=pool_id,
                )
            self._rules[listener_port] = (pool_id, tuple(endpoints))
            change_id = uuid.uuid4().hex[:12]
            self._pending[change_id] = self._propagation_polls
            self._change_ports[change_id] = listener_port
            self.changes.append((listener_port, pool_id))
        return change_id

    def is_propagated(self, change_id: str) -> bool:
        with self._lock:
            if self._change_ports.get(change_id) in self._never_ack:
                return False
            remaining = self._pending.get(change_id)
            if remaining is None:
                return False
            if remaining <= 0:
                return True
            self._pending[change_id] = remaining - 1
            return False

    def forward(self, listener_port: int) -> tuple[str, tuple[Endpoint, ...]] | None:
        """Return ``(pool_id, endpoints)`` currently served on *listener_port*."""
        with self._lock:
            return self._rules.get(listener_port)
