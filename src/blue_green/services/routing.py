"""Production and test routes with atomic rebinding.

Each route is an immutable ``Route`` object held in a dict slot.  Writers are
serialised by a lock and publish a new ``Route`` only after the load balancer
has acknowledged the rule change, so ``resolve()`` can read the slot without
locking and never observes a half-applied binding.
"""

from __future__ import annotations

import logging
import threading

from blue_green.domain.enums import RouteName
from blue_green.domain.events import RouteRebound
from blue_green.domain.exceptions import (
    BindConflictError,
    BlueGreenError,
    InvalidTargetError,
    RouteBindError,
    RouteNotFoundError,
)
from blue_green.domain.values import Route
from blue_green.infrastructure.clock import Clock, SystemClock
from blue_green.infrastructure.config import RoutingConfig
from blue_green.infrastructure.event_bus import EventBus
from blue_green.infrastructure.substrate import LoadBalancer
from blue_green.services.pools import TargetPoolManager

logger = logging.getLogger(__name__)


def _route_key(route_name: RouteName | str) -> RouteName:
    if isinstance(route_name, RouteName):
        return route_name
    try:
        return RouteName(route_name)
    except ValueError:
        raise RouteNotFoundError(str(route_name)) from None


class RoutingTable:
    """A production route and a test route, each bound to exactly one pool.

    Parameters
    ----------
    pools:
        The pool manager the routes point into.
    load_balancer:
        Control plane receiving the forward-rule updates.
    production_pool_id:
        Initial production pool.
    test_pool_id:
        Initial test pool; defaults to the production pool.
    config:
        Listener ports of the two routes.
    ack_timeout:
        Seconds to wait for the load balancer to acknowledge a change.
    ack_poll_interval:
        Pause between acknowledgement polls.
    """

    def __init__(
        self,
        pools: TargetPoolManager,
        load_balancer: LoadBalancer,
        production_pool_id: str,
        test_pool_id: str | None = None,
        config: RoutingConfig | None = None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        ack_timeout: float = 30.0,
        ack_poll_interval: float = 1.0,
    ) -> None:
        self._pools = pools
        self._lb = load_balancer
        self._config = config or RoutingConfig()
        self._config.validate()
        self._event_bus = event_bus
        self._clock = clock or SystemClock()
        self._ack_timeout = ack_timeout
        self._ack_poll_interval = ack_poll_interval
        self._write_lock = threading.Lock()
        self._ports = {
            RouteName.PRODUCTION: self._config.production_port,
            RouteName.TEST: self._config.test_port,
        }
        self._routes: dict[RouteName, Route] = {}

        initial = {
            RouteName.PRODUCTION: production_pool_id,
            RouteName.TEST: test_pool_id or production_pool_id,
        }
        for name, pool_id in initial.items():
            self._check_target(name, pool_id)
            self._apply(name, pool_id)
            self._routes[name] = Route(
                name=name,
                pool_id=pool_id,
                listener_port=self._ports[name],
                bound_at=self._clock.now(),
            )
        pools.register_reference_source(self.routes_referencing)

    # -- reads (never block) -------------------------------------------------

    def resolve(self, route_name: RouteName | str) -> str:
        """Return the pool id the route currently forwards to."""
        return self.route(route_name).pool_id

    def route(self, route_name: RouteName | str) -> Route:
        key = _route_key(route_name)
        route = self._routes.get(key)
        if route is None:
            raise RouteNotFoundError(key.value)
        return route

    def routes(self) -> dict[RouteName, Route]:
        return dict(self._routes)

    def routes_referencing(self, pool_id: str) -> list[str]:
        return [r.name.value for r in list(self._routes.values()) if r.pool_id == pool_id]

    # -- writes --------------------------------------------------------------

    def bind(self, route_name: RouteName | str, pool_id: str) -> Route:
        """Point *route_name* at *pool_id* in a single atomic step.

        Idempotent: binding a route to the pool it already resolves to is a
        no-op.

        Raises
        ------
        RouteNotFoundError
            Unknown route.
        InvalidTargetError
            The pool is retired.
        RouteBindError
            The load balancer rejected or never acknowledged the change.
        """
        key = _route_key(route_name)
        with self._write_lock:
            return self._bind_locked(key, pool_id)

    def compare_and_bind(
        self,
        route_name: RouteName | str,
        expected_pool_id: str,
        pool_id: str,
    ) -> Route:
        """Rebind only if the route still resolves to *expected_pool_id*.

        Raises
        ------
        BindConflictError
            If the route moved since the caller last resolved it.
        """
        key = _route_key(route_name)
        with self._write_lock:
            current = self.route(key)
            if current.pool_id != expected_pool_id:
                raise BindConflictError(
                    route_name=key.value,
                    expected_pool_id=expected_pool_id,
                    actual_pool_id=current.pool_id,
                )
            return self._bind_locked(key, pool_id)

    # -- internals -----------------------------------------------------------

    def _check_target(self, key: RouteName, pool_id: str) -> None:
        pool = self._pools.get(pool_id)
        if pool.is_retired:
            raise InvalidTargetError(route_name=key.value, pool_id=pool_id)

    def _bind_locked(self, key: RouteName, pool_id: str) -> Route:
        current = self.route(key)
        self._check_target(key, pool_id)
        if current.pool_id == pool_id:
            return current

        self._apply(key, pool_id, revert_to=current.pool_id)
        route = Route(
            name=key,
            pool_id=pool_id,
            listener_port=current.listener_port,
            generation=current.generation + 1,
            bound_at=self._clock.now(),
        )
        self._routes[key] = route
        logger.info(
            "Route %s: %s -> %s (generation %d)",
            key.value, current.pool_id, pool_id, route.generation,
        )
        if self._event_bus is not None:
            self._event_bus.publish(
                RouteRebound(
                    timestamp=route.bound_at,
                    source_id="routing",
                    route=key,
                    previous_pool_id=current.pool_id,
                    pool_id=pool_id,
                    generation=route.generation,
                )
            )
        return route

    def _apply(self, key: RouteName, pool_id: str, revert_to: str | None = None) -> None:
        """Replace the load-balancer rule and wait for its acknowledgement.

        If the change is never acknowledged the rule is pointed back at
        *revert_to* so the balancer agrees with the unchanged route.
        """
        port = self._ports[key]
        endpoints = sorted(self._pools.list_endpoints(pool_id), key=str)
        try:
            change_id = self._lb.replace_rule(port, pool_id, endpoints)
        except RouteBindError as exc:
            raise RouteBindError(
                str(exc), route_name=key.value, pool_id=pool_id, details=exc.details
            ) from exc
        except BlueGreenError:
            raise
        except Exception as exc:
            raise RouteBindError(
                f"Load balancer failed to update listener {port}: {exc}",
                route_name=key.value,
                pool_id=pool_id,
            ) from exc

        deadline = self._clock.now() + self._ack_timeout
        while not self._lb.is_propagated(change_id):
            remaining = deadline - self._clock.now()
            if remaining <= 0:
                if revert_to is not None:
                    self._revert(port, revert_to)
                raise RouteBindError(
                    f"Listener {port} did not acknowledge change {change_id} "
                    f"within {self._ack_timeout:.0f}s",
                    route_name=key.value,
                    pool_id=pool_id,
                )
            self._clock.sleep(min(self._ack_poll_interval, remaining))

    def _revert(self, port: int, pool_id: str) -> None:
        endpoints = sorted(self._pools.list_endpoints(pool_id), key=str)
        try:
            self._lb.replace_rule(port, pool_id, endpoints)
        except Exception:
            logger.exception("Failed to restore listener %d to pool %s", port, pool_id)
