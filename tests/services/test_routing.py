"""Tests for RoutingTable: atomic rebinding and lock-free reads."""

from __future__ import annotations

import threading

import pytest

from blue_green.domain.enums import PoolState, RouteName
from blue_green.domain.events import RouteRebound
from blue_green.domain.exceptions import (
    BindConflictError,
    InvalidTargetError,
    PoolInUseError,
    PoolNotFoundError,
    RouteBindError,
    RouteNotFoundError,
)
from blue_green.domain.values import PoolSpec
from blue_green.infrastructure.config import RoutingConfig
from blue_green.infrastructure.event_bus import EventBus, EventStore
from blue_green.infrastructure.substrate import InMemoryLoadBalancer
from blue_green.services.pools import TargetPoolManager
from blue_green.services.routing import RoutingTable
from blue_green.testing.fakes import FakeClock


@pytest.fixture
def candidate_pool_id(pools: TargetPoolManager, running_pool_id: str, spec_v2: PoolSpec) -> str:
    pool_id = pools.create(spec_v2)
    pools.wait_until_ready(pool_id, timeout=10, poll_interval=1)
    return pool_id


@pytest.fixture
def routing(
    pools: TargetPoolManager,
    load_balancer: InMemoryLoadBalancer,
    running_pool_id: str,
    event_bus: EventBus,
    fake_clock: FakeClock,
) -> RoutingTable:
    return RoutingTable(
        pools,
        load_balancer,
        production_pool_id=running_pool_id,
        event_bus=event_bus,
        clock=fake_clock,
        ack_timeout=10.0,
        ack_poll_interval=1.0,
    )


class TestInitialBinding:
    def test_both_routes_start_on_production_pool(
        self, routing: RoutingTable, running_pool_id: str, load_balancer: InMemoryLoadBalancer
    ) -> None:
        assert routing.resolve(RouteName.PRODUCTION) == running_pool_id
        assert routing.resolve("test") == running_pool_id
        assert load_balancer.forward(80)[0] == running_pool_id  # type: ignore[index]
        assert load_balancer.forward(8080)[0] == running_pool_id  # type: ignore[index]

    def test_custom_ports(
        self,
        pools: TargetPoolManager,
        load_balancer: InMemoryLoadBalancer,
        running_pool_id: str,
    ) -> None:
        routing = RoutingTable(
            pools,
            load_balancer,
            running_pool_id,
            config=RoutingConfig(production_port=443, test_port=8443),
        )
        assert routing.route(RouteName.PRODUCTION).listener_port == 443
        assert load_balancer.forward(8443)[0] == running_pool_id  # type: ignore[index]

    def test_unknown_initial_pool(
        self, pools: TargetPoolManager, load_balancer: InMemoryLoadBalancer
    ) -> None:
        with pytest.raises(PoolNotFoundError):
            RoutingTable(pools, load_balancer, "nope")

    def test_unknown_route(self, routing: RoutingTable) -> None:
        with pytest.raises(RouteNotFoundError):
            routing.resolve("staging")

    def test_routes_referencing(self, routing: RoutingTable, running_pool_id: str) -> None:
        assert sorted(routing.routes_referencing(running_pool_id)) == ["production", "test"]
        assert routing.routes_referencing("other") == []


class TestBind:
    def test_bind_moves_route_and_balancer(
        self,
        routing: RoutingTable,
        candidate_pool_id: str,
        load_balancer: InMemoryLoadBalancer,
        event_store: EventStore,
    ) -> None:
        before = routing.route(RouteName.TEST)
        route = routing.bind(RouteName.TEST, candidate_pool_id)
        assert route.pool_id == candidate_pool_id
        assert route.generation == before.generation + 1
        assert routing.resolve(RouteName.TEST) == candidate_pool_id
        assert load_balancer.forward(8080)[0] == candidate_pool_id  # type: ignore[index]
        rebound = event_store.query(event_type=RouteRebound)
        assert rebound[-1].pool_id == candidate_pool_id  # type: ignore[attr-defined]

    def test_bind_is_idempotent(
        self,
        routing: RoutingTable,
        running_pool_id: str,
        load_balancer: InMemoryLoadBalancer,
    ) -> None:
        before = routing.route(RouteName.PRODUCTION)
        changes = len(load_balancer.changes)
        assert routing.bind(RouteName.PRODUCTION, running_pool_id) is before
        assert len(load_balancer.changes) == changes

    def test_bind_to_retired_pool(
        self, routing: RoutingTable, pools: TargetPoolManager, candidate_pool_id: str
    ) -> None:
        pools.retire(candidate_pool_id)
        with pytest.raises(InvalidTargetError):
            routing.bind(RouteName.TEST, candidate_pool_id)

    def test_rejected_change_leaves_route(
        self,
        routing: RoutingTable,
        candidate_pool_id: str,
        running_pool_id: str,
        load_balancer: InMemoryLoadBalancer,
    ) -> None:
        load_balancer.reject_next(80)
        with pytest.raises(RouteBindError) as exc_info:
            routing.bind(RouteName.PRODUCTION, candidate_pool_id)
        assert exc_info.value.route_name == "production"
        assert routing.resolve(RouteName.PRODUCTION) == running_pool_id

    def test_unacknowledged_change_is_reverted(
        self,
        routing: RoutingTable,
        candidate_pool_id: str,
        running_pool_id: str,
        load_balancer: InMemoryLoadBalancer,
        fake_clock: FakeClock,
    ) -> None:
        load_balancer.never_acknowledge(80)
        start = fake_clock.now()
        with pytest.raises(RouteBindError, match="acknowledge"):
            routing.bind(RouteName.PRODUCTION, candidate_pool_id)
        assert fake_clock.now() - start == pytest.approx(10.0)
        assert routing.resolve(RouteName.PRODUCTION) == running_pool_id
        assert load_balancer.forward(80)[0] == running_pool_id  # type: ignore[index]

    def test_waits_for_propagation(
        self,
        pools: TargetPoolManager,
        running_pool_id: str,
        candidate_pool_id: str,
        fake_clock: FakeClock,
    ) -> None:
        lb = InMemoryLoadBalancer(propagation_polls=3)
        routing = RoutingTable(
            pools, lb, running_pool_id, clock=fake_clock, ack_timeout=10, ack_poll_interval=1
        )
        start = fake_clock.now()
        routing.bind(RouteName.TEST, candidate_pool_id)
        assert fake_clock.now() - start == pytest.approx(3.0)

    def test_routed_pool_cannot_be_retired(
        self, routing: RoutingTable, pools: TargetPoolManager, candidate_pool_id: str
    ) -> None:
        routing.bind(RouteName.TEST, candidate_pool_id)
        with pytest.raises(PoolInUseError):
            pools.retire(candidate_pool_id)
        assert pools.get(candidate_pool_id).state is PoolState.READY


class TestCompareAndBind:
    def test_swaps_when_expected(
        self, routing: RoutingTable, running_pool_id: str, candidate_pool_id: str
    ) -> None:
        routing.compare_and_bind(RouteName.PRODUCTION, running_pool_id, candidate_pool_id)
        assert routing.resolve(RouteName.PRODUCTION) == candidate_pool_id

    def test_conflict(
        self, routing: RoutingTable, running_pool_id: str, candidate_pool_id: str
    ) -> None:
        with pytest.raises(BindConflictError) as exc_info:
            routing.compare_and_bind(RouteName.PRODUCTION, candidate_pool_id, running_pool_id)
        assert exc_info.value.actual_pool_id == running_pool_id
        assert routing.resolve(RouteName.PRODUCTION) == running_pool_id


class TestConcurrentReaders:
    def test_readers_only_see_bound_pools(
        self,
        routing: RoutingTable,
        running_pool_id: str,
        candidate_pool_id: str,
    ) -> None:
        valid = {running_pool_id, candidate_pool_id}
        seen: set[str] = set()
        stop = threading.Event()
        errors: list[Exception] = []

        def reader() -> None:
            try:
                while not stop.is_set():
                    seen.add(routing.resolve(RouteName.PRODUCTION))
            except Exception as exc:
                errors.append(exc)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        try:
            for i in range(200):
                target = candidate_pool_id if i % 2 == 0 else running_pool_id
                routing.bind(RouteName.PRODUCTION, target)
        finally:
            stop.set()
            for t in readers:
                t.join(timeout=5)

        assert errors == []
        assert seen <= valid
        assert routing.route(RouteName.PRODUCTION).generation == 201

    def test_concurrent_writers_serialise(
        self,
        routing: RoutingTable,
        running_pool_id: str,
        candidate_pool_id: str,
    ) -> None:
        results: list[str] = []
        lock = threading.Lock()

        def writer() -> None:
            try:
                routing.compare_and_bind(
                    RouteName.PRODUCTION, running_pool_id, candidate_pool_id
                )
                outcome = "bound"
            except BindConflictError:
                outcome = "conflict"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=writer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert results.count("bound") == 1
        assert results.count("conflict") == 7
