"""Shared fixtures for the blue-green controller test suite."""

from __future__ import annotations

import pytest

from blue_green.domain.enums import PoolColor
from blue_green.domain.values import PoolSpec
from blue_green.infrastructure.event_bus import EventBus, EventStore
from blue_green.infrastructure.substrate import (
    InMemoryComputeSubstrate,
    InMemoryLoadBalancer,
)
from blue_green.services.pools import TargetPoolManager
from blue_green.testing.fakes import (
    FakeClock,
    InMemoryStack,
    ScriptedProbe,
    build_in_memory_stack,
)

# ---------------------------------------------------------------------------
# Value-object fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def spec_v1() -> PoolSpec:
    return PoolSpec(service="web", version="v1")


@pytest.fixture
def spec_v2() -> PoolSpec:
    return PoolSpec(service="web", version="v2")


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def event_store(event_bus: EventBus) -> EventStore:
    """A store recording every event published on ``event_bus``."""
    store = EventStore()
    event_bus.subscribe_all(store.append)
    return store


@pytest.fixture
def substrate() -> InMemoryComputeSubstrate:
    return InMemoryComputeSubstrate()


@pytest.fixture
def load_balancer() -> InMemoryLoadBalancer:
    return InMemoryLoadBalancer()


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pools(
    substrate: InMemoryComputeSubstrate,
    event_bus: EventBus,
    fake_clock: FakeClock,
) -> TargetPoolManager:
    return TargetPoolManager(substrate, event_bus=event_bus, clock=fake_clock)


@pytest.fixture
def running_pool_id(
    pools: TargetPoolManager,
    substrate: InMemoryComputeSubstrate,
    spec_v1: PoolSpec,
) -> str:
    """An adopted, active blue pool serving v1."""
    endpoints = substrate.register_running("blue-running", spec_v1)
    return pools.adopt(spec_v1, endpoints, color=PoolColor.BLUE, pool_id="blue-running")


@pytest.fixture
def stack() -> InMemoryStack:
    """A complete controller with default configuration."""
    return build_in_memory_stack()

