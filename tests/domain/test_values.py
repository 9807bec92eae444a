"""Tests for value objects and enums."""

from __future__ import annotations

import dataclasses

import pytest

from blue_green.domain.enums import PoolColor, RouteName
from blue_green.domain.values import (
    Endpoint,
    EndpointHealth,
    HealthVerdict,
    PoolSpec,
    Route,
)


class TestEndpoint:
    def test_str(self) -> None:
        assert str(Endpoint(address="10.0.1.10", port=8080)) == "10.0.1.10:8080"

    def test_defaults(self) -> None:
        ep = Endpoint(address="10.0.1.10")
        assert ep.port == 80
        assert ep.protocol == "HTTP"

    def test_value_equality_and_hashing(self) -> None:
        a = Endpoint(address="10.0.1.10", port=80)
        b = Endpoint(address="10.0.1.10", port=80)
        assert a == b
        assert len({a, b}) == 1

    def test_frozen(self) -> None:
        ep = Endpoint(address="10.0.1.10")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ep.port = 81  # type: ignore[misc]

    def test_rejects_empty_address(self) -> None:
        with pytest.raises(ValueError, match="address"):
            Endpoint(address="")

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_rejects_bad_port(self, port: int) -> None:
        with pytest.raises(ValueError, match="port"):
            Endpoint(address="10.0.1.10", port=port)


class TestPoolSpec:
    def test_defaults_match_fargate_service(self) -> None:
        spec = PoolSpec(service="web", version="v1")
        assert spec.desired_count == 1
        assert spec.cpu == 256
        assert spec.memory_mib == 512
        assert spec.container_port == 80

    def test_rejects_empty_service(self) -> None:
        with pytest.raises(ValueError, match="service"):
            PoolSpec(service="", version="v1")

    def test_rejects_zero_tasks(self) -> None:
        with pytest.raises(ValueError, match="desired_count"):
            PoolSpec(service="web", version="v1", desired_count=0)


class TestHealthVerdict:
    def test_fraction(self) -> None:
        ep = Endpoint(address="10.0.1.10")
        verdict = HealthVerdict(
            pool_id="green-1",
            healthy=False,
            healthy_count=1,
            total=4,
            endpoints=(EndpointHealth(endpoint=ep, healthy=True),),
        )
        assert verdict.fraction == pytest.approx(0.25)

    def test_empty_pool_fraction_is_zero(self) -> None:
        verdict = HealthVerdict(pool_id="green-1", healthy=False, healthy_count=0, total=0)
        assert verdict.fraction == 0.0


class TestRoute:
    def test_defaults(self) -> None:
        route = Route(name=RouteName.PRODUCTION, pool_id="blue-1", listener_port=80)
        assert route.generation == 1

    def test_replace_creates_new_object(self) -> None:
        route = Route(name=RouteName.TEST, pool_id="blue-1", listener_port=8080)
        moved = dataclasses.replace(route, pool_id="green-1", generation=2)
        assert route.pool_id == "blue-1"
        assert moved.pool_id == "green-1"


class TestPoolColor:
    def test_opposite(self) -> None:
        assert PoolColor.BLUE.opposite is PoolColor.GREEN
        assert PoolColor.GREEN.opposite is PoolColor.BLUE
