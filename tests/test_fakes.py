"""Tests for the deterministic fakes and the in-memory stack builder."""

from __future__ import annotations

import pytest

from blue_green.domain.enums import PoolColor, PoolState, RouteName
from blue_green.domain.exceptions import MonitorUnavailableError
from blue_green.domain.values import Endpoint
from blue_green.infrastructure.config import ControllerConfig, HealthCheckConfig, RoutingConfig
from blue_green.infrastructure.probes import ProbeResult
from blue_green.testing.fakes import FakeClock, ScriptedProbe, build_in_memory_stack

_EP = Endpoint("10.0.0.1")
_CFG = HealthCheckConfig()


class TestScriptedProbe:
    def test_default_healthy(self) -> None:
        assert ScriptedProbe().probe(_EP, _CFG).success is True
        assert ScriptedProbe(healthy=False).probe(_EP, _CFG).success is False

    def test_script_then_default(self) -> None:
        probe = ScriptedProbe()
        probe.script(False, ProbeResult(success=True, latency_ms=7.0))
        first = probe.probe(_EP, _CFG)
        assert first.success is False
        assert first.error == "scripted failure"
        assert probe.probe(_EP, _CFG).latency_ms == 7.0
        assert probe.probe(_EP, _CFG).success is True
        assert probe.calls == [_EP, _EP, _EP]

    def test_scripted_exception(self) -> None:
        probe = ScriptedProbe()
        probe.script(MonitorUnavailableError("down"))
        with pytest.raises(MonitorUnavailableError):
            probe.probe(_EP, _CFG)

    def test_set_down_overrides_script(self) -> None:
        probe = ScriptedProbe()
        probe.set_down("10.0.0.1")
        probe.script(True)
        assert probe.probe(_EP, _CFG).success is False
        assert probe.probe(Endpoint("10.0.0.2"), _CFG).success is True
        probe.set_down("10.0.0.1", down=False)
        assert probe.probe(_EP, _CFG).success is True

    def test_set_default(self) -> None:
        probe = ScriptedProbe()
        probe.set_default(False)
        assert probe.probe(_EP, _CFG).success is False


class TestBuildInMemoryStack:
    def test_initial_pool_serves_both_routes(self) -> None:
        stack = build_in_memory_stack(service="api", version="v7", desired_count=3)
        pool = stack.pools.get(stack.initial_pool_id)
        assert pool.color is PoolColor.BLUE
        assert pool.state is PoolState.ACTIVE
        assert pool.spec.version == "v7"
        assert len(pool.endpoints) == 3
        assert stack.routing.resolve(RouteName.PRODUCTION) == stack.initial_pool_id
        assert stack.routing.resolve(RouteName.TEST) == stack.initial_pool_id

    def test_defaults(self) -> None:
        stack = build_in_memory_stack()
        assert isinstance(stack.clock, FakeClock)
        assert isinstance(stack.probe, ScriptedProbe)
        assert stack.controller.current is None

    def test_custom_configs(self) -> None:
        stack = build_in_memory_stack(
            controller_config=ControllerConfig(bake_duration_seconds=15),
            routing_config=RoutingConfig(production_port=443, test_port=8443),
        )
        assert stack.routing.route(RouteName.PRODUCTION).listener_port == 443
        forwarded = stack.load_balancer.forward(8443)
        assert forwarded is not None
        assert forwarded[0] == stack.initial_pool_id

    def test_events_reach_store_and_audit(self) -> None:
        stack = build_in_memory_stack()
        record = stack.controller.start_deployment(
            stack.pools.get(stack.initial_pool_id).spec, bake_duration=10
        )
        assert len(stack.event_store) > 0
        assert stack.audit_trail.query(deployment_id=record.deployment_id)
