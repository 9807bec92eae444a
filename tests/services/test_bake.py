"""Tests for BakeSupervisor."""

from __future__ import annotations

import threading

import pytest

from blue_green.domain.enums import BakeOutcome
from blue_green.domain.events import BakeCompleted, BakePolled
from blue_green.domain.exceptions import MonitorUnavailableError
from blue_green.infrastructure.config import HealthCheckConfig
from blue_green.infrastructure.event_bus import EventBus, EventStore
from blue_green.services.bake import BakeSupervisor
from blue_green.services.health import HealthMonitor
from blue_green.services.pools import TargetPoolManager
from blue_green.testing.fakes import FakeClock, ScriptedProbe


@pytest.fixture
def supervisor(
    pools: TargetPoolManager,
    probe: ScriptedProbe,
    event_bus: EventBus,
    fake_clock: FakeClock,
) -> BakeSupervisor:
    monitor = HealthMonitor(
        pools,
        config=HealthCheckConfig(healthy_threshold_count=1, unhealthy_threshold_count=1),
        probe=probe,
        event_bus=event_bus,
        clock=fake_clock,
    )
    return BakeSupervisor(monitor, clock=fake_clock, event_bus=event_bus)


class TestBakeWindow:
    def test_passes_after_full_window(
        self,
        supervisor: BakeSupervisor,
        running_pool_id: str,
        fake_clock: FakeClock,
        event_store: EventStore,
    ) -> None:
        start = fake_clock.now()
        outcome = supervisor.supervise(running_pool_id, duration=25, poll_interval=10)
        assert outcome is BakeOutcome.PASSED
        assert fake_clock.now() - start == pytest.approx(25)
        assert fake_clock.sleeps == [10, 10, 5]
        polls = event_store.query(event_type=BakePolled)
        assert [p.poll_number for p in polls] == [1, 2, 3]  # type: ignore[attr-defined]
        done = event_store.query(event_type=BakeCompleted)
        assert done[0].outcome is BakeOutcome.PASSED  # type: ignore[attr-defined]
        assert done[0].polls == 3  # type: ignore[attr-defined]

    def test_fails_fast_on_unhealthy_poll(
        self,
        supervisor: BakeSupervisor,
        running_pool_id: str,
        probe: ScriptedProbe,
        fake_clock: FakeClock,
    ) -> None:
        probe.script(True, False)
        start = fake_clock.now()
        outcome = supervisor.supervise(running_pool_id, duration=120, poll_interval=10)
        assert outcome is BakeOutcome.FAILED
        assert fake_clock.now() - start == pytest.approx(20)

    def test_default_health_config_fails_on_second_poll(
        self,
        pools: TargetPoolManager,
        running_pool_id: str,
        probe: ScriptedProbe,
        fake_clock: FakeClock,
        event_store: EventStore,
        event_bus: EventBus,
    ) -> None:
        monitor = HealthMonitor(pools, probe=probe, event_bus=event_bus, clock=fake_clock)
        # two passing checks, as on the test route before cutover
        monitor.check(running_pool_id)
        assert monitor.check(running_pool_id).healthy is True

        supervisor = BakeSupervisor(monitor, clock=fake_clock, event_bus=event_bus)
        probe.script(True, False)
        start = fake_clock.now()
        outcome = supervisor.supervise(running_pool_id, duration=20, poll_interval=10)

        assert outcome is BakeOutcome.FAILED
        assert fake_clock.now() - start == pytest.approx(20)
        polls = event_store.query(event_type=BakePolled)
        assert [p.healthy for p in polls] == [True, False]  # type: ignore[attr-defined]

    def test_fails_closed_when_monitor_unavailable(
        self,
        supervisor: BakeSupervisor,
        running_pool_id: str,
        probe: ScriptedProbe,
        event_store: EventStore,
    ) -> None:
        probe.script(MonitorUnavailableError("metrics API down"))
        outcome = supervisor.supervise(running_pool_id, duration=60, poll_interval=10)
        assert outcome is BakeOutcome.FAILED
        polls = event_store.query(event_type=BakePolled)
        assert polls[0].error == "metrics API down"  # type: ignore[attr-defined]
        assert polls[0].healthy is False  # type: ignore[attr-defined]

    def test_cancel_ends_window(
        self,
        supervisor: BakeSupervisor,
        running_pool_id: str,
        fake_clock: FakeClock,
        event_store: EventStore,
    ) -> None:
        cancel = threading.Event()
        fake_clock.call_after(15, cancel.set)
        outcome = supervisor.supervise(
            running_pool_id, duration=120, poll_interval=10, cancel=cancel
        )
        assert outcome is BakeOutcome.FAILED
        done = event_store.query(event_type=BakeCompleted)
        assert done[0].polls == 1  # type: ignore[attr-defined]

    def test_poll_interval_longer_than_window(
        self, supervisor: BakeSupervisor, running_pool_id: str, fake_clock: FakeClock
    ) -> None:
        assert supervisor.supervise(running_pool_id, duration=3, poll_interval=10) is (
            BakeOutcome.PASSED
        )
        assert fake_clock.sleeps == [3]

    @pytest.mark.parametrize(("duration", "interval"), [(0, 10), (-1, 10), (10, 0)])
    def test_rejects_bad_timing(
        self,
        supervisor: BakeSupervisor,
        running_pool_id: str,
        duration: float,
        interval: float,
    ) -> None:
        with pytest.raises(ValueError):
            supervisor.supervise(running_pool_id, duration=duration, poll_interval=interval)
