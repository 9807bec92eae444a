"""Tests for DeploymentAuditTrail."""

from __future__ import annotations

import pytest

from blue_green.domain.enums import ControllerState, DeploymentOutcome
from blue_green.domain.events import (
    DeploymentAbortRequested,
    DeploymentCompleted,
    DeploymentStarted,
    DeploymentStateChanged,
    RouteRebound,
)
from blue_green.infrastructure.event_bus import EventBus
from blue_green.services.audit_trail import AuditEntry, DeploymentAuditTrail


@pytest.fixture
def trail(event_bus: EventBus) -> DeploymentAuditTrail:
    return DeploymentAuditTrail(event_bus)


def _publish_cycle(bus: EventBus, deployment_id: str = "d1") -> None:
    bus.publish(
        DeploymentStarted(
            timestamp=1.0,
            deployment_id=deployment_id,
            service="web",
            version="v2",
            previous_pool_id="blue-1",
        )
    )
    bus.publish(
        DeploymentStateChanged(
            timestamp=2.0,
            deployment_id=deployment_id,
            previous_state=ControllerState.IDLE,
            new_state=ControllerState.PROVISIONING,
            previous_pool_id="blue-1",
            reason="deploying web:v2",
        )
    )
    bus.publish(
        DeploymentAbortRequested(
            timestamp=3.0, deployment_id=deployment_id, state=ControllerState.PROVISIONING
        )
    )
    bus.publish(
        DeploymentCompleted(
            timestamp=4.0,
            deployment_id=deployment_id,
            outcome=DeploymentOutcome.ABORTED,
            previous_pool_id="blue-1",
            candidate_pool_id="green-1",
            failure="Aborted during provisioning",
        )
    )


class TestRecording:
    def test_records_deployment_events(
        self, trail: DeploymentAuditTrail, event_bus: EventBus
    ) -> None:
        _publish_cycle(event_bus)
        kinds = [e.kind for e in trail.entries]
        assert kinds == ["started", "transition", "abort_requested", "completed"]

    def test_entry_contents(self, trail: DeploymentAuditTrail, event_bus: EventBus) -> None:
        _publish_cycle(event_bus)
        started, transition, abort, completed = trail.entries
        assert started.detail == "web:v2"
        assert started.previous_pool_id == "blue-1"
        assert (transition.previous_state, transition.new_state) == ("idle", "provisioning")
        assert transition.detail == "deploying web:v2"
        assert abort.new_state == "provisioning"
        assert completed.new_state == "aborted"
        assert completed.candidate_pool_id == "green-1"
        assert completed.detail == "Aborted during provisioning"

    def test_unresolved_error_takes_precedence(self, trail: DeploymentAuditTrail) -> None:
        entry = trail.record(
            DeploymentCompleted(
                deployment_id="d1",
                failure="regression",
                unresolved_error="production not restored",
            )
        )
        assert entry is not None
        assert entry.detail == "production not restored"

    def test_other_events_are_ignored(
        self, trail: DeploymentAuditTrail, event_bus: EventBus
    ) -> None:
        event_bus.publish(RouteRebound(pool_id="green-1"))
        assert trail.record(RouteRebound()) is None
        assert len(trail) == 0

    def test_standalone_trail(self) -> None:
        trail = DeploymentAuditTrail()
        trail.record(DeploymentStarted(deployment_id="d1"))
        assert len(trail) == 1


class TestQuery:
    def test_filters(self, trail: DeploymentAuditTrail, event_bus: EventBus) -> None:
        _publish_cycle(event_bus, "d1")
        _publish_cycle(event_bus, "d2")
        assert len(trail.query(deployment_id="d2")) == 4
        assert len(trail.query(kind="completed")) == 2
        assert trail.query(kind="transition", limit=1)[0].deployment_id == "d1"


class TestExport:
    def test_json(self, trail: DeploymentAuditTrail, event_bus: EventBus) -> None:
        _publish_cycle(event_bus)
        restored = DeploymentAuditTrail.from_json(trail.to_json())
        assert restored.entries == trail.entries

    def test_yaml(self, trail: DeploymentAuditTrail, event_bus: EventBus) -> None:
        _publish_cycle(event_bus)
        restored = DeploymentAuditTrail.from_yaml(trail.to_yaml())
        assert restored.entries == trail.entries

    def test_empty_yaml(self) -> None:
        assert len(DeploymentAuditTrail.from_yaml("")) == 0

    def test_from_dict_fills_missing_ids(self) -> None:
        trail = DeploymentAuditTrail.from_dict([{"deployment_id": "d1", "kind": "started"}])
        entry = trail.entries[0]
        assert isinstance(entry, AuditEntry)
        assert entry.entry_id
        assert entry.timestamp == 0.0
