"""Deployment audit trail -- serializable transition history.

Subscribes to the event bus and keeps one entry per controller state
transition, plus the start, abort and completion of each deployment, with
the pool ids involved and timestamps.  The trail can be exported to JSON or
YAML and rebuilt from either.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

import yaml

from blue_green.domain.events import (
    DeploymentAbortRequested,
    DeploymentCompleted,
    DeploymentStarted,
    DeploymentStateChanged,
    DomainEvent,
)
from blue_green.infrastructure.event_bus import EventBus


@dataclass(frozen=True)
class AuditEntry:
    """One line of the audit trail."""

    deployment_id: str
    kind: str
    timestamp: float
    previous_state: str = ""
    new_state: str = ""
    previous_pool_id: str = ""
    candidate_pool_id: str = ""
    detail: str = ""
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


class DeploymentAuditTrail:
    """Append-only audit log of deployment cycles.

    Parameters
    ----------
    event_bus:
        Optional bus to subscribe to.  Without one, entries are added through
        :meth:`record`.
    """

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()
        if event_bus is not None:
            self.attach(event_bus)

    def attach(self, event_bus: EventBus) -> None:
        for event_type in (
            DeploymentStarted,
            DeploymentStateChanged,
            DeploymentAbortRequested,
            DeploymentCompleted,
        ):
            event_bus.subscribe(event_type, self.record)

    def record(self, event: DomainEvent) -> AuditEntry | None:
        """Turn a deployment event into an entry.  Other events are ignored."""
        if isinstance(event, DeploymentStateChanged):
            entry = AuditEntry(
                deployment_id=event.deployment_id,
                kind="transition",
                timestamp=event.timestamp,
                previous_state=event.previous_state.value,
                new_state=event.new_state.value,
                previous_pool_id=event.previous_pool_id,
                candidate_pool_id=event.candidate_pool_id,
                detail=event.reason,
            )
        elif isinstance(event, DeploymentStarted):
            entry = AuditEntry(
                deployment_id=event.deployment_id,
                kind="started",
                timestamp=event.timestamp,
                previous_pool_id=event.previous_pool_id,
                detail=f"{event.service}:{event.version}",
            )
        elif isinstance(event, DeploymentAbortRequested):
            entry = AuditEntry(
                deployment_id=event.deployment_id,
                kind="abort_requested",
                timestamp=event.timestamp,
                new_state=event.state.value,
            )
        elif isinstance(event, DeploymentCompleted):
            entry = AuditEntry(
                deployment_id=event.deployment_id,
                kind="completed",
                timestamp=event.timestamp,
                new_state=event.outcome.value,
                previous_pool_id=event.previous_pool_id,
                candidate_pool_id=event.candidate_pool_id,
                detail=event.unresolved_error or event.failure,
            )
        else:
            return None
        with self._lock:
            self._entries.append(entry)
        return entry

    def query(
        self,
        deployment_id: str | None = None,
        kind: str | None = None,
        limit: int = 0,
    ) -> list[AuditEntry]:
        """Query entries by deployment and/or kind."""
        with self._lock:
            results = list(self._entries)
        if deployment_id is not None:
            results = [e for e in results if e.deployment_id == deployment_id]
        if kind is not None:
            results = [e for e in results if e.kind == kind]
        if limit > 0:
            results = results[:limit]
        return results

    @property
    def entries(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -- export --------------------------------------------------------------

    def to_dict(self) -> list[dict[str, Any]]:
        return [
            {
                "entry_id": e.entry_id,
                "deployment_id": e.deployment_id,
                "kind": e.kind,
                "timestamp": e.timestamp,
                "previous_state": e.previous_state,
                "new_state": e.new_state,
                "previous_pool_id": e.previous_pool_id,
                "candidate_pool_id": e.candidate_pool_id,
                "detail": e.detail,
            }
            for e in self.entries
        ]

    @classmethod
    def from_dict(cls, data: list[dict[str, Any]]) -> DeploymentAuditTrail:
        trail = cls()
        for d in data:
            trail._entries.append(
                AuditEntry(
                    entry_id=d.get("entry_id", "") or uuid.uuid4().hex[:12],
                    deployment_id=d.get("deployment_id", ""),
                    kind=d.get("kind", ""),
                    timestamp=float(d.get("timestamp", 0.0)),
                    previous_state=d.get("previous_state", ""),
                    new_state=d.get("new_state", ""),
                    previous_pool_id=d.get("previous_pool_id", ""),
                    candidate_pool_id=d.get("candidate_pool_id", "") or "",
                    detail=d.get("detail", ""),
                )
            )
        return trail

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> DeploymentAuditTrail:
        return cls.from_dict(json.loads(json_str))

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> DeploymentAuditTrail:
        return cls.from_dict(yaml.safe_load(yaml_str) or [])
