"""Domain events for the blue-green controller.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  Events are
the audit/observability integration point: the controller and its services
emit events; listeners (audit trail, event store, console) react.

All events carry a ``timestamp`` and a ``source_id`` identifying the
originating component.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .enums import (
    BakeOutcome,
    ControllerState,
    DeploymentOutcome,
    PoolState,
    RouteName,
)

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events.

    Subclasses should remain frozen (immutable) and should *not* override
    ``__eq__`` or ``__hash__``.
    """

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# Deployment lifecycle events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeploymentStarted(DomainEvent):
    """A new deployment attempt was accepted."""

    deployment_id: str = ""
    service: str = ""
    version: str = ""
    previous_pool_id: str = ""
    bake_duration: float = 0.0


@dataclass(frozen=True)
class DeploymentStateChanged(DomainEvent):
    """The controller FSM transitioned.  One event per transition."""

    deployment_id: str = ""
    previous_state: ControllerState = ControllerState.IDLE
    new_state: ControllerState = ControllerState.IDLE
    previous_pool_id: str = ""
    candidate_pool_id: str = ""
    reason: str = ""


@dataclass(frozen=True)
class DeploymentAbortRequested(DomainEvent):
    """An operator asked for an in-flight deployment to be aborted."""

    deployment_id: str = ""
    state: ControllerState = ControllerState.IDLE


@dataclass(frozen=True)
class DeploymentCompleted(DomainEvent):
    """A deployment attempt reached its terminal outcome."""

    deployment_id: str = ""
    outcome: DeploymentOutcome = DeploymentOutcome.FINALIZED
    previous_pool_id: str = ""
    candidate_pool_id: str = ""
    failure: str = ""
    unresolved_error: str = ""


# ---------------------------------------------------------------------------
# Pool and route events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PoolStateChanged(DomainEvent):
    """A TargetPool moved through its lifecycle."""

    pool_id: str = ""
    previous_state: PoolState | None = None
    new_state: PoolState = PoolState.PROVISIONING


@dataclass(frozen=True)
class RouteRebound(DomainEvent):
    """A route now forwards to a different pool."""

    route: RouteName = RouteName.PRODUCTION
    previous_pool_id: str = ""
    pool_id: str = ""
    generation: int = 0


# ---------------------------------------------------------------------------
# Health events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealthChecked(DomainEvent):
    """A poll round over one pool finished."""

    pool_id: str = ""
    healthy: bool = False
    healthy_count: int = 0
    total: int = 0


@dataclass(frozen=True)
class BakePolled(DomainEvent):
    """One poll of the bake window."""

    pool_id: str = ""
    poll_number: int = 0
    healthy: bool = False
    elapsed: float = 0.0
    error: str = ""


@dataclass(frozen=True)
class BakeCompleted(DomainEvent):
    """The bake window ended, early or at its deadline."""

    pool_id: str = ""
    outcome: BakeOutcome = BakeOutcome.PASSED
    polls: int = 0
    elapsed: float = 0.0
