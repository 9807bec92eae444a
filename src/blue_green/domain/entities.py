"""Domain entities for the blue-green controller.

Entities have *identity* (a unique id that persists across mutations) and a
mutable lifecycle.  ``TargetPool`` tracks a fleet generation through its
lifecycle states; ``DeploymentRecord`` is the controller-owned audit record of
one deployment attempt.
"""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field

from .enums import (
    ControllerState,
    DeploymentOutcome,
    FailureKind,
    PoolColor,
    PoolState,
)
from .exceptions import InvalidPoolTransitionError
from .values import Endpoint, PoolSpec, StateTransition

# ---------------------------------------------------------------------------
# TargetPool entity
# ---------------------------------------------------------------------------

_ALLOWED_POOL_TRANSITIONS: dict[PoolState, frozenset[PoolState]] = {
    PoolState.PROVISIONING: frozenset({PoolState.READY, PoolState.RETIRED}),
    PoolState.READY: frozenset({PoolState.ACTIVE, PoolState.DRAINING, PoolState.RETIRED}),
    PoolState.ACTIVE: frozenset({PoolState.DRAINING, PoolState.RETIRED}),
    PoolState.DRAINING: frozenset({PoolState.ACTIVE, PoolState.READY, PoolState.RETIRED}),
    PoolState.RETIRED: frozenset(),
}


def _new_pool_id(color: PoolColor) -> str:
    return f"{color.value}-{uuid.uuid4().hex[:8]}"


@dataclass
class TargetPool:
    """A named, health-checked set of endpoints for one fleet generation."""

    color: PoolColor
    spec: PoolSpec
    pool_id: str = ""
    endpoints: frozenset[Endpoint] = frozenset()
    state: PoolState = PoolState.PROVISIONING
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.pool_id:
            self.pool_id = _new_pool_id(self.color)

    @property
    def is_retired(self) -> bool:
        return self.state is PoolState.RETIRED

    def can_transition(self, new_state: PoolState) -> bool:
        """True if moving to *new_state* is allowed (same state included)."""
        return new_state is self.state or new_state in _ALLOWED_POOL_TRANSITIONS[self.state]

    def transition(self, new_state: PoolState) -> PoolState:
        """Move to *new_state* and return the previous state.

        Raises
        ------
        InvalidPoolTransitionError
            If the lifecycle does not allow the move.
        """
        if not self.can_transition(new_state):
            raise InvalidPoolTransitionError(
                pool_id=self.pool_id,
                current=self.state.value,
                requested=new_state.value,
            )
        previous = self.state
        self.state = new_state
        self.updated_at = time.time()
        return previous


# ---------------------------------------------------------------------------
# DeploymentRecord entity
# ---------------------------------------------------------------------------

def _new_deployment_id() -> str:
    return f"deploy-{uuid.uuid4().hex[:12]}"


@dataclass
class DeploymentRecord:
    """Audit record of one deployment attempt.

    Owned exclusively by ``DeploymentController`` and mutated only by its
    transitions.  ``outcome`` is ``None`` while the attempt is in flight.
    """

    service: str
    previous_pool_id: str
    deployment_id: str = field(default_factory=_new_deployment_id)
    candidate_pool_id: str | None = None
    state: ControllerState = ControllerState.IDLE
    outcome: DeploymentOutcome | None = None
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    bake_duration: float = 0.0
    bake_started_at: float | None = None
    bake_deadline: float | None = None
    cut_over: bool = False
    abort_requested: bool = False
    failure_kind: FailureKind | None = None
    failure: str = ""
    unresolved_error: str = ""
    transitions: list[StateTransition] = field(default_factory=list)

    # -- queries -------------------------------------------------------------

    @property
    def in_progress(self) -> bool:
        return self.outcome is None

    @property
    def is_unresolved(self) -> bool:
        return bool(self.unresolved_error)

    # -- mutations (controller only) -----------------------------------------

    def enter(
        self,
        new_state: ControllerState,
        reason: str = "",
        at: float | None = None,
    ) -> StateTransition:
        """Record a controller transition and return it."""
        transition = StateTransition(
            previous_state=self.state,
            new_state=new_state,
            timestamp=time.time() if at is None else at,
            reason=reason,
        )
        self.state = new_state
        self.transitions.append(transition)
        return transition

    def fail(self, kind: FailureKind, message: str) -> None:
        """Remember the first failure that sent the cycle off the happy path."""
        if self.failure_kind is None:
            self.failure_kind = kind
            self.failure = message

    def complete(self, outcome: DeploymentOutcome, at: float | None = None) -> None:
        self.outcome = outcome
        self.completed_at = time.time() if at is None else at

    def snapshot(self) -> DeploymentRecord:
        """Return a detached copy safe to hand to operators."""
        return copy.deepcopy(self)
