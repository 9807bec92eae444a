"""Value objects for the blue-green controller.

All types here are frozen dataclasses -- immutable, compared by value.
They describe endpoints, fleet specifications, health observations, route
bindings and state transitions; none has identity beyond its content.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .enums import ControllerState, RouteName

# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Endpoint:
    """A single addressable compute endpoint of a pool."""

    address: str
    port: int = 80
    protocol: str = "HTTP"

    def __post_init__(self) -> None:
        if not self.address:
            raise ValueError("address must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in [1, 65535], got {self.port}")

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


# ---------------------------------------------------------------------------
# PoolSpec
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PoolSpec:
    """What a fleet generation should run.

    Handed to the compute substrate unchanged; the controller itself only
    reads ``service`` and ``version`` for logging and audit.
    """

    service: str
    version: str
    desired_count: int = 1
    cpu: int = 256
    memory_mib: int = 512
    container_port: int = 80
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.service:
            raise ValueError("service must not be empty")
        if self.desired_count < 1:
            raise ValueError(f"desired_count must be >= 1, got {self.desired_count}")


# ---------------------------------------------------------------------------
# Health observations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EndpointHealth:
    """Debounced health of one endpoint after a poll round."""

    endpoint: Endpoint
    healthy: bool
    consecutive_successes: int = 0
    consecutive_failures: int = 0
    latency_ms: float = 0.0
    last_error: str = ""


@dataclass(frozen=True)
class HealthVerdict:
    """Aggregate health of a pool at ``checked_at``.

    ``healthy`` is true iff the pool has at least one endpoint and the
    healthy fraction is at or above ``threshold``.
    """

    pool_id: str
    healthy: bool
    healthy_count: int
    total: int
    threshold: float = 1.0
    checked_at: float = field(default_factory=time.time)
    endpoints: tuple[EndpointHealth, ...] = ()

    @property
    def fraction(self) -> float:
        """Healthy-endpoint fraction (0.0 for an empty pool)."""
        if self.total == 0:
            return 0.0
        return self.healthy_count / self.total


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Route:
    """A traffic entry point bound to exactly one pool.

    Routes are replaced wholesale on every bind; ``generation`` increases by
    one per successful rebind.
    """

    name: RouteName
    pool_id: str
    listener_port: int
    generation: int = 1
    bound_at: float = field(default_factory=time.time)


# ---------------------------------------------------------------------------
# StateTransition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StateTransition:
    """One entry of a deployment record's transition history."""

    previous_state: ControllerState
    new_state: ControllerState
    timestamp: float = field(default_factory=time.time)
    reason: str = ""
