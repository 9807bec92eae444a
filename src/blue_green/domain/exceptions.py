"""Domain exceptions for the blue-green controller.

All domain-specific exceptions inherit from ``BlueGreenError`` so callers can
catch the full family with a single ``except`` clause when needed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .entities import DeploymentRecord


class BlueGreenError(Exception):
    """Base exception for all blue-green controller errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


# ---------------------------------------------------------------------------
# Pool errors
# ---------------------------------------------------------------------------

class PoolNotFoundError(BlueGreenError):
    """Raised when a pool id is not registered with the pool manager."""

    def __init__(self, pool_id: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(f"Unknown target pool '{pool_id}'", details)
        self.pool_id = pool_id


class PoolInUseError(BlueGreenError):
    """Raised when retiring a pool that a route still references."""

    def __init__(
        self,
        pool_id: str = "",
        routes: tuple[str, ...] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Target pool '{pool_id}' is still referenced by route(s): "
            f"{', '.join(routes)}",
            details,
        )
        self.pool_id = pool_id
        self.routes = routes


class InvalidPoolTransitionError(BlueGreenError):
    """Raised when a pool lifecycle transition is not allowed."""

    def __init__(
        self,
        pool_id: str = "",
        current: str = "",
        requested: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Target pool '{pool_id}' cannot move from {current} to {requested}",
            details,
        )
        self.pool_id = pool_id
        self.current = current
        self.requested = requested


class ProvisionFailure(BlueGreenError):
    """Raised when a candidate pool never became ready."""

    def __init__(
        self,
        message: str = "Provisioning failed",
        pool_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.pool_id = pool_id


# ---------------------------------------------------------------------------
# Routing errors
# ---------------------------------------------------------------------------

class RouteNotFoundError(BlueGreenError):
    """Raised for a route name the routing table does not know."""

    def __init__(self, route_name: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(f"Unknown route '{route_name}'", details)
        self.route_name = route_name


class InvalidTargetError(BlueGreenError):
    """Raised when binding a route to a retired pool."""

    def __init__(
        self,
        route_name: str = "",
        pool_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Route '{route_name}' cannot target retired pool '{pool_id}'", details
        )
        self.route_name = route_name
        self.pool_id = pool_id


class RouteBindError(BlueGreenError):
    """Raised when the load balancer rejects or never acknowledges a rule change."""

    def __init__(
        self,
        message: str = "Route bind failed",
        route_name: str = "",
        pool_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.route_name = route_name
        self.pool_id = pool_id


class BindConflictError(BlueGreenError):
    """Raised by compare-and-bind when the route moved under the caller."""

    def __init__(
        self,
        route_name: str = "",
        expected_pool_id: str = "",
        actual_pool_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Route '{route_name}' resolves to '{actual_pool_id}', "
            f"expected '{expected_pool_id}'",
            details,
        )
        self.route_name = route_name
        self.expected_pool_id = expected_pool_id
        self.actual_pool_id = actual_pool_id


# ---------------------------------------------------------------------------
# Health errors
# ---------------------------------------------------------------------------

class MonitorUnavailableError(BlueGreenError):
    """Raised when the monitoring substrate itself cannot be reached.

    Individual endpoint failures never raise; they are folded into the
    ``HealthVerdict``.
    """


# ---------------------------------------------------------------------------
# Cycle failures
# ---------------------------------------------------------------------------

class ValidationFailure(BlueGreenError):
    """The candidate never passed health checks on the test route."""


class CutoverFailure(BlueGreenError):
    """Binding the production route to a healthy candidate failed."""


class BakeFailure(BlueGreenError):
    """A regression was detected during the bake window."""


class DeploymentAborted(BlueGreenError):
    """An operator abort was observed at a suspension point."""


# ---------------------------------------------------------------------------
# Operator-facing errors
# ---------------------------------------------------------------------------

class DeploymentInProgressError(BlueGreenError):
    """Raised when a deployment is started while another is not idle."""

    def __init__(
        self,
        active_deployment_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Deployment '{active_deployment_id}' is still in progress", details
        )
        self.active_deployment_id = active_deployment_id


class DeploymentNotFoundError(BlueGreenError):
    """Raised for a deployment id the controller never issued."""

    def __init__(self, deployment_id: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(f"Unknown deployment '{deployment_id}'", details)
        self.deployment_id = deployment_id


class AbortNotAllowedError(BlueGreenError):
    """Raised when an abort arrives in a state that must run to completion."""

    def __init__(
        self,
        deployment_id: str = "",
        state: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Deployment '{deployment_id}' cannot be aborted while {state}", details
        )
        self.deployment_id = deployment_id
        self.state = state


class UnresolvedDeploymentError(BlueGreenError):
    """Finalizing or rolling back failed; manual intervention is required.

    The record has reached a terminal outcome but the topology may violate an
    invariant (e.g. the previous pool could not be retired).
    """

    def __init__(
        self,
        message: str = "Deployment left unresolved",
        record: DeploymentRecord | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.record = record
