"""Domain layer for the blue-green controller.

Re-exports all public domain types so that consumers can write::

    from blue_green.domain import PoolSpec, TargetPool, ControllerState
"""

# -- Enumerations -------------------------------------------------------------
from .enums import (
    BakeOutcome,
    ControllerState,
    DeploymentOutcome,
    FailureKind,
    HealthProtocol,
    PoolColor,
    PoolState,
    RouteName,
)

# -- Value Objects ------------------------------------------------------------
from .values import (
    Endpoint,
    EndpointHealth,
    HealthVerdict,
    PoolSpec,
    Route,
    StateTransition,
)

# -- Entities -----------------------------------------------------------------
from .entities import DeploymentRecord, TargetPool

# -- Domain Events ------------------------------------------------------------
from .events import (
    BakeCompleted,
    BakePolled,
    DeploymentAbortRequested,
    DeploymentCompleted,
    DeploymentStarted,
    DeploymentStateChanged,
    DomainEvent,
    HealthChecked,
    PoolStateChanged,
    RouteRebound,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    AbortNotAllowedError,
    BakeFailure,
    BindConflictError,
    BlueGreenError,
    CutoverFailure,
    DeploymentAborted,
    DeploymentInProgressError,
    DeploymentNotFoundError,
    InvalidPoolTransitionError,
    InvalidTargetError,
    MonitorUnavailableError,
    PoolInUseError,
    PoolNotFoundError,
    ProvisionFailure,
    RouteBindError,
    RouteNotFoundError,
    UnresolvedDeploymentError,
    ValidationFailure,
)

__all__ = [
    # Enums
    "BakeOutcome",
    "ControllerState",
    "DeploymentOutcome",
    "FailureKind",
    "HealthProtocol",
    "PoolColor",
    "PoolState",
    "RouteName",
    # Values
    "Endpoint",
    "EndpointHealth",
    "HealthVerdict",
    "PoolSpec",
    "Route",
    "StateTransition",
    # Entities
    "DeploymentRecord",
    "TargetPool",
    # Events
    "BakeCompleted",
    "BakePolled",
    "DeploymentAbortRequested",
    "DeploymentCompleted",
    "DeploymentStarted",
    "DeploymentStateChanged",
    "DomainEvent",
    "HealthChecked",
    "PoolStateChanged",
    "RouteRebound",
    # Exceptions
    "AbortNotAllowedError",
    "BakeFailure",
    "BindConflictError",
    "BlueGreenError",
    "CutoverFailure",
    "DeploymentAborted",
    "DeploymentInProgressError",
    "DeploymentNotFoundError",
    "InvalidPoolTransitionError",
    "InvalidTargetError",
    "MonitorUnavailableError",
    "PoolInUseError",
    "PoolNotFoundError",
    "ProvisionFailure",
    "RouteBindError",
    "RouteNotFoundError",
    "UnresolvedDeploymentError",
    "ValidationFailure",
]
