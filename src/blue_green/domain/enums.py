"""Domain enumerations for the blue-green controller.

These enums capture the fixed vocabularies used across the domain layer:
fleet colors, pool lifecycle states, controller states, deployment outcomes,
bake outcomes, route names, and health-check protocols.
"""

from enum import Enum


class PoolColor(Enum):
    """Color tag of a fleet generation."""

    BLUE = "blue"
    GREEN = "green"

    @property
    def opposite(self) -> "PoolColor":
        return PoolColor.GREEN if self is PoolColor.BLUE else PoolColor.BLUE


class PoolState(Enum):
    """Lifecycle state of a TargetPool."""

    PROVISIONING = "provisioning"
    READY = "ready"
    ACTIVE = "active"
    DRAINING = "draining"
    RETIRED = "retired"  # terminal


class ControllerState(Enum):
    """Finite-state-machine states for the deployment controller."""

    IDLE = "idle"
    PROVISIONING = "provisioning"
    TEST_VALIDATING = "test_validating"
    CUTTING_OVER = "cutting_over"
    BAKING = "baking"
    FINALIZING = "finalizing"
    ROLLING_BACK = "rolling_back"


class DeploymentOutcome(Enum):
    """Terminal outcome of a deployment attempt."""

    FINALIZED = "finalized"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


class BakeOutcome(Enum):
    """Result of a bake window."""

    PASSED = "passed"
    FAILED = "failed"


class RouteName(Enum):
    """The two traffic entry points of a routing table."""

    PRODUCTION = "production"
    TEST = "test"


class HealthProtocol(Enum):
    """Protocol used to probe an endpoint."""

    HTTP = "HTTP"
    HTTPS = "HTTPS"
    TCP = "TCP"


class FailureKind(Enum):
    """Why a cycle left the happy path."""

    PROVISION = "provision"
    VALIDATION = "validation"
    CUTOVER = "cutover"
    BAKE = "bake"
    ABORT = "abort"
