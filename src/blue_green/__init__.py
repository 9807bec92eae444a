"""Blue-green deployment controller.

Shifts live traffic between two parallel compute fleets behind a shared load
balancer, with a bake window before the cutover is finalized or rolled back.
The cycle runs as a LangGraph state machine driven by the
``DeploymentController``.
"""

__version__ = "0.1.0"

from blue_green.domain import DeploymentRecord, PoolSpec
from blue_green.services import (
    BakeSupervisor,
    DeploymentController,
    HealthMonitor,
    RoutingTable,
    TargetPoolManager,
)
from blue_green.graph import DeploymentState, build_deployment_graph

__all__ = [
    "DeploymentController",
    "TargetPoolManager",
    "RoutingTable",
    "HealthMonitor",
    "BakeSupervisor",
    "DeploymentRecord",
    "PoolSpec",
    "build_deployment_graph",
    "DeploymentState",
]
