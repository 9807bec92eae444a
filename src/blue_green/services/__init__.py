"""Service layer for the blue-green controller.

Re-exports public service types for convenient top-level access::

    from blue_green.services import (
        TargetPoolManager, RoutingTable, HealthMonitor, BakeSupervisor,
        DeploymentController, DeploymentAuditTrail,
    )
"""

from blue_green.services.audit_trail import AuditEntry, DeploymentAuditTrail
from blue_green.services.bake import BakeSupervisor
from blue_green.services.controller import DeploymentController
from blue_green.services.health import HealthMonitor
from blue_green.services.pools import TargetPoolManager
from blue_green.services.routing import RoutingTable

__all__ = [
    # Pools and routes
    "TargetPoolManager",
    "RoutingTable",
    # Health
    "HealthMonitor",
    "BakeSupervisor",
    # Controller
    "DeploymentController",
    # Audit
    "AuditEntry",
    "DeploymentAuditTrail",
]
