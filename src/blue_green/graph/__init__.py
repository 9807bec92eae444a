"""LangGraph rendition of the deployment state machine.

Public API
----------
build_deployment_graph
    Build and compile the Provisioning -> TestValidating -> CuttingOver ->
    Baking -> Finalizing | RollingBack graph.
DeploymentState
    The TypedDict state flowing through the graph.

Node factories (for advanced customisation):
    make_provision_node, make_validate_node, make_cutover_node,
    make_bake_node, make_finalize_node, make_rollback_node

Edge functions:
    after_provision, after_validation, after_cutover, after_bake, after_finalize
"""

from blue_green.graph.edges import (
    after_bake,
    after_cutover,
    after_finalize,
    after_provision,
    after_validation,
)
from blue_green.graph.graph import build_deployment_graph
from blue_green.graph.nodes import (
    Mutation,
    Transition,
    make_bake_node,
    make_cutover_node,
    make_finalize_node,
    make_provision_node,
    make_rollback_node,
    make_validate_node,
)
from blue_green.graph.state import DeploymentState

__all__ = [
    "build_deployment_graph",
    "DeploymentState",
    "Mutation",
    "Transition",
    # Nodes
    "make_provision_node",
    "make_validate_node",
    "make_cutover_node",
    "make_bake_node",
    "make_finalize_node",
    "make_rollback_node",
    # Edges
    "after_provision",
    "after_validation",
    "after_cutover",
    "after_bake",
    "after_finalize",
]
