"""Build the deployment StateGraph.

``build_deployment_graph()`` wires one node per controller state and the
conditional edges between them into a compiled LangGraph::

    START -> provision -> validate -> cutover -> bake -> finalize -> END
                 \\            \\          \\        \\         \\
                  +------------+----------+--------+---------+--> rollback -> END
"""

from typing import Any

from langgraph.graph import END, START, StateGraph

from blue_green.graph.edges import (
    after_bake,
    after_cutover,
    after_finalize,
    after_provision,
    after_validation,
)
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
from blue_green.infrastructure.clock import Clock
from blue_green.infrastructure.config import ControllerConfig
from blue_green.services.bake import BakeSupervisor
from blue_green.services.health import HealthMonitor
from blue_green.services.pools import TargetPoolManager
from blue_green.services.routing import RoutingTable


def build_deployment_graph(
    pools: TargetPoolManager,
    routing: RoutingTable,
    monitor: HealthMonitor,
    supervisor: BakeSupervisor,
    config: ControllerConfig,
    clock: Clock,
    enter: Transition,
    mutate: Mutation,
    checkpointer: Any | None = None,
) -> Any:
    """Build and compile the deployment StateGraph.

    Parameters
    ----------
    pools, routing, monitor, supervisor:
        Services driven by the nodes (closure injection).
    config:
        Retry budgets and timings of the cycle.
    clock:
        Time source for validation retries and bake timestamps.
    enter:
        Controller callback recording each state transition.
    mutate:
        Controller callback applying the other record writes under its lock.
    checkpointer:
        Optional LangGraph checkpointer.

    Returns
    -------
    CompiledStateGraph
        A compiled graph ready for ``.invoke()`` or ``.stream()``.
    """
    graph = StateGraph(DeploymentState)

    graph.add_node("provision", make_provision_node(pools, config, enter, mutate))
    graph.add_node(
        "validate", make_validate_node(routing, monitor, config, clock, enter, mutate)
    )
    graph.add_node("cutover", make_cutover_node(routing, pools, enter, mutate))
    graph.add_node("bake", make_bake_node(supervisor, config, clock, enter, mutate))
    graph.add_node("finalize", make_finalize_node(pools, enter, mutate))
    graph.add_node("rollback", make_rollback_node(routing, pools, enter, mutate))

    graph.add_edge(START, "provision")
    graph.add_conditional_edges(
        "provision",
        after_provision,
        {"validate": "validate", "rollback": "rollback"},
    )
    graph.add_conditional_edges(
        "validate",
        after_validation,
        {"cutover": "cutover", "rollback": "rollback"},
    )
    graph.add_conditional_edges(
        "cutover",
        after_cutover,
        {"bake": "bake", "rollback": "rollback"},
    )
    graph.add_conditional_edges(
        "bake",
        after_bake,
        {"finalize": "finalize", "rollback": "rollback"},
    )
    graph.add_conditional_edges(
        "finalize",
        after_finalize,
        {"rollback": "rollback", "__end__": END},
    )
    graph.add_edge("rollback", END)

    compile_kwargs: dict[str, Any] = {}
    if checkpointer is not None:
        compile_kwargs["checkpointer"] = checkpointer
    return graph.compile(**compile_kwargs)
