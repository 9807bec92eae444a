"""LangGraph state definition for one deployment cycle.

``DeploymentState`` is the ``TypedDict`` flowing through the deployment
``StateGraph``.  The ``DeploymentRecord`` travels by reference: nodes mutate
it through the controller's transition callback, and return partial updates
for the routing keys read by the conditional edges.  ``trace`` is an
append-only channel with one entry per node.

Note: ``from __future__ import annotations`` is deliberately absent because
LangGraph resolves the type hints at runtime via ``get_type_hints()``.
"""

import operator
import threading
from typing import Annotated, Any, TypedDict

from blue_green.domain.entities import DeploymentRecord
from blue_green.domain.enums import BakeOutcome, DeploymentOutcome
from blue_green.domain.values import PoolSpec


class DeploymentState(TypedDict, total=False):
    """State flowing through the deployment graph.

    Fields are grouped into:

    * **Inputs** -- set once when the cycle is invoked.
    * **Progress** -- written by nodes, read by edges.
    * **Accumulation channel** -- append-reducer for the node trace.
    """

    # -- Inputs --------------------------------------------------------------
    record: DeploymentRecord
    spec: PoolSpec
    bake_duration: float
    cancel: threading.Event

    # -- Progress ------------------------------------------------------------
    candidate_pool_id: str
    reason: str
    failed: bool
    aborted: bool
    bake_outcome: BakeOutcome
    outcome: DeploymentOutcome

    # -- Accumulation channel ------------------------------------------------
    trace: Annotated[list[dict[str, Any]], operator.add]
