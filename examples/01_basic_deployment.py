#!/usr/bin/env python3
"""Example 01: A complete blue-green deployment cycle.

Demonstrates:
- Wiring a controller on the in-memory substrate and load balancer
- Running one cycle to completion with a fast-forward clock
- Inspecting the final record, the routing table and the retired pool

Run:
    PYTHONPATH=src python examples/01_basic_deployment.py
"""

from __future__ import annotations

from blue_green.domain.enums import RouteName
from blue_green.domain.values import PoolSpec
from blue_green.infrastructure.config import ControllerConfig
from blue_green.presentation.console import ConsoleDashboard
from blue_green.testing import build_in_memory_stack


def main() -> None:
    # -- Infrastructure -------------------------------------------------------
    stack = build_in_memory_stack(
        service="checkout",
        version="v1",
        desired_count=3,
        controller_config=ControllerConfig(bake_duration_seconds=60),
    )
    blue = stack.initial_pool_id

    print("=== Blue-Green Deployment ===")
    print(f"Production serves: {stack.routing.resolve(RouteName.PRODUCTION)}")
    print()

    # -- Deploy ---------------------------------------------------------------
    spec = PoolSpec(service="checkout", version="v2", desired_count=3)
    record = stack.controller.start_deployment(spec)

    print(f"Outcome: {record.outcome.value}")
    print(f"Candidate: {record.candidate_pool_id}")
    print(f"Production now serves: {stack.routing.resolve(RouteName.PRODUCTION)}")
    print(f"Previous pool {blue} is {stack.pools.get(blue).state.value}")
    print(f"Events emitted: {len(stack.event_store)}")

    dashboard = ConsoleDashboard()
    dashboard.print_record(record)
    dashboard.print_routes(stack.routing.routes(), stack.pools.pools())
    print("Done.")


if __name__ == "__main__":
    main()
