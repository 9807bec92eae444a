#!/usr/bin/env python3
"""Example 03: Aborting a deployment from another thread.

Demonstrates:
- Submitting a cycle to the controller's worker thread
- Requesting an abort while the candidate bakes, on the wall clock
- Reading the final record from the returned future

Run:
    PYTHONPATH=src python examples/03_operator_abort.py
"""

from __future__ import annotations

import time

from blue_green.domain.enums import ControllerState
from blue_green.domain.values import PoolSpec
from blue_green.infrastructure.clock import SystemClock
from blue_green.infrastructure.config import ControllerConfig, HealthCheckConfig
from blue_green.testing import build_in_memory_stack


def main() -> None:
    stack = build_in_memory_stack(
        clock=SystemClock(),
        health_config=HealthCheckConfig(interval_seconds=0.2, healthy_threshold_count=1),
        controller_config=ControllerConfig(
            bake_poll_interval_seconds=0.5,
            provision_poll_interval_seconds=0.1,
        ),
    )

    print("=== Operator Abort ===")
    future = stack.controller.submit_deployment(
        PoolSpec(service="web", version="v2"), bake_duration=30
    )

    while stack.controller.state is not ControllerState.BAKING and not future.done():
        time.sleep(0.05)
    current = stack.controller.current
    if current is not None:
        print(f"Baking {current.candidate_pool_id}; requesting abort")
        stack.controller.abort_deployment(current.deployment_id)

    record = future.result(timeout=10)
    stack.controller.shutdown()
    print(f"Outcome: {record.outcome.value}")
    print("Transitions:")
    for t in record.transitions:
        print(f"  {t.previous_state.value} -> {t.new_state.value}  {t.reason}")
    print("Done.")


if __name__ == "__main__":
    main()
