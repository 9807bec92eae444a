#!/usr/bin/env python3
"""Example 02: Rolling back when the candidate regresses during the bake.

Demonstrates:
- Subscribing to bake events on the event bus
- Making the candidate's endpoints fail mid-bake
- The automatic rollback restoring production to the previous pool

Run:
    PYTHONPATH=src python examples/02_bake_regression.py
"""

from __future__ import annotations

from blue_green.domain.enums import RouteName
from blue_green.domain.events import BakePolled
from blue_green.domain.values import PoolSpec
from blue_green.testing import ScriptedProbe, build_in_memory_stack


def main() -> None:
    probe = ScriptedProbe()
    stack = build_in_memory_stack(service="search", probe=probe)

    # -- Inject the regression ------------------------------------------------
    def on_poll(event: BakePolled) -> None:
        status = "healthy" if event.healthy else "UNHEALTHY"
        print(f"  bake poll {event.poll_number} at +{event.elapsed:.0f}s: {status}")
        if event.poll_number == 3:
            probe.set_default(False)

    stack.event_bus.subscribe(BakePolled, on_poll)

    print("=== Bake Regression ===")
    record = stack.controller.start_deployment(
        PoolSpec(service="search", version="v2"), bake_duration=120
    )
    print()
    print(f"Outcome: {record.outcome.value}")
    print(f"Failure: {record.failure}")
    print(f"Production serves: {stack.routing.resolve(RouteName.PRODUCTION)}")
    print(f"Torn down: {sorted(stack.substrate.torn_down)}")
    print("Done.")


if __name__ == "__main__":
    main()
