"""Public testing utilities for the blue-green controller.

Provides a fast-forward clock, a scripted health probe and a fully wired
in-memory controller for self-contained examples and tests.
"""

from blue_green.testing.fakes import (
    FakeClock,
    InMemoryStack,
    ScriptedProbe,
    build_in_memory_stack,
)

__all__ = ["FakeClock", "InMemoryStack", "ScriptedProbe", "build_in_memory_stack"]
