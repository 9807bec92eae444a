"""Presentation layer for the blue-green controller.

Public API
----------
- :class:`ConsoleDashboard` -- rich console output of deployment records,
  routes and the audit trail
"""

from blue_green.presentation.console import ConsoleDashboard

__all__ = [
    "ConsoleDashboard",
]
