"""Conditional edge functions for the deployment graph.

Every state except Finalizing and RollingBack has exactly two exits: the
next state on the happy path, or ``rollback``.
"""

from __future__ import annotations

from typing import Any, Literal


def after_provision(state: dict[str, Any]) -> Literal["validate", "rollback"]:
    """Candidate ready -> validate; provisioning failed or aborted -> rollback."""
    if state.get("failed") or not state.get("candidate_pool_id"):
        return "rollback"
    return "validate"


def after_validation(state: dict[str, Any]) -> Literal["cutover", "rollback"]:
    if state.get("failed"):
        return "rollback"
    return "cutover"


def after_cutover(state: dict[str, Any]) -> Literal["bake", "rollback"]:
    if state.get("failed"):
        return "rollback"
    return "bake"


def after_bake(state: dict[str, Any]) -> Literal["finalize", "rollback"]:
    """Only a bake that passed its full window leads to Finalizing."""
    if state.get("failed"):
        return "rollback"
    return "finalize"


def after_finalize(state: dict[str, Any]) -> Literal["rollback", "__end__"]:
    """An abort accepted just before Finalizing still rolls back."""
    if state.get("aborted") and state.get("outcome") is None:
        return "rollback"
    return "__end__"
