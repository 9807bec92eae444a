"""LangGraph node factories for the deployment cycle.

One node per controller state.  Each factory closes over the services it
drives, over ``enter``, the controller callback that records a state
transition and publishes ``DeploymentStateChanged``, and over ``mutate``,
which applies every other write to the shared ``DeploymentRecord`` under the
controller lock so that operator snapshots never see a half-written record.
Nodes catch the domain
errors they own and translate them into ``failed`` / ``aborted`` updates for
the conditional edges; unexpected errors propagate to the controller.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

from blue_green.domain.entities import DeploymentRecord
from blue_green.domain.enums import (
    BakeOutcome,
    ControllerState,
    DeploymentOutcome,
    FailureKind,
    PoolState,
    RouteName,
)
from blue_green.domain.exceptions import (
    BlueGreenError,
    DeploymentAborted,
    MonitorUnavailableError,
    ProvisionFailure,
)
from blue_green.infrastructure.clock import Clock
from blue_green.infrastructure.config import ControllerConfig
from blue_green.services.bake import BakeSupervisor
from blue_green.services.health import HealthMonitor
from blue_green.services.pools import TargetPoolManager
from blue_green.services.routing import RoutingTable

logger = logging.getLogger(__name__)

NodeFn = Callable[[dict[str, Any]], dict[str, Any]]


class Transition(Protocol):
    """Controller callback recording ``record.state -> new_state``.

    With ``abortable=False`` it raises ``DeploymentAborted`` instead of
    entering *new_state* when an abort was already accepted.
    """

    def __call__(
        self,
        record: DeploymentRecord,
        new_state: ControllerState,
        reason: str = "",
        *,
        abortable: bool = True,
    ) -> None: ...


class Mutation(Protocol):
    """Controller callback applying ``change(record)`` under the controller lock."""

    def __call__(
        self, record: DeploymentRecord, change: Callable[[DeploymentRecord], None]
    ) -> None: ...


def _set(**fields: Any) -> Callable[[DeploymentRecord], None]:
    def change(record: DeploymentRecord) -> None:
        for name, value in fields.items():
            setattr(record, name, value)

    return change


def _trace(state: ControllerState, detail: str) -> list[dict[str, Any]]:
    return [{"state": state.value, "detail": detail}]


def _cancelled(state: dict[str, Any]) -> bool:
    cancel: threading.Event | None = state.get("cancel")
    return cancel is not None and cancel.is_set()


def _failure(
    mutate: Mutation,
    record: DeploymentRecord,
    node_state: ControllerState,
    kind: FailureKind,
    message: str,
) -> dict[str, Any]:
    mutate(record, lambda r: r.fail(kind, message))
    logger.warning("%s: %s", record.deployment_id, message)
    update: dict[str, Any] = {
        "failed": True,
        "reason": message,
        "trace": _trace(node_state, message),
    }
    if kind is FailureKind.ABORT:
        update["aborted"] = True
    return update


# ===================================================================== #
#  Provisioning                                                          #
# ===================================================================== #

def make_provision_node(
    pools: TargetPoolManager,
    config: ControllerConfig,
    enter: Transition,
    mutate: Mutation,
) -> NodeFn:
    """Create the candidate pool and wait for its readiness signal.

    Up to ``config.provision_attempts`` candidates are tried; a failed
    attempt is retired before the next one starts.  The last failed
    candidate is left for the rollback node.
    """

    def provision_node(state: dict[str, Any]) -> dict[str, Any]:
        record: DeploymentRecord = state["record"]
        spec = state["spec"]
        cancel = state.get("cancel")
        enter(record, ControllerState.PROVISIONING, state.get("reason", "deployment started"))

        last_error = ""
        for attempt in range(1, config.provision_attempts + 1):
            if _cancelled(state):
                return _failure(
                    mutate, record, ControllerState.PROVISIONING, FailureKind.ABORT,
                    "Aborted during provisioning",
                )
            pool_id = ""
            try:
                pool_id = pools.create(spec)
                mutate(record, _set(candidate_pool_id=pool_id))
                pools.wait_until_ready(
                    pool_id,
                    timeout=config.provision_timeout_seconds,
                    poll_interval=config.provision_poll_interval_seconds,
                    cancel=cancel,
                )
            except DeploymentAborted as exc:
                update = _failure(
                    mutate, record, ControllerState.PROVISIONING, FailureKind.ABORT, str(exc)
                )
                update["candidate_pool_id"] = record.candidate_pool_id or ""
                return update
            except ProvisionFailure as exc:
                if not pool_id and exc.pool_id:
                    pool_id = exc.pool_id
                    mutate(record, _set(candidate_pool_id=pool_id))
                last_error = str(exc)
                logger.warning(
                    "%s: provisioning attempt %d/%d failed: %s",
                    record.deployment_id, attempt, config.provision_attempts, exc,
                )
                if attempt < config.provision_attempts and pool_id:
                    pools.retire(pool_id)
                continue

            detail = f"candidate {pool_id} ready"
            return {
                "candidate_pool_id": pool_id,
                "reason": detail,
                "trace": _trace(ControllerState.PROVISIONING, detail),
            }

        update = _failure(
            mutate, record, ControllerState.PROVISIONING, FailureKind.PROVISION,
            f"Provisioning failed after {config.provision_attempts} attempt(s): {last_error}",
        )
        update["candidate_pool_id"] = record.candidate_pool_id or ""
        return update

    return provision_node


# ===================================================================== #
#  Test validation                                                       #
# ===================================================================== #

def make_validate_node(
    routing: RoutingTable,
    monitor: HealthMonitor,
    config: ControllerConfig,
    clock: Clock,
    enter: Transition,
    mutate: Mutation,
) -> NodeFn:
    """Expose the candidate on the test route and wait for a healthy verdict."""

    def validate_node(state: dict[str, Any]) -> dict[str, Any]:
        record: DeploymentRecord = state["record"]
        candidate = state["candidate_pool_id"]
        cancel = state.get("cancel")
        enter(record, ControllerState.TEST_VALIDATING, state.get("reason", ""))

        try:
            routing.bind(RouteName.TEST, candidate)
        except BlueGreenError as exc:
            return _failure(
                mutate, record, ControllerState.TEST_VALIDATING, FailureKind.VALIDATION,
                f"Could not bind test route to {candidate}: {exc}",
            )

        monitor.reset(candidate)
        attempts = config.validation_attempts
        interval = monitor.config.interval_seconds
        for attempt in range(1, attempts + 1):
            if _cancelled(state):
                return _failure(
                    mutate, record, ControllerState.TEST_VALIDATING, FailureKind.ABORT,
                    "Aborted during test validation",
                )
            try:
                healthy = monitor.check(candidate).healthy
            except MonitorUnavailableError as exc:
                logger.warning("%s: validation check %d: %s", record.deployment_id, attempt, exc)
                healthy = False
            if healthy:
                detail = f"candidate {candidate} healthy on test route"
                return {
                    "reason": detail,
                    "trace": _trace(ControllerState.TEST_VALIDATING, detail),
                }
            logger.debug(
                "%s: validation check %d/%d unhealthy", record.deployment_id, attempt, attempts
            )
            if attempt < attempts and clock.sleep(interval, cancel):
                return _failure(
                    mutate, record, ControllerState.TEST_VALIDATING, FailureKind.ABORT,
                    "Aborted during test validation",
                )

        return _failure(
            mutate, record, ControllerState.TEST_VALIDATING, FailureKind.VALIDATION,
            f"Candidate {candidate} unhealthy after {attempts} check(s)",
        )

    return validate_node


# ===================================================================== #
#  Cutover                                                               #
# ===================================================================== #

def make_cutover_node(
    routing: RoutingTable,
    pools: TargetPoolManager,
    enter: Transition,
    mutate: Mutation,
) -> NodeFn:
    """Flip production from the previous pool to the candidate, once."""

    def cutover_node(state: dict[str, Any]) -> dict[str, Any]:
        record: DeploymentRecord = state["record"]
        candidate = state["candidate_pool_id"]
        previous = record.previous_pool_id
        try:
            enter(record, ControllerState.CUTTING_OVER, state.get("reason", ""), abortable=False)
        except DeploymentAborted as exc:
            return _failure(
                mutate, record, ControllerState.TEST_VALIDATING, FailureKind.ABORT, str(exc)
            )

        try:
            routing.compare_and_bind(RouteName.PRODUCTION, previous, candidate)
        except BlueGreenError as exc:
            return _failure(
                mutate, record, ControllerState.CUTTING_OVER, FailureKind.CUTOVER,
                f"Cutover to {candidate} failed: {exc}",
            )

        mutate(record, _set(cut_over=True))
        pools.mark_state(candidate, PoolState.ACTIVE)
        pools.mark_state(previous, PoolState.DRAINING)
        detail = f"production switched {previous} -> {candidate}"
        logger.info("%s: %s", record.deployment_id, detail)
        return {"reason": detail, "trace": _trace(ControllerState.CUTTING_OVER, detail)}

    return cutover_node


# ===================================================================== #
#  Baking                                                                #
# ===================================================================== #

def make_bake_node(
    supervisor: BakeSupervisor,
    config: ControllerConfig,
    clock: Clock,
    enter: Transition,
    mutate: Mutation,
) -> NodeFn:
    """Supervise the candidate for the bake window."""

    def bake_node(state: dict[str, Any]) -> dict[str, Any]:
        record: DeploymentRecord = state["record"]
        candidate = state["candidate_pool_id"]
        duration = state.get("bake_duration") or config.bake_duration_seconds
        enter(record, ControllerState.BAKING, state.get("reason", ""))

        started = clock.now()
        mutate(record, _set(bake_started_at=started, bake_deadline=started + duration))
        outcome = supervisor.supervise(
            candidate,
            duration=duration,
            poll_interval=config.bake_poll_interval_seconds,
            cancel=state.get("cancel"),
        )
        if _cancelled(state):
            update = _failure(
                mutate, record, ControllerState.BAKING, FailureKind.ABORT, "Aborted during bake"
            )
        elif outcome is BakeOutcome.FAILED:
            update = _failure(
                mutate, record, ControllerState.BAKING, FailureKind.BAKE,
                f"Regression detected while baking {candidate}",
            )
        else:
            detail = f"bake of {candidate} passed"
            update = {"reason": detail, "trace": _trace(ControllerState.BAKING, detail)}
        update["bake_outcome"] = outcome
        return update

    return bake_node


# ===================================================================== #
#  Finalizing                                                            #
# ===================================================================== #

def make_finalize_node(
    pools: TargetPoolManager,
    enter: Transition,
    mutate: Mutation,
) -> NodeFn:
    """Retire the previous pool.  A failure here leaves the cycle unresolved."""

    def finalize_node(state: dict[str, Any]) -> dict[str, Any]:
        record: DeploymentRecord = state["record"]
        previous = record.previous_pool_id
        try:
            enter(record, ControllerState.FINALIZING, state.get("reason", ""), abortable=False)
        except DeploymentAborted as exc:
            return _failure(
                mutate, record, ControllerState.BAKING, FailureKind.ABORT, str(exc)
            )

        try:
            pools.retire(previous)
        except Exception as exc:
            detail = f"Could not retire previous pool {previous}: {exc}"
            mutate(record, _set(unresolved_error=detail))
            logger.error("%s: %s", record.deployment_id, detail)
        else:
            detail = f"previous pool {previous} retired"
        return {
            "outcome": DeploymentOutcome.FINALIZED,
            "reason": detail,
            "trace": _trace(ControllerState.FINALIZING, detail),
        }

    return finalize_node


# ===================================================================== #
#  Rolling back                                                          #
# ===================================================================== #

def make_rollback_node(
    routing: RoutingTable,
    pools: TargetPoolManager,
    enter: Transition,
    mutate: Mutation,
) -> NodeFn:
    """Restore production to the previous pool and retire the candidate.

    Each step is attempted even if an earlier one failed; failures are
    collected into ``record.unresolved_error``.
    """

    def rollback_node(state: dict[str, Any]) -> dict[str, Any]:
        record: DeploymentRecord = state["record"]
        previous = record.previous_pool_id
        candidate = record.candidate_pool_id
        enter(record, ControllerState.ROLLING_BACK, state.get("reason", ""))

        errors: list[str] = []
        if record.cut_over:
            try:
                routing.bind(RouteName.PRODUCTION, previous)
                pools.mark_state(previous, PoolState.ACTIVE)
            except BlueGreenError as exc:
                errors.append(f"production not restored to {previous}: {exc}")

        if candidate:
            if routing.resolve(RouteName.TEST) == candidate:
                try:
                    routing.bind(RouteName.TEST, previous)
                except BlueGreenError as exc:
                    errors.append(f"test route not restored to {previous}: {exc}")
            still_routed = routing.routes_referencing(candidate)
            if still_routed:
                errors.append(
                    f"candidate {candidate} not retired: still routed by {', '.join(still_routed)}"
                )
            else:
                try:
                    if pools.get(candidate).state is PoolState.ACTIVE:
                        pools.mark_state(candidate, PoolState.DRAINING)
                    pools.retire(candidate)
                except Exception as exc:
                    errors.append(f"candidate {candidate} not retired: {exc}")

        if errors:
            detail = "; ".join(errors)
            mutate(record, _set(unresolved_error=detail))
            logger.error("%s: rollback incomplete: %s", record.deployment_id, detail)
            outcome = DeploymentOutcome.ABORTED
        else:
            aborted = state.get("aborted") or record.abort_requested
            outcome = DeploymentOutcome.ABORTED if aborted else DeploymentOutcome.ROLLED_BACK
            detail = f"production restored to {previous}"
            logger.info("%s: rolled back, %s", record.deployment_id, detail)
        return {
            "outcome": outcome,
            "reason": detail,
            "trace": _trace(ControllerState.ROLLING_BACK, detail),
        }

    return rollback_node
