"""Serialization utilities for the blue-green controller.

Provides ``to_dict`` / ``from_dict`` conversion for the domain objects an
operator persists or ships to an audit store: deployment records, target
pools, health verdicts, routes, and configs.  JSON uses the stdlib; YAML uses
PyYAML.

Every ``to_dict`` output is JSON-serializable (enums become their values,
frozensets become sorted lists).  ``from_dict`` reconstructors accept
permissive input and raise ``ValueError`` / ``KeyError`` for unrecoverable
data.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any

import yaml

from blue_green.domain.entities import DeploymentRecord, TargetPool
from blue_green.domain.enums import (
    ControllerState,
    DeploymentOutcome,
    FailureKind,
    PoolColor,
    PoolState,
    RouteName,
)
from blue_green.domain.events import DomainEvent
from blue_green.domain.values import (
    Endpoint,
    EndpointHealth,
    HealthVerdict,
    PoolSpec,
    Route,
    StateTransition,
)
from blue_green.infrastructure.config import (
    ControllerConfig,
    HealthCheckConfig,
    RoutingConfig,
)

logger = logging.getLogger(__name__)


# =========================================================================== #
#  Generic helpers                                                             #
# =========================================================================== #

def _enum_val(v: Any) -> Any:
    """Return the ``.value`` if *v* is an enum member, else *v* unchanged."""
    if hasattr(v, "value"):
        return v.value
    return v


def _opt_float(v: Any) -> float | None:
    return None if v is None else float(v)


# =========================================================================== #
#  Value objects                                                               #
# =========================================================================== #

def endpoint_to_dict(ep: Endpoint) -> dict[str, Any]:
    return {"address": ep.address, "port": ep.port, "protocol": ep.protocol}


def endpoint_from_dict(data: dict[str, Any]) -> Endpoint:
    return Endpoint(
        address=str(data["address"]),
        port=int(data.get("port", 80)),
        protocol=str(data.get("protocol", "HTTP")),
    )


def pool_spec_to_dict(spec: PoolSpec) -> dict[str, Any]:
    return {
        "service": spec.service,
        "version": spec.version,
        "desired_count": spec.desired_count,
        "cpu": spec.cpu,
        "memory_mib": spec.memory_mib,
        "container_port": spec.container_port,
        "metadata": dict(spec.metadata),
    }


def pool_spec_from_dict(data: dict[str, Any]) -> PoolSpec:
    return PoolSpec(
        service=str(data["service"]),
        version=str(data["version"]),
        desired_count=int(data.get("desired_count", 1)),
        cpu=int(data.get("cpu", 256)),
        memory_mib=int(data.get("memory_mib", 512)),
        container_port=int(data.get("container_port", 80)),
        metadata=dict(data.get("metadata", {})),
    )


def health_verdict_to_dict(v: HealthVerdict) -> dict[str, Any]:
    return {
        "pool_id": v.pool_id,
        "healthy": v.healthy,
        "healthy_count": v.healthy_count,
        "total": v.total,
        "fraction": v.fraction,
        "threshold": v.threshold,
        "checked_at": v.checked_at,
        "endpoints": [
            {
                "endpoint": endpoint_to_dict(eh.endpoint),
                "healthy": eh.healthy,
                "consecutive_successes": eh.consecutive_successes,
                "consecutive_failures": eh.consecutive_failures,
                "latency_ms": eh.latency_ms,
                "last_error": eh.last_error,
            }
            for eh in v.endpoints
        ],
    }


def health_verdict_from_dict(data: dict[str, Any]) -> HealthVerdict:
    return HealthVerdict(
        pool_id=str(data["pool_id"]),
        healthy=bool(data["healthy"]),
        healthy_count=int(data["healthy_count"]),
        total=int(data["total"]),
        threshold=float(data.get("threshold", 1.0)),
        checked_at=float(data.get("checked_at", 0.0)),
        endpoints=tuple(
            EndpointHealth(
                endpoint=endpoint_from_dict(e["endpoint"]),
                healthy=bool(e["healthy"]),
                consecutive_successes=int(e.get("consecutive_successes", 0)),
                consecutive_failures=int(e.get("consecutive_failures", 0)),
                latency_ms=float(e.get("latency_ms", 0.0)),
                last_error=str(e.get("last_error", "")),
            )
            for e in data.get("endpoints", [])
        ),
    )


def route_to_dict(r: Route) -> dict[str, Any]:
    return {
        "name": _enum_val(r.name),
        "pool_id": r.pool_id,
        "listener_port": r.listener_port,
        "generation": r.generation,
        "bound_at": r.bound_at,
    }


def route_from_dict(data: dict[str, Any]) -> Route:
    return Route(
        name=RouteName(data["name"]),
        pool_id=str(data["pool_id"]),
        listener_port=int(data["listener_port"]),
        generation=int(data.get("generation", 1)),
        bound_at=float(data.get("bound_at", 0.0)),
    )


def transition_to_dict(t: StateTransition) -> dict[str, Any]:
    return {
        "previous_state": _enum_val(t.previous_state),
        "new_state": _enum_val(t.new_state),
        "timestamp": t.timestamp,
        "reason": t.reason,
    }


def transition_from_dict(data: dict[str, Any]) -> StateTransition:
    return StateTransition(
        previous_state=ControllerState(data["previous_state"]),
        new_state=ControllerState(data["new_state"]),
        timestamp=float(data.get("timestamp", 0.0)),
        reason=str(data.get("reason", "")),
    )


# =========================================================================== #
#  Entities                                                                    #
# =========================================================================== #

def target_pool_to_dict(pool: TargetPool) -> dict[str, Any]:
    return {
        "pool_id": pool.pool_id,
        "color": _enum_val(pool.color),
        "spec": pool_spec_to_dict(pool.spec),
        "endpoints": [endpoint_to_dict(e) for e in sorted(pool.endpoints, key=str)],
        "state": _enum_val(pool.state),
        "created_at": pool.created_at,
        "updated_at": pool.updated_at,
    }


def target_pool_from_dict(data: dict[str, Any]) -> TargetPool:
    return TargetPool(
        pool_id=str(data["pool_id"]),
        color=PoolColor(data["color"]),
        spec=pool_spec_from_dict(data["spec"]),
        endpoints=frozenset(endpoint_from_dict(e) for e in data.get("endpoints", [])),
        state=PoolState(data.get("state", PoolState.PROVISIONING.value)),
        created_at=float(data.get("created_at", 0.0)),
        updated_at=float(data.get("updated_at", 0.0)),
    )


def deployment_record_to_dict(rec: DeploymentRecord) -> dict[str, Any]:
    return {
        "deployment_id": rec.deployment_id,
        "service": rec.service,
        "previous_pool_id": rec.previous_pool_id,
        "candidate_pool_id": rec.candidate_pool_id,
        "state": _enum_val(rec.state),
        "outcome": _enum_val(rec.outcome) if rec.outcome is not None else None,
        "started_at": rec.started_at,
        "completed_at": rec.completed_at,
        "bake_duration": rec.bake_duration,
        "bake_started_at": rec.bake_started_at,
        "bake_deadline": rec.bake_deadline,
        "cut_over": rec.cut_over,
        "abort_requested": rec.abort_requested,
        "failure_kind": _enum_val(rec.failure_kind) if rec.failure_kind else None,
        "failure": rec.failure,
        "unresolved_error": rec.unresolved_error,
        "transitions": [transition_to_dict(t) for t in rec.transitions],
    }


def deployment_record_from_dict(data: dict[str, Any]) -> DeploymentRecord:
    outcome = data.get("outcome")
    failure_kind = data.get("failure_kind")
    return DeploymentRecord(
        deployment_id=str(data["deployment_id"]),
        service=str(data["service"]),
        previous_pool_id=str(data["previous_pool_id"]),
        candidate_pool_id=data.get("candidate_pool_id"),
        state=ControllerState(data.get("state", ControllerState.IDLE.value)),
        outcome=DeploymentOutcome(outcome) if outcome else None,
        started_at=float(data.get("started_at", 0.0)),
        completed_at=_opt_float(data.get("completed_at")),
        bake_duration=float(data.get("bake_duration", 0.0)),
        bake_started_at=_opt_float(data.get("bake_started_at")),
        bake_deadline=_opt_float(data.get("bake_deadline")),
        cut_over=bool(data.get("cut_over", False)),
        abort_requested=bool(data.get("abort_requested", False)),
        failure_kind=FailureKind(failure_kind) if failure_kind else None,
        failure=str(data.get("failure", "")),
        unresolved_error=str(data.get("unresolved_error", "")),
        transitions=[transition_from_dict(t) for t in data.get("transitions", [])],
    )


# =========================================================================== #
#  Events                                                                      #
# =========================================================================== #

def event_to_dict(event: DomainEvent) -> dict[str, Any]:
    """Flatten an event into a dict tagged with its type name."""
    payload = {k: _enum_val(v) for k, v in asdict(event).items()}
    payload["event_type"] = type(event).__name__
    return payload


# =========================================================================== #
#  Configs                                                                     #
# =========================================================================== #

def config_to_dict(cfg: Any) -> dict[str, Any]:
    """Serialize any config dataclass (uses its ``to_dict`` method)."""
    return cfg.to_dict()


# =========================================================================== #
#  Registry of known types (for generic serialize / deserialize)               #
# =========================================================================== #

_SERIALIZERS: dict[type, tuple[Any, Any]] = {
    Endpoint: (endpoint_to_dict, endpoint_from_dict),
    PoolSpec: (pool_spec_to_dict, pool_spec_from_dict),
    HealthVerdict: (health_verdict_to_dict, health_verdict_from_dict),
    Route: (route_to_dict, route_from_dict),
    StateTransition: (transition_to_dict, transition_from_dict),
    TargetPool: (target_pool_to_dict, target_pool_from_dict),
    DeploymentRecord: (deployment_record_to_dict, deployment_record_from_dict),
    HealthCheckConfig: (config_to_dict, None),
    ControllerConfig: (config_to_dict, None),
    RoutingConfig: (config_to_dict, None),
}


def serialize(obj: Any) -> dict[str, Any]:
    """Serialize a known domain/infrastructure object to a dict.

    Raises ``TypeError`` for unsupported types.
    """
    ser = _SERIALIZERS.get(type(obj))
    if ser is not None:
        to_fn, _ = ser
        return to_fn(obj)
    if isinstance(obj, DomainEvent):
        return event_to_dict(obj)
    raise TypeError(f"No serializer registered for {type(obj).__name__}")


def deserialize(data: dict[str, Any], target_type: type) -> Any:
    """Deserialize a dict into *target_type*.

    Configs are rebuilt through their ``from_dict`` classmethod.
    """
    ser = _SERIALIZERS.get(target_type)
    if ser is not None:
        _, from_fn = ser
        if from_fn is not None:
            return from_fn(data)
        if hasattr(target_type, "from_dict"):
            return target_type.from_dict(data)
    raise TypeError(f"No deserializer registered for {target_type.__name__}")


# =========================================================================== #
#  JSON helpers                                                                #
# =========================================================================== #

def to_json(obj: Any, *, indent: int | None = 2) -> str:
    """Serialize a domain/infra object to a JSON string."""
    return json.dumps(serialize(obj), indent=indent, default=str)


def from_json(json_str: str, target_type: type) -> Any:
    """Deserialize a JSON string into *target_type*."""
    return deserialize(json.loads(json_str), target_type)


# =========================================================================== #
#  YAML helpers                                                                #
# =========================================================================== #

def to_yaml(obj: Any) -> str:
    """Serialize a domain/infra object to a YAML string."""
    return yaml.safe_dump(serialize(obj), default_flow_style=False, sort_keys=False)


def from_yaml(yaml_str: str, target_type: type) -> Any:
    """Deserialize a YAML string into *target_type*."""
    return deserialize(yaml.safe_load(yaml_str), target_type)
