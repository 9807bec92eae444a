"""Configuration dataclasses for the blue-green controller.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid combinations.  Configs are **frozen** so they can be
shared between the controller, the monitor and the supervisor without risking
silent mutation mid-cycle.

Defaults mirror the load-balancer stack the controller was built for: HTTP
health checks on ``/``, a production listener on port 80, a test listener on
port 8080, and a two-minute bake.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, fields
from typing import Any

import yaml

from blue_green.domain.enums import HealthProtocol

_SUCCESS_CODES_RE = re.compile(r"^\d{3}(-\d{3})?(,\d{3}(-\d{3})?)*$")


def parse_success_codes(spec: str) -> frozenset[int]:
    """Expand a matcher such as ``"200,202"`` or ``"200-299"`` into codes."""
    spec = spec.replace(" ", "")
    if not _SUCCESS_CODES_RE.match(spec):
        raise ValueError(f"invalid success code matcher '{spec}'")
    codes: set[int] = set()
    for part in spec.split(","):
        if "-" in part:
            lo, hi = (int(x) for x in part.split("-"))
            if lo > hi:
                raise ValueError(f"invalid success code range '{part}'")
            codes.update(range(lo, hi + 1))
        else:
            codes.add(int(part))
    return frozenset(codes)


# ===================================================================== #
#  Health Check Configuration                                            #
# ===================================================================== #

@dataclass(frozen=True)
class HealthCheckConfig:
    """Parameters passed unchanged to the health-check probe.

    Attributes
    ----------
    protocol:
        ``HTTP``, ``HTTPS`` or ``TCP``.
    path:
        Request path for HTTP(S) checks.
    port:
        Port to probe.  ``None`` probes the endpoint's traffic port.
    interval_seconds:
        Pause between validation attempts on the test route.
    timeout_seconds:
        Per-probe timeout; a slower answer counts as a failure.
    healthy_threshold_count:
        Consecutive successes before an endpoint counts as healthy.
    unhealthy_threshold_count:
        Consecutive failures before a healthy endpoint counts as unhealthy.
        The default of 1 fails an endpoint on its first failed probe; raise
        it only to tolerate known flapping.
    success_codes:
        HTTP status matcher (``"200"``, ``"200,202"``, ``"200-299"``).
    healthy_fraction:
        Fraction of healthy endpoints required for a healthy pool verdict.
    """

    protocol: str = HealthProtocol.HTTP.value
    path: str = "/"
    port: int | None = None
    interval_seconds: float = 5.0
    timeout_seconds: float = 5.0
    healthy_threshold_count: int = 2
    unhealthy_threshold_count: int = 1
    success_codes: str = "200"
    healthy_fraction: float = 1.0

    @property
    def health_protocol(self) -> HealthProtocol:
        return HealthProtocol(self.protocol.upper())

    @property
    def success_code_set(self) -> frozenset[int]:
        return parse_success_codes(self.success_codes)

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        try:
            HealthProtocol(self.protocol.upper())
        except ValueError:
            raise ValueError(
                f"protocol must be one of {[p.value for p in HealthProtocol]}, "
                f"got '{self.protocol}'"
            ) from None
        if not self.path.startswith("/"):
            raise ValueError(f"path must start with '/', got '{self.path}'")
        if self.port is not None and not 0 < self.port < 65536:
            raise ValueError(f"port must be in [1, 65535], got {self.port}")
        if self.interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be > 0, got {self.interval_seconds}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(
                f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            )
        if self.healthy_threshold_count < 1:
            raise ValueError(
                f"healthy_threshold_count must be >= 1, got {self.healthy_threshold_count}"
            )
        if self.unhealthy_threshold_count < 1:
            raise ValueError(
                f"unhealthy_threshold_count must be >= 1, "
                f"got {self.unhealthy_threshold_count}"
            )
        if not (0.0 < self.healthy_fraction <= 1.0):
            raise ValueError(
                f"healthy_fraction must be in (0, 1], got {self.healthy_fraction}"
            )
        parse_success_codes(self.success_codes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HealthCheckConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Controller Configuration                                              #
# ===================================================================== #

@dataclass(frozen=True)
class ControllerConfig:
    """Timing and retry budgets of a deployment cycle.

    Attributes
    ----------
    bake_duration_seconds:
        Default bake window after cutover (overridable per deployment).
    bake_poll_interval_seconds:
        Pause between bake health checks.
    provision_timeout_seconds:
        How long one provisioning attempt may wait for readiness.
    provision_poll_interval_seconds:
        Pause between readiness polls.
    provision_attempts:
        Provisioning attempts before the cycle rolls back.
    validation_attempts:
        Health checks on the test route before the cycle rolls back.
    bind_ack_timeout_seconds:
        How long a route bind waits for the load balancer acknowledgement.
    bind_ack_poll_interval_seconds:
        Pause between acknowledgement polls.
    """

    bake_duration_seconds: float = 120.0
    bake_poll_interval_seconds: float = 10.0
    provision_timeout_seconds: float = 300.0
    provision_poll_interval_seconds: float = 5.0
    provision_attempts: int = 1
    validation_attempts: int = 5
    bind_ack_timeout_seconds: float = 30.0
    bind_ack_poll_interval_seconds: float = 1.0

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if self.bake_duration_seconds <= 0:
            raise ValueError(
                f"bake_duration_seconds must be > 0, got {self.bake_duration_seconds}"
            )
        if self.bake_poll_interval_seconds <= 0:
            raise ValueError(
                f"bake_poll_interval_seconds must be > 0, "
                f"got {self.bake_poll_interval_seconds}"
            )
        if self.provision_timeout_seconds <= 0:
            raise ValueError(
                f"provision_timeout_seconds must be > 0, "
                f"got {self.provision_timeout_seconds}"
            )
        if self.provision_poll_interval_seconds <= 0:
            raise ValueError(
                f"provision_poll_interval_seconds must be > 0, "
                f"got {self.provision_poll_interval_seconds}"
            )
        if self.provision_attempts < 1:
            raise ValueError(
                f"provision_attempts must be >= 1, got {self.provision_attempts}"
            )
        if self.validation_attempts < 1:
            raise ValueError(
                f"validation_attempts must be >= 1, got {self.validation_attempts}"
            )
        if self.bind_ack_timeout_seconds < 0:
            raise ValueError(
                f"bind_ack_timeout_seconds must be >= 0, "
                f"got {self.bind_ack_timeout_seconds}"
            )
        if self.bind_ack_poll_interval_seconds <= 0:
            raise ValueError(
                f"bind_ack_poll_interval_seconds must be > 0, "
                f"got {self.bind_ack_poll_interval_seconds}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ControllerConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Routing Configuration                                                 #
# ===================================================================== #

@dataclass(frozen=True)
class RoutingConfig:
    """Listener ports of the production and test routes."""

    production_port: int = 80
    test_port: int = 8080

    def validate(self) -> None:
        for name, port in (("production_port", self.production_port),
                           ("test_port", self.test_port)):
            if not 0 < port < 65536:
                raise ValueError(f"{name} must be in [1, 65535], got {port}")
        if self.production_port == self.test_port:
            raise ValueError("production_port and test_port must differ")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoutingConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Unified config loader                                                 #
# ===================================================================== #

_CONFIG_MAP: dict[str, type] = {
    "health_check": HealthCheckConfig,
    "controller": ControllerConfig,
    "routing": RoutingConfig,
}


def _load_sections(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError("Top-level config must be a mapping")
    result: dict[str, Any] = {}
    for section, data in raw.items():
        cls = _CONFIG_MAP.get(section)
        if cls is not None and isinstance(data, dict):
            result[section] = cls.from_dict(data)
        else:
            result[section] = data
    return result


def load_config_from_json(json_str: str) -> dict[str, Any]:
    """Parse a JSON string into a dict of typed config objects.

    The JSON is expected to be an object whose top-level keys correspond to
    config section names (``health_check``, ``controller``, ``routing``).
    Unknown sections are preserved as raw values.
    """
    return _load_sections(json.loads(json_str))


def load_config_from_yaml(yaml_str: str) -> dict[str, Any]:
    """YAML counterpart of :func:`load_config_from_json`."""
    return _load_sections(yaml.safe_load(yaml_str))
