"""Infrastructure layer for the blue-green controller.

Re-exports the public API surface for convenience::

    from blue_green.infrastructure import (
        EventBus, EventStore, SystemClock,
        HealthCheckConfig, ControllerConfig, RoutingConfig,
        InMemoryComputeSubstrate, InMemoryLoadBalancer, HttpProbe,
    )
"""

from blue_green.infrastructure.clock import Clock, SystemClock
from blue_green.infrastructure.config import (
    ControllerConfig,
    HealthCheckConfig,
    RoutingConfig,
    load_config_from_json,
    load_config_from_yaml,
    parse_success_codes,
)
from blue_green.infrastructure.event_bus import EventBus, EventStore
from blue_green.infrastructure.probes import (
    HealthProbe,
    HttpProbe,
    ProbeResult,
    TcpProbe,
    probe_for,
)
from blue_green.infrastructure.serialization import (
    deserialize,
    from_json,
    from_yaml,
    serialize,
    to_json,
    to_yaml,
)
from blue_green.infrastructure.substrate import (
    ComputeSubstrate,
    InMemoryComputeSubstrate,
    InMemoryLoadBalancer,
    LoadBalancer,
    ProvisionBehavior,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    # Event bus
    "EventBus",
    "EventStore",
    # Configuration
    "HealthCheckConfig",
    "ControllerConfig",
    "RoutingConfig",
    "load_config_from_json",
    "load_config_from_yaml",
    "parse_success_codes",
    # Probes
    "HealthProbe",
    "HttpProbe",
    "TcpProbe",
    "ProbeResult",
    "probe_for",
    # Substrates
    "ComputeSubstrate",
    "LoadBalancer",
    "InMemoryComputeSubstrate",
    "InMemoryLoadBalancer",
    "ProvisionBehavior",
    # Serialization
    "serialize",
    "deserialize",
    "to_json",
    "from_json",
    "to_yaml",
    "from_yaml",
]
