"""Endpoint health probes.

A probe answers one question about one endpoint: did it return a success
signal within the timeout?  Probes never raise for an unhealthy endpoint;
they return a failed ``ProbeResult``.  Only a probe that cannot run at all
(its client is closed, its egress proxy is down, its URL scheme has no
transport) raises ``MonitorUnavailableError``, which fails the bake closed.

``HttpProbe`` uses ``httpx`` (pass your own ``httpx.Client`` to share a
connection pool or to mount a mock transport in tests).
"""

from __future__ import annotations

import logging
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from blue_green.domain.enums import HealthProtocol
from blue_green.domain.exceptions import MonitorUnavailableError
from blue_green.domain.values import Endpoint
from blue_green.infrastructure.config import HealthCheckConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single probe."""

    success: bool
    latency_ms: float = 0.0
    error: str = ""


class HealthProbe(ABC):
    """Checks a single endpoint."""

    @abstractmethod
    def probe(self, endpoint: Endpoint, config: HealthCheckConfig) -> ProbeResult:
        """Probe *endpoint* using *config*.

        Raises
        ------
        MonitorUnavailableError
            Only when the monitoring substrate itself is unreachable.
            ``HttpProbe`` raises it when the probe cannot be sent at all;
            ``TcpProbe`` cannot tell a local socket failure from a dead
            endpoint and never raises it.
        """

    def close(self) -> None:
        """Release resources held by the probe."""


class HttpProbe(HealthProbe):
    """HTTP(S) probe: a GET on ``config.path`` must answer a success code.

    Parameters
    ----------
    client:
        Optional ``httpx.Client``.  One is created (and owned) when omitted.
    """

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=False)

    @staticmethod
    def url_for(endpoint: Endpoint, config: HealthCheckConfig) -> str:
        scheme = "https" if config.health_protocol is HealthProtocol.HTTPS else "http"
        port = config.port or endpoint.port
        return f"{scheme}://{endpoint.address}:{port}{config.path}"

    def probe(self, endpoint: Endpoint, config: HealthCheckConfig) -> ProbeResult:
        url = self.url_for(endpoint, config)
        if self._client.is_closed:
            raise MonitorUnavailableError(f"HttpProbe: client closed, cannot probe {url}")
        start = time.perf_counter()
        try:
            response = self._client.get(url, timeout=config.timeout_seconds)
        except (httpx.ProxyError, httpx.UnsupportedProtocol) as exc:
            raise MonitorUnavailableError(f"HttpProbe: cannot probe {url}: {exc}") from exc
        except httpx.HTTPError as exc:
            latency = (time.perf_counter() - start) * 1000.0
            logger.debug("HttpProbe: %s failed: %s", url, exc)
            return ProbeResult(success=False, latency_ms=latency, error=str(exc) or type(exc).__name__)
        latency = (time.perf_counter() - start) * 1000.0
        if response.status_code not in config.success_code_set:
            return ProbeResult(
                success=False,
                latency_ms=latency,
                error=f"unexpected status {response.status_code}",
            )
        return ProbeResult(success=True, latency_ms=latency)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class TcpProbe(HealthProbe):
    """TCP probe: a connection must be accepted within the timeout."""

    def probe(self, endpoint: Endpoint, config: HealthCheckConfig) -> ProbeResult:
        port = config.port or endpoint.port
        start = time.perf_counter()
        try:
            with socket.create_connection(
                (endpoint.address, port), timeout=config.timeout_seconds
            ):
                pass
        except OSError as exc:
            latency = (time.perf_counter() - start) * 1000.0
            logger.debug("TcpProbe: %s:%d failed: %s", endpoint.address, port, exc)
            return ProbeResult(success=False, latency_ms=latency, error=str(exc))
        return ProbeResult(success=True, latency_ms=(time.perf_counter() - start) * 1000.0)


def probe_for(config: HealthCheckConfig, client: httpx.Client | None = None) -> HealthProbe:
    """Return the probe matching ``config.protocol``."""
    if config.health_protocol is HealthProtocol.TCP:
        return TcpProbe()
    return HttpProbe(client=client)
