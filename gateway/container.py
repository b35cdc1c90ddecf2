"""
Lightweight DI container for gateway services.

Stored in ``app.extensions['services']`` during Flask context,
with a global fallback for code that runs outside a request context.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gateway.observability import Metric

logger = logging.getLogger("token-gateway")

if TYPE_CHECKING:
    from gateway.config.settings import GatewayEnvironment
    from gateway.domain.gate import UpgradeGate
    from gateway.domain.issuance import TokenIssuer
    from gateway.domain.presets import PresetRegistry
    from gateway.domain.token import TokenCodec
    from gateway.observability import MetricsSink
    from gateway.tunnel.base import TunnelBroker


class ServiceContainer:
    """Lightweight service container holding shared service instances.

    Every service is built on first access; tests assign the private
    attributes directly to inject fakes.
    """

    def __init__(self, environment: GatewayEnvironment) -> None:
        self._environment = environment
        self._codec: TokenCodec | None = None
        self._metrics: MetricsSink | None = None
        self._presets: PresetRegistry | None = None
        self._gate: UpgradeGate | None = None
        self._issuer: TokenIssuer | None = None
        self._tunnel_broker: TunnelBroker | None = None

    @property
    def environment(self) -> GatewayEnvironment:
        return self._environment

    @property
    def codec(self) -> TokenCodec:
        if self._codec is None:
            from gateway.domain.token import TokenCodec

            self._codec = TokenCodec(self._environment.token_secret)
        return self._codec

    @property
    def metrics(self) -> MetricsSink:
        if self._metrics is None:
            from gateway.observability import PrometheusMetricsSink

            self._metrics = PrometheusMetricsSink()
        return self._metrics

    @property
    def presets(self) -> PresetRegistry:
        if self._presets is None:
            from gateway.domain.presets import PresetRegistry

            self._presets = PresetRegistry.load(
                self._environment.connections_file,
                default_kubeconfig=self._environment.kubeconfig,
            )
        return self._presets

    @property
    def gate(self) -> UpgradeGate:
        if self._gate is None:
            from gateway.domain.gate import UpgradeGate

            self._gate = UpgradeGate(self.codec, self.metrics)
        return self._gate

    @property
    def issuer(self) -> TokenIssuer:
        if self._issuer is None:
            from gateway.domain.issuance import TokenIssuer

            self._issuer = TokenIssuer(self.codec, self.metrics)
        return self._issuer

    @property
    def tunnel_broker(self) -> TunnelBroker:
        if self._tunnel_broker is None:
            from gateway.config.loader import GatewayConfig
            from gateway.tunnel.guacd import GuacdTunnelBroker

            self._tunnel_broker = GuacdTunnelBroker(
                self._environment.guacd_host,
                self._environment.guacd_port,
                GatewayConfig.settings().tunnel,
                self.metrics,
            )
        return self._tunnel_broker

    def warm_up(self) -> None:
        """Build every service eagerly."""
        for service in (self.presets, self.gate, self.issuer, self.tunnel_broker):
            logger.debug(f"Service ready: {type(service).__name__}")

    def shutdown(self) -> None:
        """Reset the active-connections gauge; open tunnels die with the process."""
        self.metrics.gauge_set(Metric.CONNECTIONS_ACTIVE, 0)


# Fallback for code running outside Flask context (set once at startup in app.py)
_global_container: ServiceContainer | None = None


def get_services() -> ServiceContainer:
    """Return the service container.

    Tries ``current_app.extensions['services']`` first, then falls back
    to the module-level ``_global_container``.
    """
    try:
        from flask import current_app

        return current_app.extensions["services"]
    except (RuntimeError, KeyError):
        pass
    if _global_container is not None:
        return _global_container
    raise RuntimeError("ServiceContainer not initialized")
