"""
Tests for gateway.container (service container).
"""

import json

import pytest

from gateway.config.settings import GatewayEnvironment
from gateway.container import ServiceContainer, get_services
from gateway.domain.gate import UpgradeGate
from gateway.domain.issuance import TokenIssuer
from gateway.observability import Metric, PrometheusMetricsSink
from gateway.tunnel.guacd import GuacdTunnelBroker


@pytest.fixture
def container():
    return ServiceContainer(GatewayEnvironment(
        token_secret="s", api_key="k", guacd_host="guacd", guacd_port=4823,
    ))


class TestLazyServices:

    def test_services_built_once(self, container):
        assert container.codec is container.codec
        assert container.gate is container.gate
        assert container.issuer is container.issuer

    def test_gate_and_issuer_share_codec_and_metrics(self, container):
        assert isinstance(container.gate, UpgradeGate)
        assert isinstance(container.issuer, TokenIssuer)
        assert isinstance(container.metrics, PrometheusMetricsSink)
        assert container.gate._codec is container.codec
        assert container.issuer._codec is container.codec

    def test_tunnel_broker_uses_environment(self, container):
        broker = container.tunnel_broker
        assert isinstance(broker, GuacdTunnelBroker)
        assert (broker.host, broker.port) == ("guacd", 4823)

    def test_no_connections_file_gives_empty_registry(self, container):
        assert len(container.presets) == 0

    def test_presets_loaded_from_file(self, tmp_path):
        path = tmp_path / "connections.json"
        path.write_text(json.dumps({"box": {"host": "10.1.1.1"}}))
        container = ServiceContainer(GatewayEnvironment(
            token_secret="s", api_key="k", connections_file=str(path),
        ))
        assert container.presets.names() == ["box"]

    def test_injected_service_wins(self, container, fake_metrics):
        container._metrics = fake_metrics
        assert container.gate._metrics is fake_metrics

    def test_warm_up_builds_everything(self, container):
        container.warm_up()
        assert container._presets is not None
        assert container._gate is not None
        assert container._issuer is not None
        assert container._tunnel_broker is not None


class TestShutdown:

    def test_shutdown_resets_active_gauge(self, container, fake_metrics):
        container._metrics = fake_metrics
        fake_metrics.gauge_increment(Metric.CONNECTIONS_ACTIVE)
        container.shutdown()
        assert fake_metrics.gauges[Metric.CONNECTIONS_ACTIVE] == 0


class TestGetServices:

    def test_global_fallback(self, mock_services):
        assert get_services() is mock_services

    def test_not_initialized(self, mocker):
        mocker.patch("gateway.container._global_container", None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_services()

    def test_flask_extension_preferred(self, app_client, mock_services, container):
        from gateway.app import app

        app.extensions["services"] = container
        with app.app_context():
            assert get_services() is container
