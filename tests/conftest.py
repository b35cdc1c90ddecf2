"""
Shared pytest fixtures for the token gateway test suite.
"""

import os
from collections import Counter
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# ---------------------------------------------------------------------------
# Environment stubs – must be set BEFORE any gateway module is imported so
# that module-level calls to get_env / GatewayConfig see them.
# ---------------------------------------------------------------------------

os.environ.setdefault("TOKEN_SECRET", "test-token-secret")
os.environ.setdefault("API_KEY", "test-api-key-secret")
os.environ.setdefault("CONFIG_PATH", "/tmp/token-gateway-tests/config")
os.environ.setdefault("CONNECTIONS_FILE", "/tmp/token-gateway-tests/no-such-connections.json")

# Rate limiting off for the whole suite (read once when the app is imported)
_config_dir = Path(os.environ["CONFIG_PATH"])
_config_dir.mkdir(parents=True, exist_ok=True)
(_config_dir / "gateway.yml").write_text("security:\n  rate_limiting:\n    enabled: false\n")

# Import gateway modules AFTER env vars are set
from gateway.config.settings import GatewayEnvironment  # noqa: E402
from gateway.domain.gate import UpgradeGate  # noqa: E402
from gateway.domain.issuance import TokenIssuer  # noqa: E402
from gateway.domain.presets import PresetRegistry  # noqa: E402
from gateway.domain.token import TokenCodec  # noqa: E402

TEST_SECRET = "test-token-secret"
TEST_API_KEY = "test-api-key-secret"
NOW = 1_700_000_000

SAMPLE_PRESETS = {
    "lab-shell": {"kind": "shell", "host": "10.0.0.5", "username": "alice", "password": "p@ss"},
    "lab-desktop": {"kind": "desktop", "host": "10.0.0.9", "username": "bob", "security": "nla"},
    "web-pod": {"kubernetes": {"namespace": "web", "pod": "web-0", "container": "app"}},
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeMetricsSink:
    """In-memory MetricsSink recording every update."""

    def __init__(self):
        self.counters = Counter()
        self.gauges = {}

    def increment(self, metric, amount=1):
        self.counters[metric] += amount

    def gauge_increment(self, metric):
        self.gauges[metric] = self.gauges.get(metric, 0) + 1

    def gauge_decrement(self, metric):
        self.gauges[metric] = max(self.gauges.get(metric, 0) - 1, 0)

    def gauge_set(self, metric, value):
        self.gauges[metric] = max(value, 0)


class FakeClock:
    """Callable clock whose time the test controls."""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def fake_metrics():
    return FakeMetricsSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec():
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def gate(codec, fake_metrics, clock):
    return UpgradeGate(codec, fake_metrics, clock=clock)


@pytest.fixture
def issuer(codec, fake_metrics, clock):
    return TokenIssuer(codec, fake_metrics, clock=clock)


@pytest.fixture
def registry():
    return PresetRegistry.from_mapping(SAMPLE_PRESETS)


# ---------------------------------------------------------------------------
# Service container mock
# ---------------------------------------------------------------------------

@pytest.fixture
def gateway_environment():
    return GatewayEnvironment(token_secret=TEST_SECRET, api_key=TEST_API_KEY)


@pytest.fixture
def mock_broker():
    return MagicMock()


@pytest.fixture
def mock_services(mocker, gateway_environment, codec, fake_metrics, registry, gate, issuer, mock_broker):
    """Create and inject a ServiceContainer with test services."""
    from gateway.container import ServiceContainer

    container = ServiceContainer(gateway_environment)
    container._codec = codec
    container._metrics = fake_metrics
    container._presets = registry
    container._gate = gate
    container._issuer = issuer
    container._tunnel_broker = mock_broker

    # Inject as global fallback
    mocker.patch("gateway.container._global_container", container)

    return container


# ---------------------------------------------------------------------------
# Flask test client
# ---------------------------------------------------------------------------

@pytest.fixture
def app_client(mocker, mock_services):
    """Create a Flask test_client backed by the test service container."""
    from gateway.app import app
    app.config["TESTING"] = True
    mocker.patch.dict(app.extensions, {"services": mock_services})

    client = app.test_client()
    # Wrap client to add default API key header
    _original_open = client.open

    def _open_with_key(*args, **kwargs):
        headers = kwargs.pop("headers", {})
        if isinstance(headers, dict) and "X-API-Key" not in headers and "Authorization" not in headers:
            headers["X-API-Key"] = TEST_API_KEY
        kwargs["headers"] = headers
        return _original_open(*args, **kwargs)

    client.open = _open_with_key
    return client
