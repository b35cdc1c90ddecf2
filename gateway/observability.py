"""
Observability module: Prometheus metrics and structured JSON logging.

- Token and connection counters behind an injectable MetricsSink
- PrometheusMetrics integration for automatic Flask instrumentation
- JSON structured logging via python-json-logger
"""

from __future__ import annotations

import enum
import logging
import sys
import threading
from typing import Protocol

from flask import Flask
from prometheus_client import Counter, Gauge
from prometheus_flask_exporter import PrometheusMetrics

# =============================================================================
# Prometheus Custom Metrics
# =============================================================================

TOKENS_ISSUED = Counter(
    "guac_tokens_issued",
    "Total number of tunnel tokens issued",
)

TOKEN_VALIDATION_FAILED = Counter(
    "guac_token_validation_failed",
    "Upgrade attempts rejected for a missing or invalid token",
)

TOKEN_EXPIRED = Counter(
    "guac_token_expired",
    "Upgrade attempts rejected for an expired token",
)

CONNECTIONS_TOTAL = Counter(
    "guac_connections",
    "Total number of tunnel sessions started",
)

CONNECTIONS_ACTIVE = Gauge(
    "guac_connections_active",
    "Number of tunnel sessions currently open",
)

ERRORS_TOTAL = Counter(
    "gateway_errors_total",
    "Total number of errors by endpoint",
    ["endpoint"],
)


class Metric(str, enum.Enum):
    TOKENS_ISSUED = "tokens_issued"
    TOKEN_VALIDATION_FAILED = "token_validation_failed"
    TOKEN_EXPIRED = "token_expired"
    CONNECTIONS_TOTAL = "connections_total"
    CONNECTIONS_ACTIVE = "connections_active"


# =============================================================================
# Metrics sink
# =============================================================================

class MetricsSink(Protocol):
    """Counter/gauge operations used by the gate, the issuer and the tunnel."""

    def increment(self, metric: Metric, amount: int = 1) -> None: ...

    def gauge_increment(self, metric: Metric) -> None: ...

    def gauge_decrement(self, metric: Metric) -> None: ...

    def gauge_set(self, metric: Metric, value: int) -> None: ...


class PrometheusMetricsSink:
    """MetricsSink backed by the module-level Prometheus collectors.

    Gauge levels are tracked here as well so a decrement can be clamped at
    zero; prometheus_client gauges happily go negative.
    """

    _counters = {
        Metric.TOKENS_ISSUED: TOKENS_ISSUED,
        Metric.TOKEN_VALIDATION_FAILED: TOKEN_VALIDATION_FAILED,
        Metric.TOKEN_EXPIRED: TOKEN_EXPIRED,
        Metric.CONNECTIONS_TOTAL: CONNECTIONS_TOTAL,
    }
    _gauges = {
        Metric.CONNECTIONS_ACTIVE: CONNECTIONS_ACTIVE,
    }

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._levels: dict[Metric, int] = {metric: 0 for metric in self._gauges}

    def increment(self, metric: Metric, amount: int = 1) -> None:
        self._counters[metric].inc(amount)

    def _shift(self, metric: Metric, delta: int) -> None:
        with self._lock:
            level = max(self._levels[metric] + delta, 0)
            self._levels[metric] = level
            self._gauges[metric].set(level)

    def gauge_increment(self, metric: Metric) -> None:
        self._shift(metric, 1)

    def gauge_decrement(self, metric: Metric) -> None:
        self._shift(metric, -1)

    def gauge_set(self, metric: Metric, value: int) -> None:
        with self._lock:
            level = max(value, 0)
            self._levels[metric] = level
            self._gauges[metric].set(level)

    def level(self, metric: Metric) -> int:
        return self._levels[metric]


class SessionTracker:
    """Reports tunnel session start/end to the metrics sink."""

    def __init__(self, metrics: MetricsSink) -> None:
        self._metrics = metrics

    def started(self) -> None:
        self._metrics.increment(Metric.CONNECTIONS_TOTAL)
        self._metrics.gauge_increment(Metric.CONNECTIONS_ACTIVE)

    def ended(self) -> None:
        self._metrics.gauge_decrement(Metric.CONNECTIONS_ACTIVE)


# =============================================================================
# Metrics Initialization
# =============================================================================

def init_metrics(app: Flask) -> PrometheusMetrics:
    """
    Initialize PrometheusMetrics on the Flask app.

    Auto-instruments all routes with flask_http_request_duration_seconds
    and flask_http_request_total. Exposes /metrics without authentication.
    """
    metrics = PrometheusMetrics(app, path="/metrics")

    # Exempt /metrics from rate limiting
    from gateway.api.rate_limit import limiter
    metrics_view = app.view_functions.get("prometheus_metrics")
    if metrics_view is not None:
        limiter.exempt(metrics_view)

    return metrics


# =============================================================================
# JSON Structured Logging
# =============================================================================

def setup_json_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with JSON structured output.

    The 'audit' logger is unaffected (propagate=False, own handler).
    """
    from pythonjsonlogger.json import JsonFormatter

    handler = logging.StreamHandler(sys.stderr)
    formatter = JsonFormatter(
        fmt="%(timestamp)s %(name)s %(levelname)s %(message)s",
        rename_fields={"levelname": "level"},
        timestamp=True,
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
