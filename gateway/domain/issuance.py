"""
Token issuance: attach an absolute expiry and seal.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from gateway.config.settings import TTL_MAX, TTL_MIN
from gateway.domain.descriptor import ConnectionDescriptor, ConnectionKind
from gateway.domain.token import TokenCodec
from gateway.observability import Metric, MetricsSink


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: int
    kind: ConnectionKind


class TokenIssuer:
    def __init__(
        self,
        codec: TokenCodec,
        metrics: MetricsSink,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._codec = codec
        self._metrics = metrics
        self._clock = clock

    def issue(self, descriptor: ConnectionDescriptor, ttl: int) -> IssuedToken:
        """Seal ``descriptor`` with ``expires_at = now + ttl``."""
        if not TTL_MIN <= ttl <= TTL_MAX:
            raise ValueError(f"ttl out of range: {ttl}")
        expires_at = int(self._clock()) + ttl
        token = self._codec.seal(descriptor.with_expiry(expires_at))
        self._metrics.increment(Metric.TOKENS_ISSUED)
        return IssuedToken(token=token, expires_at=expires_at, kind=descriptor.kind)
