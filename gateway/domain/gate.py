"""
Upgrade authorization gate.

Runs synchronously on every tunnel upgrade request, before any tunnel byte
is exchanged:

    RECEIVED -> TOKEN_EXTRACTED -> UNSEALED -> EXPIRY_CHECKED -> AUTHORIZED
                      \\               \\              \\
                       +------------------+---------------+--> REJECTED
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from gateway.domain.descriptor import ConnectionDescriptor
from gateway.domain.errors import AuthError, AuthFailure, ExpiryError, TokenError
from gateway.domain.token import TokenCodec
from gateway.observability import Metric, MetricsSink

logger = logging.getLogger("token-gateway")


class GateState(str, enum.Enum):
    RECEIVED = "received"
    TOKEN_EXTRACTED = "token-extracted"
    UNSEALED = "unsealed"
    EXPIRY_CHECKED = "expiry-checked"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Authorization:
    descriptor: ConnectionDescriptor
    checked_at: int

    @property
    def connection_string(self) -> str:
        return self.descriptor.connection_string


class UpgradeGate:
    """Validates upgrade tokens and counts the outcome."""

    def __init__(
        self,
        codec: TokenCodec,
        metrics: MetricsSink,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._codec = codec
        self._metrics = metrics
        self._clock = clock

    def authorize(self, token: str | None) -> Authorization:
        """
        Run one upgrade attempt through the gate.

        Args:
            token: Token from the upgrade request's query string

        Returns:
            Authorization carrying the unsealed descriptor

        Raises:
            AuthError: Token or expiry missing (counted as validation failure)
            TokenError: Token could not be unsealed (counted as validation failure)
            ExpiryError: Token expired (counted as expiry rejection)
        """
        state = GateState.RECEIVED
        try:
            if not token:
                raise AuthError(AuthFailure.MISSING_TOKEN)
            state = GateState.TOKEN_EXTRACTED

            descriptor = self._codec.unseal(token)
            state = GateState.UNSEALED

            if descriptor.expires_at is None:
                raise AuthError(AuthFailure.MISSING_EXPIRY)
            now = int(self._clock())
            if now > descriptor.expires_at:
                raise ExpiryError(descriptor.expires_at, now)
            state = GateState.EXPIRY_CHECKED
        except ExpiryError as e:
            self._metrics.increment(Metric.TOKEN_EXPIRED)
            logger.info(f"Upgrade rejected: {e}", extra={"state": GateState.REJECTED.value})
            raise
        except (AuthError, TokenError) as e:
            self._metrics.increment(Metric.TOKEN_VALIDATION_FAILED)
            logger.info(
                f"Upgrade rejected after {state.value}: {e}",
                extra={"state": GateState.REJECTED.value},
            )
            raise

        logger.debug(f"Upgrade {GateState.AUTHORIZED.value} for {descriptor.kind.value} connection")
        return Authorization(descriptor=descriptor, checked_at=now)
