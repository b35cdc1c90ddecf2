"""Domain layer: descriptors, token codec, presets and the upgrade gate."""

from gateway.domain.descriptor import (
    ConnectionKind,
    ConnectionDescriptor,
    ShellDescriptor,
    DesktopDescriptor,
    ContainerExecDescriptor,
    build,
)
from gateway.domain.errors import (
    GatewayError,
    ValidationError,
    PresetNotFoundError,
    AuthFailure,
    AuthError,
    TokenError,
    ExpiryError,
)
from gateway.domain.token import TokenCodec, TokenEnvelope
from gateway.domain.presets import PresetEntry, PresetRegistry
from gateway.domain.gate import Authorization, GateState, UpgradeGate
from gateway.domain.issuance import IssuedToken, TokenIssuer

__all__ = [
    "ConnectionKind",
    "ConnectionDescriptor",
    "ShellDescriptor",
    "DesktopDescriptor",
    "ContainerExecDescriptor",
    "build",
    "GatewayError",
    "ValidationError",
    "PresetNotFoundError",
    "AuthFailure",
    "AuthError",
    "TokenError",
    "ExpiryError",
    "TokenCodec",
    "TokenEnvelope",
    "PresetEntry",
    "PresetRegistry",
    "Authorization",
    "GateState",
    "UpgradeGate",
    "IssuedToken",
    "TokenIssuer",
]
