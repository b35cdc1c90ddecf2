"""Tunnel brokers: hand an authorized upgrade over to guacd."""

from gateway.tunnel.base import TunnelBroker
from gateway.tunnel.guacd import GuacdError, GuacdTunnelBroker, guacd_parameters
from gateway.tunnel.protocol import ProtocolError, encode_instruction, parse_instructions

__all__ = [
    "TunnelBroker",
    "GuacdError",
    "GuacdTunnelBroker",
    "guacd_parameters",
    "ProtocolError",
    "encode_instruction",
    "parse_instructions",
]
