"""
Base protocol for tunnel brokers.
"""

from typing import Any, Protocol

from gateway.domain.descriptor import ConnectionDescriptor


class TunnelBroker(Protocol):
    """Takes over an authorized upgrade request and owns the live session."""

    def open_tunnel(self, descriptor: ConnectionDescriptor, environ: dict[str, Any]) -> Any:
        """
        Accept the WebSocket upgrade and stream the session until it closes.

        Args:
            descriptor: Descriptor unsealed by the upgrade gate
            environ: WSGI environ of the upgrade request

        Returns:
            A WSGI response object to hand back to the server
        """
        ...
