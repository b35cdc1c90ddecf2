"""
Token Gateway for Guacamole tunnels.

This service issues short-lived, encrypted tokens that let a browser open a
Guacamole WebSocket tunnel to a remote session:
- Connection descriptors for SSH, RDP and Kubernetes exec targets
- Preset connections loaded once from a JSON/YAML file
- AES-256-CBC sealed tokens with an absolute expiry
- Token validation on every WebSocket upgrade, before any tunnel byte flows
- Relay of authorized tunnels to guacd
- Prometheus metrics and structured JSON logging
- Secret management via Vault (OpenBao/HashiCorp) or environment variables
"""

__version__ = "1.0.0"
