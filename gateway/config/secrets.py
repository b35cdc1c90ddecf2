"""
Secrets provider: Vault (OpenBao/HashiCorp KV v2) first, environment second.

The token secret and API key are the two values that matter here; both can
live in Vault so they never appear in the container environment.
"""

from __future__ import annotations

import logging
import os
import threading
import time

import requests

logger = logging.getLogger("token-gateway")

VAULT_TIMEOUT = 5
# Re-login this many seconds before the AppRole lease runs out
LEASE_MARGIN = 60


class SecretsProvider:
    """
    Resolve configuration keys from Vault or the environment.

    Priority: Vault > Environment Variables > default.

    Vault authentication uses AppRole when ``VAULT_ROLE_ID`` and
    ``VAULT_SECRET_ID`` are set, otherwise a static ``VAULT_TOKEN``.
    """

    def __init__(self, environ: dict[str, str] | None = None) -> None:
        env = os.environ if environ is None else environ
        self._environ = env
        self.vault_addr = env.get("VAULT_ADDR")
        self.vault_token = env.get("VAULT_TOKEN")
        self.vault_role_id = env.get("VAULT_ROLE_ID")
        self.vault_secret_id = env.get("VAULT_SECRET_ID")
        self.vault_mount = env.get("VAULT_MOUNT", "secret")
        self.vault_path = env.get("VAULT_PATH", "guacamole/token-gateway")
        self.use_vault = False
        self._lease_expires: float = 0
        self._cache: dict[str, str] = {}
        self._cache_ttl = 300
        self._cache_time: float = 0
        self._lock = threading.Lock()

        if self.vault_addr:
            self._connect()

    @property
    def _uses_approle(self) -> bool:
        return bool(self.vault_role_id and self.vault_secret_id)

    def _login_approle(self) -> None:
        resp = requests.post(
            f"{self.vault_addr}/v1/auth/approle/login",
            json={"role_id": self.vault_role_id, "secret_id": self.vault_secret_id},
            timeout=VAULT_TIMEOUT,
        )
        resp.raise_for_status()
        auth = resp.json()["auth"]
        self.vault_token = auth["client_token"]
        self._lease_expires = time.time() + auth["lease_duration"] - LEASE_MARGIN
        logger.info("Vault: AppRole authentication successful")

    def _connect(self) -> None:
        """Authenticate and verify the token; fall back to env on any failure."""
        try:
            if self._uses_approle:
                self._login_approle()
            if self.vault_token:
                resp = requests.get(
                    f"{self.vault_addr}/v1/auth/token/lookup-self",
                    headers={"X-Vault-Token": self.vault_token},
                    timeout=VAULT_TIMEOUT,
                )
                resp.raise_for_status()
                self.use_vault = True
                logger.info(f"Vault connected: {self.vault_addr}")
        except requests.RequestException as e:
            logger.warning(f"Vault unavailable ({e}), using environment variables")
            self.use_vault = False

    def _read_vault(self, key: str) -> str | None:
        """Read one key from the KV v2 secret, refreshing the cache when stale."""
        if not self.use_vault:
            return None

        with self._lock:
            if self._uses_approle and time.time() > self._lease_expires:
                self._connect()

            if time.time() - self._cache_time < self._cache_ttl and key in self._cache:
                return self._cache[key]

            try:
                resp = requests.get(
                    f"{self.vault_addr}/v1/{self.vault_mount}/data/{self.vault_path}",
                    headers={"X-Vault-Token": self.vault_token},
                    timeout=VAULT_TIMEOUT,
                )
                resp.raise_for_status()
                self._cache = resp.json().get("data", {}).get("data", {})
                self._cache_time = time.time()
                return self._cache.get(key)
            except requests.RequestException as e:
                logger.error(f"Error reading from Vault for key '{key}': {e}")
                return None

    def get(self, key: str, default: str | None = None) -> str | None:
        """
        Resolve a key: Vault > env > default.

        Args:
            key: Key name, e.g. ``token_secret`` (env ``TOKEN_SECRET``)
            default: Value returned when neither source has the key
        """
        if self.use_vault:
            value = self._read_vault(key)
            if value:
                return value

        env_key = key.upper().replace("-", "_")
        return self._environ.get(env_key, default)

    def get_status(self) -> dict:
        """Describe which backend is in use (no secret values)."""
        return {
            "vault_configured": bool(self.vault_addr),
            "vault_connected": self.use_vault,
            "auth_method": "approle" if self._uses_approle else "token" if self.vault_token else None,
        }


# Global instance
secrets_provider = SecretsProvider()
