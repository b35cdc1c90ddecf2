"""
Tests for gateway.config.secrets (Vault / environment secrets provider).
"""

from unittest.mock import MagicMock

import pytest
import requests

from gateway.config.secrets import SecretsProvider

VAULT_ENV = {"VAULT_ADDR": "http://vault:8200", "VAULT_TOKEN": "root-token"}


def _response(payload=None):
    resp = MagicMock()
    resp.json.return_value = payload or {}
    resp.raise_for_status.return_value = None
    return resp


class TestEnvironmentOnly:

    def test_env_lookup(self):
        provider = SecretsProvider(environ={"TOKEN_SECRET": "from-env"})
        assert provider.get("token_secret") == "from-env"
        assert provider.get("api-key", "fallback") == "fallback"
        assert provider.use_vault is False

    def test_status_without_vault(self):
        assert SecretsProvider(environ={}).get_status() == {
            "vault_configured": False, "vault_connected": False, "auth_method": None,
        }


class TestVault:

    @pytest.fixture
    def vault_get(self, mocker):
        return mocker.patch("gateway.config.secrets.requests.get")

    def test_vault_wins_over_env(self, vault_get):
        vault_get.side_effect = [
            _response(),
            _response({"data": {"data": {"token_secret": "from-vault"}}}),
        ]
        provider = SecretsProvider(environ={**VAULT_ENV, "TOKEN_SECRET": "from-env"})

        assert provider.use_vault is True
        assert provider.get("token_secret") == "from-vault"
        assert vault_get.call_args.args[0] == "http://vault:8200/v1/secret/data/guacamole/token-gateway"

    def test_vault_values_cached(self, vault_get):
        vault_get.side_effect = [
            _response(),
            _response({"data": {"data": {"token_secret": "a", "api_key": "b"}}}),
        ]
        provider = SecretsProvider(environ=dict(VAULT_ENV))
        assert provider.get("token_secret") == "a"
        assert provider.get("api_key") == "b"
        assert vault_get.call_count == 2

    def test_missing_key_falls_back_to_env(self, vault_get):
        vault_get.side_effect = [_response(), _response({"data": {"data": {}}})]
        provider = SecretsProvider(environ={**VAULT_ENV, "API_KEY": "env-key"})
        assert provider.get("api_key") == "env-key"

    def test_unreachable_vault_uses_env(self, vault_get):
        vault_get.side_effect = requests.ConnectionError("down")
        provider = SecretsProvider(environ={**VAULT_ENV, "API_KEY": "env-key"})

        assert provider.use_vault is False
        assert provider.get("api_key") == "env-key"
        assert provider.get_status()["vault_connected"] is False

    def test_approle_login(self, vault_get, mocker):
        post = mocker.patch(
            "gateway.config.secrets.requests.post",
            return_value=_response({"auth": {"client_token": "t-1", "lease_duration": 3600}}),
        )
        vault_get.return_value = _response()
        provider = SecretsProvider(environ={
            "VAULT_ADDR": "http://vault:8200", "VAULT_ROLE_ID": "role", "VAULT_SECRET_ID": "sid",
        })

        assert provider.vault_token == "t-1"
        assert provider.get_status()["auth_method"] == "approle"
        assert post.call_args.kwargs["json"] == {"role_id": "role", "secret_id": "sid"}
