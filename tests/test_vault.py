"""
Configuration lookup: Vault first, environment second, default last.
"""

from unittest.mock import MagicMock, patch

import pytest

from proposal_engine.utils.vault import VaultClient


@pytest.mark.unit
class TestVaultClient:

    def test_env_only_without_vault_addr(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_REVIEW_MODEL", "openai/gpt-5")
        client = VaultClient(addr="")
        assert client.get("OPENROUTER_REVIEW_MODEL") == "openai/gpt-5"

    def test_default_when_missing(self, monkeypatch):
        monkeypatch.delenv("PROPOSAL_TEST_MISSING", raising=False)
        client = VaultClient(addr="")
        assert client.get("PROPOSAL_TEST_MISSING", default="fallback") == "fallback"
        assert client.get("PROPOSAL_TEST_MISSING", default="") == ""

    def test_missing_without_default_raises(self, monkeypatch):
        monkeypatch.delenv("PROPOSAL_TEST_MISSING", raising=False)
        with pytest.raises(KeyError):
            VaultClient(addr="").get("PROPOSAL_TEST_MISSING")

    def test_empty_env_value_counts_as_unset(self, monkeypatch):
        monkeypatch.setenv("PROPOSAL_TEST_EMPTY", "")
        assert VaultClient(addr="").get("PROPOSAL_TEST_EMPTY", default="d") == "d"

    def test_vault_value_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("VAULT_TOKEN", "s.test")
        monkeypatch.setenv("OPENROUTER_API_KEY", "from-env")

        hvac_client = MagicMock()
        hvac_client.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"openrouter_api_key": "from-vault"}}
        }

        with patch("proposal_engine.utils.vault.hvac.Client", return_value=hvac_client):
            client = VaultClient(addr="https://vault.test", env="staging")
            assert client.get("OPENROUTER_API_KEY") == "from-vault"

        hvac_client.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="proposal-engine/staging", mount_point="secret"
        )

    def test_vault_failure_falls_back_to_env(self, monkeypatch):
        monkeypatch.setenv("VAULT_TOKEN", "s.test")
        monkeypatch.setenv("OPENROUTER_API_KEY", "from-env")

        hvac_client = MagicMock()
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = ConnectionError("down")

        with patch("proposal_engine.utils.vault.hvac.Client", return_value=hvac_client):
            client = VaultClient(addr="https://vault.test")
            assert client.get("OPENROUTER_API_KEY") == "from-env"

    def test_no_credentials_skips_vault(self, monkeypatch):
        for name in ("VAULT_TOKEN", "VAULT_ROLE_ID", "VAULT_SECRET_ID"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("OPENROUTER_API_KEY", "from-env")

        with patch("proposal_engine.utils.vault.hvac.Client") as hvac_cls:
            client = VaultClient(addr="https://vault.test")
            assert client.get("OPENROUTER_API_KEY") == "from-env"
        hvac_cls.assert_not_called()
