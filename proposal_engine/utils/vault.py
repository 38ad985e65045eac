"""
Configuration lookup for the review engine.

Values come from a HashiCorp Vault KV v2 secret at
``secret/proposal-engine/<PROPOSAL_ENGINE_ENV>`` when ``VAULT_ADDR`` and
credentials (AppRole or token) are configured, and from the process
environment otherwise. Vault values win over the environment.

    from proposal_engine.utils.vault import secrets
    model = secrets.get("OPENROUTER_REVIEW_MODEL", default="openai/gpt-5")
"""

import os
import logging
from typing import Any, Dict, Optional

import hvac

logger = logging.getLogger("ProposalEngine.config")

KV_MOUNT = "secret"
PATH_PREFIX = "proposal-engine"


class VaultClient:
    def __init__(
        self,
        addr: Optional[str] = None,
        env: Optional[str] = None,
        mount_point: str = KV_MOUNT,
    ):
        self.addr = (addr if addr is not None else os.getenv("VAULT_ADDR", "")).strip()
        self.env = env or os.getenv("PROPOSAL_ENGINE_ENV", "dev")
        self.mount_point = mount_point

        self._client: Optional[hvac.Client] = None
        self._values: Optional[Dict[str, Any]] = None

    @property
    def path(self) -> str:
        return f"{PATH_PREFIX}/{self.env}"

    def _login(self) -> Optional[hvac.Client]:
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")
        token = os.getenv("VAULT_TOKEN")

        if not (token or (role_id and secret_id)):
            logger.warning("VAULT_ADDR is set but no Vault credentials are configured")
            return None

        client = hvac.Client(url=self.addr)
        if role_id and secret_id:
            client.auth.approle.login(role_id=role_id, secret_id=secret_id)
            logger.info(f"Vault login via AppRole ({self.env})")
        else:
            client.token = token
            logger.info(f"Vault login via token ({self.env})")
        return client

    def _read_all(self) -> Dict[str, Any]:
        if not self.addr:
            return {}

        try:
            if self._client is None:
                self._client = self._login()
            if self._client is None:
                return {}
            response = self._client.secrets.kv.v2.read_secret_version(
                path=self.path, mount_point=self.mount_point
            )
        except Exception as e:
            logger.warning(f"Vault unavailable, using environment only: {e}")
            return {}

        values = response["data"]["data"]
        logger.debug(f"Loaded {len(values)} values from Vault ({self.path})")
        return {k.upper(): v for k, v in values.items()}

    def get(self, key: str, default: Optional[str] = None) -> str:
        """
        Vault value, then environment variable (exact, upper or lower case),
        then ``default``. Empty strings count as unset.

        Raises KeyError when nothing is found and no default was given.
        """
        if self._values is None:
            self._values = self._read_all()

        value = self._values.get(key.upper())
        if value not in (None, ""):
            return value

        for name in (key, key.upper(), key.lower()):
            value = os.getenv(name)
            if value:
                return value

        if default is None:
            raise KeyError(f"Config value '{key}' not found in Vault or environment")
        return default

    def refresh(self) -> None:
        self._values = self._read_all()


secrets = VaultClient()
