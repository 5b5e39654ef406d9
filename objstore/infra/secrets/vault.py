"""HashiCorp Vault secret store over the HTTP API.

Dependencies:
    - requests
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from objstore.infra.secrets.base import SecretNotFoundError, SecretStoreError

logger = logging.getLogger(__name__)


class VaultSecretStore:
    """Reads key/value secrets from Vault.

    Supports both KV engines: v2 nests the values under ``data.data``, v1
    under ``data``.
    """

    def __init__(
        self,
        *,
        addr: str,
        token: str,
        namespace: str | None = None,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        if not addr:
            raise SecretStoreError("VAULT_ADDR is required for the vault secret backend")
        if not token:
            raise SecretStoreError("VAULT_TOKEN is required for the vault secret backend")
        self._addr = addr.rstrip("/")
        self._token = token
        self._namespace = namespace
        self._timeout = timeout
        self._http = session or requests

    def __repr__(self) -> str:
        return f"VaultSecretStore(addr={self._addr!r}, namespace={self._namespace!r})"

    def _headers(self) -> dict[str, str]:
        headers = {"X-Vault-Token": self._token}
        if self._namespace:
            headers["X-Vault-Namespace"] = self._namespace
        return headers

    def fetch_secret(self, path: str) -> dict[str, str]:
        url = f"{self._addr}/v1/{path.lstrip('/')}"
        try:
            resp = self._http.get(url, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as exc:
            logger.error("Vault request failed: path=%s error=%s", path, exc)
            raise SecretStoreError(f"Vault request failed for {path}: {exc}") from exc

        if resp.status_code == 404:
            raise SecretNotFoundError(path)
        if resp.status_code >= 400:
            logger.error("Vault returned HTTP %s for path=%s", resp.status_code, path)
            raise SecretStoreError(f"Vault returned HTTP {resp.status_code} for {path}")

        try:
            payload: Any = resp.json()
        except ValueError as exc:
            raise SecretStoreError(f"Vault returned invalid JSON for {path}") from exc

        data = (payload or {}).get("data")
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if not isinstance(data, dict):
            raise SecretNotFoundError(path)

        logger.debug("Fetched secret from Vault: path=%s keys=%s", path, sorted(data))
        return {str(k): str(v) for k, v in data.items() if v is not None}
