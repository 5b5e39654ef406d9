"""Credential resolution for the storage client.

Turns a secret-store entry into an immutable ``ConnectionConfig``. Secret
fields follow the layout used in Vault: ``url``, ``username``, ``password``,
``bucket`` and optionally ``region``, ``verify`` and ``ca_bundle``.
"""

from __future__ import annotations

import logging

from objstore.common.config import Settings, get_settings
from objstore.infra.secrets.base import SecretNotFoundError, SecretStore
from objstore.infra.storage.client import ConnectionConfig

from .base import ConfigurationMissingError

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "default-bucket"
REQUIRED_FIELDS: tuple[str, ...] = ("url", "username", "password")


def _as_verify(secret: dict[str, str], default: bool | str) -> bool | str:
    if secret.get("ca_bundle"):
        return secret["ca_bundle"]
    raw = secret.get("verify")
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "f", "no", "n", "off"}


class CredentialProvider:
    """Resolves connection settings from a secret store.

    No retry: callers decide whether a missing credential is fatal.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        *,
        path: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = secret_store
        self._settings = settings or get_settings()
        self._path = path or self._settings.VAULT_SECRET_PATH

    def resolve(self) -> ConnectionConfig:
        """Fetch the secret and build a validated connection configuration.

        Raises:
            ConfigurationMissingError: If the secret or a required field
                (endpoint, access key, secret key) is absent.
            SecretStoreError: If the secret store itself fails.
        """
        try:
            secret = self._store.fetch_secret(self._path)
        except SecretNotFoundError as exc:
            raise ConfigurationMissingError(
                "secret", f"No storage credentials stored at {self._path}"
            ) from exc

        for field in REQUIRED_FIELDS:
            if not (secret.get(field) or "").strip():
                raise ConfigurationMissingError(field)

        bucket = (secret.get("bucket") or "").strip() or DEFAULT_BUCKET
        settings = self._settings
        config = ConnectionConfig(
            endpoint_url=secret["url"].strip(),
            access_key=secret["username"].strip(),
            secret_key=secret["password"],
            bucket=bucket,
            region=(secret.get("region") or "").strip() or settings.S3_REGION,
            path_style=settings.S3_ADDRESSING_STYLE == "path",
            verify_tls=_as_verify(secret, settings.s3_verify),
            signature_version=settings.S3_SIGNATURE_VERSION,
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            max_attempts=settings.S3_MAX_ATTEMPTS,
        )
        logger.debug(
            "Resolved storage credentials: endpoint=%s bucket=%s", config.endpoint_url, bucket
        )
        return config.validate()
