from __future__ import annotations

import logging

from objstore.common.config import Settings, get_settings
from objstore.infra.storage.client import StorageClient

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class ConfigurationMissingError(ServiceError):
    """Raised when a required connection setting cannot be resolved."""

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"{field} not found in secret store")
        self.field = field


class ObjectMissingError(ServiceError):
    """Raised when an operation needs an object's content and there is none."""

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class BaseService:
    """Holds the storage client and settings shared by application services.

    The client reference is swapped wholesale on reconfiguration; calls that
    already hold the previous client finish against it.
    """

    def __init__(self, client: StorageClient, *, settings: Settings | None = None):
        self._client = client
        self._settings = settings or get_settings()

    @property
    def client(self) -> StorageClient:
        return self._client

    @property
    def settings(self) -> Settings:
        return self._settings

    def use_client(self, client: StorageClient) -> None:
        self._client = client

    def reconfigure(self, **changes: object) -> StorageClient:
        """Rebuild the client with ``changes`` applied and switch to it."""
        client = self._client.reconfigure(**changes)
        self.use_client(client)
        logger.info("%s switched to rebuilt client", type(self).__name__)
        return client

    def _expires_in(self, expires_in: int | None) -> int:
        if expires_in is None:
            return int(self._settings.STORAGE_PRESIGN_EXPIRES_SECONDS)
        if expires_in <= 0:
            raise ValueError("expires_in must be positive")
        return int(expires_in)
