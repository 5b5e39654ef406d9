from __future__ import annotations

import logging
from dataclasses import dataclass, field

from objstore.common.config import Settings, get_settings
from objstore.domain.repositories import SessionRepository
from objstore.infra.storage.client import StorageClient

from .base import BaseService
from .multipart_service import MultipartUploadService
from .storage_service import StorageService

logger = logging.getLogger(__name__)


@dataclass
class ServiceBundle:
    """Lazily constructs application services sharing the same client."""

    client: StorageClient
    settings: Settings = field(default_factory=get_settings)
    sessions: SessionRepository = field(default_factory=SessionRepository)
    _storage: StorageService | None = field(default=None, init=False, repr=False)
    _multipart: MultipartUploadService | None = field(default=None, init=False, repr=False)

    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = StorageService(self.client, settings=self.settings)
        return self._storage

    def multipart(self) -> MultipartUploadService:
        if self._multipart is None:
            self._multipart = MultipartUploadService(
                self.client, repository=self.sessions, settings=self.settings
            )
        return self._multipart

    def _built(self) -> list[BaseService]:
        return [s for s in (self._storage, self._multipart) if s is not None]

    def reconfigure(self, **changes: object) -> StorageClient:
        """Rebuild the client with ``changes`` and hand it to every built service.

        Tracked multipart sessions are kept; they continue against the new
        client, which must point at the same bucket for them to complete.
        """
        client = self.client.reconfigure(**changes)
        self.client = client
        for service in self._built():
            service.use_client(client)
        logger.info("Service bundle switched to bucket=%s", client.bucket)
        return client


def get_service_bundle(client: StorageClient, settings: Settings | None = None) -> ServiceBundle:
    return ServiceBundle(client=client, settings=settings or get_settings())
