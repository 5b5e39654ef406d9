from __future__ import annotations

import pytest

from objstore.app.services import MultipartUploadService, StorageService
from objstore.common.config import Settings, get_settings
from tests.services.mock_storage import MockStorageClient

_ENV_KEYS = (
    "STORAGE_PROVIDER",
    "SECRET_BACKEND",
    "VAULT_ADDR",
    "VAULT_TOKEN",
    "VAULT_NAMESPACE",
    "VAULT_SECRET_PATH",
    "S3_ENDPOINT_URL",
    "S3_ACCESS_KEY_ID",
    "S3_SECRET_ACCESS_KEY",
    "S3_BUCKET",
    "S3_REGION",
    "S3_VERIFY_TLS",
    "S3_CA_BUNDLE",
    "STORAGE_PART_SIZE_BYTES",
    "ENABLE_METRICS",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Isolate every test from the caller's environment and any local .env."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        S3_ENDPOINT_URL="http://minio.local:9000",
        S3_ACCESS_KEY_ID="minio",
        S3_SECRET_ACCESS_KEY="minio-secret",
        S3_BUCKET="test-bucket",
        STORAGE_PRESIGN_EXPIRES_SECONDS=900,
        MULTIPART_SESSION_TTL_SECONDS=3600,
        ENABLE_METRICS=False,
    )


@pytest.fixture
def mock_storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def storage_service(mock_storage, settings) -> StorageService:
    return StorageService(mock_storage, settings=settings)


@pytest.fixture
def multipart_service(mock_storage, settings) -> MultipartUploadService:
    return MultipartUploadService(mock_storage, settings=settings)
