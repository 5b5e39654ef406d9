from unittest.mock import MagicMock, patch

import pytest

from objstore.infra.storage import registry
from objstore.infra.storage.client import BackendNotRegisteredError, ConnectionConfig
from objstore.infra.storage.s3_client import S3StorageClient


@pytest.fixture
def config():
    return ConnectionConfig(
        endpoint_url="http://minio.local:9000",
        access_key="ak",
        secret_key="sk",
        bucket="b",
    )


def test_s3_client_registered_for_minio_and_s3():
    assert registry.supports("minio")
    assert registry.supports("S3")
    assert registry.get_backend("minio") is S3StorageClient
    assert {"minio", "s3"} <= set(registry.list_backends())


def test_unknown_provider_lists_available():
    assert not registry.supports("gcs")
    with pytest.raises(BackendNotRegisteredError, match="Unknown storage provider: 'gcs'.*minio"):
        registry.get_backend("gcs")


def test_build_storage_client_passes_config(config):
    with patch.object(S3StorageClient, "_build_client", return_value=MagicMock()):
        client = registry.build_storage_client("minio", config, metrics_enabled=False)

    assert isinstance(client, S3StorageClient)
    assert client.config is config


def test_register_custom_backend(config):
    built = []

    @registry.register_backend("memory")
    def memory_backend(*, config, metrics_enabled=True):
        built.append((config, metrics_enabled))
        return MagicMock(bucket=config.bucket)

    try:
        client = registry.build_storage_client("memory", config)
        assert client.bucket == "b"
        assert built == [(config, True)]
    finally:
        registry.unregister_backend("memory")

    assert not registry.supports("memory")
