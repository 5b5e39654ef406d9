from unittest.mock import MagicMock

import pytest

from objstore.app.services import ConfigurationMissingError, CredentialProvider
from objstore.app.services.credentials import DEFAULT_BUCKET
from objstore.common.config import Settings
from objstore.infra.secrets import EnvironmentSecretStore, SecretNotFoundError, SecretStoreError


def _store(secret):
    store = MagicMock()
    store.fetch_secret.return_value = secret
    return store


FULL_SECRET = {
    "url": "http://minio.local:9000",
    "username": "minio",
    "password": "minio-secret",
    "bucket": "media",
}


class TestCredentialProvider:
    def test_resolves_full_secret(self, settings):
        store = _store(dict(FULL_SECRET))

        config = CredentialProvider(store, settings=settings).resolve()

        store.fetch_secret.assert_called_once_with("secret/data/data/minio")
        assert config.endpoint_url == "http://minio.local:9000"
        assert config.access_key == "minio"
        assert config.secret_key == "minio-secret"
        assert config.bucket == "media"
        assert config.region == "us-east-1"
        assert config.path_style is True
        assert config.verify_tls is True

    def test_bucket_defaults(self, settings):
        secret = {k: v for k, v in FULL_SECRET.items() if k != "bucket"}

        config = CredentialProvider(_store(secret), settings=settings).resolve()

        assert config.bucket == DEFAULT_BUCKET

    @pytest.mark.parametrize("field", ["url", "username", "password"])
    def test_missing_required_field(self, settings, field):
        secret = {k: v for k, v in FULL_SECRET.items() if k != field}

        with pytest.raises(ConfigurationMissingError) as excinfo:
            CredentialProvider(_store(secret), settings=settings).resolve()

        assert excinfo.value.field == field

    def test_missing_secret(self, settings):
        store = MagicMock()
        store.fetch_secret.side_effect = SecretNotFoundError("secret/data/data/minio")

        with pytest.raises(ConfigurationMissingError, match="No storage credentials"):
            CredentialProvider(store, settings=settings).resolve()

    def test_store_failure_propagates(self, settings):
        store = MagicMock()
        store.fetch_secret.side_effect = SecretStoreError("vault down")

        with pytest.raises(SecretStoreError):
            CredentialProvider(store, settings=settings).resolve()

    def test_secret_tls_overrides(self, settings):
        secret = dict(FULL_SECRET, verify="false", region="eu-central-1")

        config = CredentialProvider(_store(secret), settings=settings).resolve()

        assert config.verify_tls is False
        assert config.region == "eu-central-1"

    def test_ca_bundle_wins(self, settings):
        secret = dict(FULL_SECRET, verify="false", ca_bundle="/etc/ssl/minio.pem")

        config = CredentialProvider(_store(secret), settings=settings).resolve()

        assert config.verify_tls == "/etc/ssl/minio.pem"

    def test_transport_settings_applied(self):
        settings = Settings(
            S3_ADDRESSING_STYLE="virtual",
            S3_CONNECT_TIMEOUT=1.5,
            S3_READ_TIMEOUT=10,
            S3_MAX_ATTEMPTS=4,
            VAULT_SECRET_PATH="kv/storage",
        )
        store = _store(dict(FULL_SECRET))

        config = CredentialProvider(store, settings=settings).resolve()

        store.fetch_secret.assert_called_once_with("kv/storage")
        assert config.path_style is False
        assert config.connect_timeout == 1.5
        assert config.read_timeout == 10
        assert config.max_attempts == 4


def test_environment_store_feeds_provider(settings):
    config = CredentialProvider(EnvironmentSecretStore(settings), settings=settings).resolve()

    assert config.endpoint_url == "http://minio.local:9000"
    assert config.bucket == "test-bucket"


def test_environment_store_without_endpoint():
    settings = Settings(S3_ACCESS_KEY_ID="ak", S3_SECRET_ACCESS_KEY="sk")

    with pytest.raises(ConfigurationMissingError) as excinfo:
        CredentialProvider(EnvironmentSecretStore(settings), settings=settings).resolve()

    assert excinfo.value.field == "url"
