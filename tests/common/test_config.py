import os

import pytest

from objstore.common.config import MIN_PART_SIZE_BYTES, Settings, get_settings


def test_defaults():
    settings = Settings()

    assert settings.STORAGE_PROVIDER == "minio"
    assert settings.SECRET_BACKEND == "env"
    assert settings.VAULT_SECRET_PATH == "secret/data/data/minio"
    assert settings.S3_REGION == "us-east-1"
    assert settings.S3_ADDRESSING_STYLE == "path"
    assert settings.STORAGE_PRESIGN_EXPIRES_SECONDS == 3600
    assert settings.s3_verify is True


def test_from_environment(monkeypatch):
    monkeypatch.setenv("SECRET_BACKEND", "Vault")
    monkeypatch.setenv("VAULT_ADDR", "https://vault.local")
    monkeypatch.setenv("VAULT_TOKEN", "  ")
    monkeypatch.setenv("S3_VERIFY_TLS", "false")
    monkeypatch.setenv("STORAGE_PART_SIZE_BYTES", str(16 * 1024 * 1024))
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.SECRET_BACKEND == "vault"
    assert settings.VAULT_ADDR == "https://vault.local"
    assert settings.VAULT_TOKEN is None
    assert settings.S3_VERIFY_TLS is False
    assert settings.STORAGE_PART_SIZE_BYTES == 16 * 1024 * 1024
    assert settings.LOG_LEVEL == "DEBUG"


def test_env_file_is_loaded(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text(
        "# local overrides\nS3_BUCKET='from-file'\nS3_REGION=eu-west-1\n", encoding="utf-8"
    )
    monkeypatch.setenv("S3_REGION", "ap-south-1")

    settings = Settings.from_environment()

    assert settings.S3_BUCKET == "from-file"
    # process environment wins over the file
    assert settings.S3_REGION == "ap-south-1"
    os.environ.pop("S3_BUCKET", None)


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_ca_bundle_wins_over_verify_flag():
    settings = Settings(S3_VERIFY_TLS=False, S3_CA_BUNDLE="/etc/ssl/ca.pem")

    assert settings.s3_verify == "/etc/ssl/ca.pem"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"SECRET_BACKEND": "consul"}, "SECRET_BACKEND"),
        ({"S3_ADDRESSING_STYLE": "dns"}, "S3_ADDRESSING_STYLE"),
        ({"LOG_FORMAT": "xml"}, "LOG_FORMAT"),
        ({"STORAGE_PART_SIZE_BYTES": MIN_PART_SIZE_BYTES - 1}, "STORAGE_PART_SIZE_BYTES"),
        ({"S3_READ_TIMEOUT": 0}, "S3_READ_TIMEOUT"),
        ({"STORAGE_PRESIGN_EXPIRES_SECONDS": -1}, "STORAGE_PRESIGN_EXPIRES_SECONDS"),
        ({"S3_MAX_ATTEMPTS": 0}, "S3_MAX_ATTEMPTS"),
    ],
)
def test_invalid_values_rejected(overrides, message):
    with pytest.raises(ValueError, match=message):
        Settings(**overrides)
