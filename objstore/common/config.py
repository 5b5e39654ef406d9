from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

SECRET_BACKENDS: tuple[str, ...] = ("env", "vault")
ADDRESSING_STYLES: tuple[str, ...] = ("path", "virtual")
LOG_FORMATS: tuple[str, ...] = ("json", "plain")
# S3 rejects non-final parts smaller than 5 MiB
MIN_PART_SIZE_BYTES = 5 * 1024 * 1024


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    STORAGE_PROVIDER: str = "minio"
    SECRET_BACKEND: str = "env"
    VAULT_ADDR: str | None = None
    VAULT_TOKEN: str | None = None
    VAULT_NAMESPACE: str | None = None
    VAULT_SECRET_PATH: str = "secret/data/data/minio"
    VAULT_TIMEOUT_SECONDS: float = 5.0
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_BUCKET: str | None = None
    S3_ADDRESSING_STYLE: str = "path"
    S3_VERIFY_TLS: bool = True
    S3_CA_BUNDLE: str | None = None
    S3_SIGNATURE_VERSION: str = "s3v4"
    S3_CONNECT_TIMEOUT: float = 5.0
    S3_READ_TIMEOUT: float = 60.0
    S3_MAX_ATTEMPTS: int = 1
    STORAGE_PRESIGN_EXPIRES_SECONDS: int = 3600
    STORAGE_PART_SIZE_BYTES: int = 8 * 1024 * 1024
    MULTIPART_SESSION_TTL_SECONDS: int = 86400
    ENABLE_METRICS: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    def __post_init__(self) -> None:
        self.SECRET_BACKEND = self.SECRET_BACKEND.strip().lower()
        if self.SECRET_BACKEND not in SECRET_BACKENDS:
            raise ValueError(
                f"SECRET_BACKEND must be one of {', '.join(SECRET_BACKENDS)}."
            )
        self.S3_ADDRESSING_STYLE = self.S3_ADDRESSING_STYLE.strip().lower()
        if self.S3_ADDRESSING_STYLE not in ADDRESSING_STYLES:
            raise ValueError(
                f"S3_ADDRESSING_STYLE must be one of {', '.join(ADDRESSING_STYLES)}."
            )
        self.LOG_FORMAT = self.LOG_FORMAT.strip().lower()
        if self.LOG_FORMAT not in LOG_FORMATS:
            raise ValueError(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}.")
        if self.STORAGE_PART_SIZE_BYTES < MIN_PART_SIZE_BYTES:
            raise ValueError(
                f"STORAGE_PART_SIZE_BYTES must be at least {MIN_PART_SIZE_BYTES}."
            )
        for name in (
            "S3_CONNECT_TIMEOUT",
            "S3_READ_TIMEOUT",
            "VAULT_TIMEOUT_SECONDS",
            "STORAGE_PRESIGN_EXPIRES_SECONDS",
            "MULTIPART_SESSION_TTL_SECONDS",
            "S3_MAX_ATTEMPTS",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive.")

    @property
    def s3_verify(self) -> bool | str:
        """TLS verification policy as boto3 expects it: a CA bundle path wins."""
        return self.S3_CA_BUNDLE or self.S3_VERIFY_TLS

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        env = os.environ
        return cls(
            STORAGE_PROVIDER=env.get("STORAGE_PROVIDER", cls.STORAGE_PROVIDER),
            SECRET_BACKEND=env.get("SECRET_BACKEND", cls.SECRET_BACKEND),
            VAULT_ADDR=_as_optional(env.get("VAULT_ADDR")),
            VAULT_TOKEN=_as_optional(env.get("VAULT_TOKEN")),
            VAULT_NAMESPACE=_as_optional(env.get("VAULT_NAMESPACE")),
            VAULT_SECRET_PATH=env.get("VAULT_SECRET_PATH", cls.VAULT_SECRET_PATH),
            VAULT_TIMEOUT_SECONDS=float(
                env.get("VAULT_TIMEOUT_SECONDS", cls.VAULT_TIMEOUT_SECONDS)
            ),
            S3_ENDPOINT_URL=_as_optional(env.get("S3_ENDPOINT_URL")),
            S3_REGION=env.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=_as_optional(env.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(env.get("S3_SECRET_ACCESS_KEY")),
            S3_BUCKET=_as_optional(env.get("S3_BUCKET")),
            S3_ADDRESSING_STYLE=env.get("S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE),
            S3_VERIFY_TLS=_as_bool(env.get("S3_VERIFY_TLS"), cls.S3_VERIFY_TLS),
            S3_CA_BUNDLE=_as_optional(env.get("S3_CA_BUNDLE")),
            S3_SIGNATURE_VERSION=env.get(
                "S3_SIGNATURE_VERSION", cls.S3_SIGNATURE_VERSION
            ),
            S3_CONNECT_TIMEOUT=float(
                env.get("S3_CONNECT_TIMEOUT", cls.S3_CONNECT_TIMEOUT)
            ),
            S3_READ_TIMEOUT=float(env.get("S3_READ_TIMEOUT", cls.S3_READ_TIMEOUT)),
            S3_MAX_ATTEMPTS=int(env.get("S3_MAX_ATTEMPTS", cls.S3_MAX_ATTEMPTS)),
            STORAGE_PRESIGN_EXPIRES_SECONDS=int(
                env.get(
                    "STORAGE_PRESIGN_EXPIRES_SECONDS",
                    cls.STORAGE_PRESIGN_EXPIRES_SECONDS,
                )
            ),
            STORAGE_PART_SIZE_BYTES=int(
                env.get("STORAGE_PART_SIZE_BYTES", cls.STORAGE_PART_SIZE_BYTES)
            ),
            MULTIPART_SESSION_TTL_SECONDS=int(
                env.get(
                    "MULTIPART_SESSION_TTL_SECONDS", cls.MULTIPART_SESSION_TTL_SECONDS
                )
            ),
            ENABLE_METRICS=_as_bool(env.get("ENABLE_METRICS"), cls.ENABLE_METRICS),
            LOG_LEVEL=env.get("LOG_LEVEL", cls.LOG_LEVEL).upper(),
            LOG_FORMAT=env.get("LOG_FORMAT", cls.LOG_FORMAT),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
