import logging

from objstore.app.services import CredentialProvider, ServiceBundle, StorageService
from objstore.common.config import Settings, get_settings
from objstore.common.logging import setup_logging
from objstore.infra.secrets import EnvironmentSecretStore, SecretStore, VaultSecretStore
from objstore.infra.storage import StorageClient, build_storage_client


def build_secret_store(settings: Settings) -> SecretStore:
    if settings.SECRET_BACKEND == "vault":
        return VaultSecretStore(
            addr=settings.VAULT_ADDR or "",
            token=settings.VAULT_TOKEN or "",
            namespace=settings.VAULT_NAMESPACE,
            timeout=settings.VAULT_TIMEOUT_SECONDS,
        )
    return EnvironmentSecretStore(settings)


def create_client(
    settings: Settings | None = None,
    *,
    secret_store: SecretStore | None = None,
    configure_logging: bool = True,
) -> StorageClient:
    """Resolve credentials and build the storage client for this process."""
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    startup_logger = logging.getLogger("objstore.startup")

    store = secret_store or build_secret_store(settings)
    config = CredentialProvider(store, settings=settings).resolve()
    client = build_storage_client(
        settings.STORAGE_PROVIDER, config, metrics_enabled=settings.ENABLE_METRICS
    )
    startup_logger.info(
        "Storage client ready. [event=storage_client_ready] "
        "(provider=%s, endpoint=%s, bucket=%s, region=%s, path_style=%s, secret_backend=%s)",
        settings.STORAGE_PROVIDER,
        config.endpoint_url,
        config.bucket,
        config.region,
        config.path_style,
        settings.SECRET_BACKEND,
    )
    return client


def create_service_bundle(
    settings: Settings | None = None,
    *,
    secret_store: SecretStore | None = None,
    configure_logging: bool = True,
) -> ServiceBundle:
    settings = settings or get_settings()
    client = create_client(
        settings, secret_store=secret_store, configure_logging=configure_logging
    )
    return ServiceBundle(client=client, settings=settings)


def create_storage_service(
    settings: Settings | None = None,
    *,
    secret_store: SecretStore | None = None,
    configure_logging: bool = True,
) -> StorageService:
    return create_service_bundle(
        settings, secret_store=secret_store, configure_logging=configure_logging
    ).storage()
