"""Storage backend registry.

Maps provider names (``minio``, ``s3``) to client factories. The registry is
consulted once at process startup; callers hold on to the built client.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from objstore.infra.storage.client import (
    BackendNotRegisteredError,
    ConnectionConfig,
    StorageClient,
)

ClientFactory = Callable[..., StorageClient]
F = TypeVar("F", bound=ClientFactory)

_BACKENDS: dict[str, ClientFactory] = {}


def register_backend(*names: str) -> Callable[[F], F]:
    """Register a client factory under one or more provider names.

    Usage::

        @register_backend("s3", "minio")
        class S3StorageClient:
            ...
    """

    def decorator(factory: F) -> F:
        for name in names:
            _BACKENDS[name.strip().lower()] = factory
        return factory

    return decorator


def supports(name: str) -> bool:
    return (name or "").strip().lower() in _BACKENDS


def list_backends() -> list[str]:
    return sorted(_BACKENDS)


def get_backend(name: str) -> ClientFactory:
    """Return the factory registered for ``name``.

    Raises:
        BackendNotRegisteredError: If the provider is unknown.
    """
    key = (name or "").strip().lower()
    try:
        return _BACKENDS[key]
    except KeyError:
        available = ", ".join(list_backends()) or "<none>"
        raise BackendNotRegisteredError(
            f"Unknown storage provider: {name!r}. Available: {available}"
        ) from None


def build_storage_client(
    name: str, config: ConnectionConfig, *, metrics_enabled: bool = True
) -> StorageClient:
    factory = get_backend(name)
    return factory(config=config, metrics_enabled=metrics_enabled)


def unregister_backend(name: str) -> None:
    """Remove a provider; used by tests that register throwaway backends."""
    _BACKENDS.pop(name.strip().lower(), None)
