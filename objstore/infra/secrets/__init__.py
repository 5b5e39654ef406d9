from .base import SecretNotFoundError, SecretStore, SecretStoreError
from .environment import EnvironmentSecretStore
from .vault import VaultSecretStore

__all__ = [
    "EnvironmentSecretStore",
    "SecretNotFoundError",
    "SecretStore",
    "SecretStoreError",
    "VaultSecretStore",
]
