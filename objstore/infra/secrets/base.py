"""Secret store contract.

Credentials are read from an external store through one narrow call so the
storage layer never depends on how or where secrets are kept.
"""

from __future__ import annotations

from typing import Protocol


class SecretStoreError(RuntimeError):
    """Raised when the secret store cannot be reached or answers badly."""


class SecretNotFoundError(SecretStoreError):
    """Raised when no secret exists at the requested path."""

    def __init__(self, path: str):
        super().__init__(f"Secret not found: {path}")
        self.path = path


class SecretStore(Protocol):
    def fetch_secret(self, path: str) -> dict[str, str]:
        """Return the key/value pairs stored at ``path``.

        Raises:
            SecretNotFoundError: If nothing is stored at ``path``.
            SecretStoreError: If the store fails.
        """
        ...
