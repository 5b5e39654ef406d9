"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends,
enabling support for S3, MinIO, and other S3-compatible services.
"""

from .client import (
    BackendError,
    BackendNotRegisteredError,
    CompletedPart,
    ConnectionConfig,
    MultipartUpload,
    ObjectEntry,
    ObjectHead,
    ObjectListing,
    ObjectNotFoundError,
    StorageClient,
    StorageConfigurationError,
    StorageError,
    StorageTimeoutError,
    StoredObject,
    VersionEntry,
)
from .registry import build_storage_client, get_backend, register_backend, supports
from .s3_client import S3StorageClient

__all__ = [
    "BackendError",
    "BackendNotRegisteredError",
    "CompletedPart",
    "ConnectionConfig",
    "MultipartUpload",
    "ObjectEntry",
    "ObjectHead",
    "ObjectListing",
    "ObjectNotFoundError",
    "S3StorageClient",
    "StorageClient",
    "StorageConfigurationError",
    "StorageError",
    "StorageTimeoutError",
    "StoredObject",
    "VersionEntry",
    "build_storage_client",
    "get_backend",
    "register_backend",
    "supports",
]
