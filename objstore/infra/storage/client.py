"""Storage client protocol and data types.

This module defines the abstract interface for object storage operations
against a single endpoint/bucket pair: object reads and writes, listing,
tagging, access control, versioning, multipart uploads and presigned URLs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterator, Protocol, Sequence, Union

# Maximum part number allowed by S3
MAX_PART_NUMBER = 10000

VerifyMode = Union[bool, str]


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class StorageConfigurationError(StorageError):
    """Raised when a connection configuration is incomplete."""


class BackendNotRegisteredError(StorageError):
    """Raised when no client factory is registered for a provider name."""


class BackendError(StorageError):
    """Raised when the backend rejects or fails a call.

    Attributes:
        operation: Name of the client operation that failed.
        message: Human-readable failure description.
        code: Backend error code, when the backend supplied one.
    """

    def __init__(self, operation: str, message: str, *, code: str | None = None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message
        self.code = code


class ObjectNotFoundError(BackendError):
    """Raised when the key or version does not exist in the bucket."""


class StorageTimeoutError(BackendError):
    """Raised when a call exceeds the connect or read timeout."""


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Immutable connection settings for one endpoint/bucket pair.

    A client never mutates its configuration; use ``with_changes`` and build
    a new client instead.
    """

    endpoint_url: str
    access_key: str
    secret_key: str = field(repr=False)
    bucket: str
    region: str = "us-east-1"
    path_style: bool = True
    verify_tls: VerifyMode = True
    signature_version: str = "s3v4"
    connect_timeout: float = 5.0
    read_timeout: float = 60.0
    max_attempts: int = 1

    def validate(self) -> "ConnectionConfig":
        missing = [
            name
            for name in ("endpoint_url", "access_key", "secret_key", "bucket")
            if not str(getattr(self, name) or "").strip()
        ]
        if missing:
            raise StorageConfigurationError(
                f"Connection configuration is missing: {', '.join(missing)}"
            )
        return self

    def with_changes(self, **changes: Any) -> "ConnectionConfig":
        return replace(self, **changes).validate()


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str
    initiated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None
    last_modified: datetime | None = None
    version_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Object body together with its HEAD metadata."""

    head: ObjectHead
    body: bytes


@dataclass(frozen=True, slots=True)
class ObjectEntry:
    """One object returned by a listing."""

    key: str
    size_bytes: int
    last_modified: datetime | None = None
    etag: str | None = None


@dataclass(frozen=True, slots=True)
class ObjectListing:
    """Listing result: objects plus common prefixes for shallow listings."""

    entries: list[ObjectEntry]
    prefixes: list[str]


@dataclass(frozen=True, slots=True)
class VersionEntry:
    """One version of an object as reported by the backend."""

    key: str
    version_id: str
    last_modified: datetime | None
    size_bytes: int
    is_latest: bool
    etag: str | None = None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Every call either returns a typed result or raises ``BackendError``
    (``ObjectNotFoundError`` for absent keys, ``StorageTimeoutError`` for
    timeouts). Implementations do not retry.
    """

    @property
    def config(self) -> ConnectionConfig:
        ...

    @property
    def bucket(self) -> str:
        ...

    def reconfigure(self, **changes: Any) -> "StorageClient":
        """Return a new client built from ``config.with_changes(**changes)``."""
        ...

    def put_object(
        self,
        *,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> ObjectHead:
        """Store an object, replacing any object at the same key.

        Args:
            object_key: Object key (path) in the bucket.
            body: Object content.
            content_type: MIME type of the object.
            metadata: Custom metadata to attach to the object.

        Returns:
            ObjectHead with the new ETag and version id (if versioned).

        Raises:
            BackendError: If the operation fails.
        """
        ...

    def get_object(
        self, *, object_key: str, version_id: str | None = None
    ) -> StoredObject:
        """Download an object.

        Raises:
            ObjectNotFoundError: If the object or version does not exist.
            BackendError: If the operation fails.
        """
        ...

    def iter_object(
        self, *, object_key: str, chunk_size: int = 65536
    ) -> Iterator[bytes]:
        """Stream an object body in chunks.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            BackendError: If the operation fails.
        """
        ...

    def head_object(
        self, *, object_key: str, version_id: str | None = None
    ) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            ObjectNotFoundError: If the object doesn't exist.
            BackendError: If the operation fails.
        """
        ...

    def delete_object(self, *, object_key: str) -> None:
        """Delete an object from storage. Deleting an absent key succeeds."""
        ...

    def delete_objects(self, *, object_keys: Sequence[str]) -> list[str]:
        """Delete up to 1000 objects at once.

        Returns:
            Keys the backend reported as not deleted.
        """
        ...

    def list_objects(
        self, *, prefix: str = "", recursive: bool = False
    ) -> ObjectListing:
        """List objects under a prefix.

        A shallow listing (``recursive=False``) returns one directory level:
        objects directly under the prefix plus the common prefixes below it.
        """
        ...

    def copy_object(
        self,
        *,
        source_key: str,
        dest_key: str,
        source_version_id: str | None = None,
    ) -> str | None:
        """Server-side copy within the bucket, returning the new version id.

        Args:
            source_key: Key to copy from.
            dest_key: Key to copy to.
            source_version_id: Copy a specific version of the source.
        """
        ...

    def put_object_tagging(self, *, object_key: str, tags: dict[str, str]) -> None:
        """Replace the tag set of an object."""
        ...

    def get_object_tagging(self, *, object_key: str) -> dict[str, str]:
        """Return the tag set of an object."""
        ...

    def put_object_acl(self, *, object_key: str, public: bool) -> None:
        """Make an object publicly readable or private."""
        ...

    def get_object_acl(self, *, object_key: str) -> bool:
        """Return True if the object grants public read."""
        ...

    def list_object_versions(self, *, object_key: str) -> list[VersionEntry]:
        """List every version stored for exactly this key."""
        ...

    def put_bucket_versioning(self, *, enabled: bool) -> None:
        """Enable or suspend versioning on the bucket."""
        ...

    def put_bucket_notification(
        self,
        *,
        queue_arn: str,
        events: Sequence[str],
        prefix: str | None = None,
        suffix: str | None = None,
    ) -> None:
        """Route bucket change events to a queue."""
        ...

    def init_multipart_upload(
        self,
        *,
        object_key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.

        Raises:
            BackendError: If the operation fails.
        """
        ...

    def upload_part(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part of a multipart upload.

        Returns:
            CompletedPart with the ETag the backend assigned.
        """
        ...

    def complete_multipart_upload(
        self,
        *,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        ...

    def abort_multipart_upload(self, *, object_key: str, upload_id: str) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        ...

    def list_multipart_uploads(self, *, prefix: str = "") -> list[MultipartUpload]:
        """List uploads that were initiated but neither completed nor aborted."""
        ...

    def presign_upload_part(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for uploading a part."""
        ...

    def presign_download(
        self,
        *,
        object_key: str,
        expires_in: int,
        filename: str | None = None,
    ) -> str:
        """Generate a presigned URL for downloading an object.

        Args:
            object_key: Object key (path) in the bucket.
            expires_in: URL expiration time in seconds.
            filename: Optional filename for Content-Disposition header.
        """
        ...

    def presign_upload(
        self,
        *,
        object_key: str,
        expires_in: int,
        content_type: str | None = None,
    ) -> str:
        """Generate a presigned URL for a single PUT of an object."""
        ...
