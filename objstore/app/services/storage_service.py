"""Storage facade for object operations.

This module provides the application service layer on top of a single
``StorageClient``: object reads and writes, directory helpers, metadata,
tagging, visibility, checksums, encrypted and compressed payloads, presigned
URLs, versioning and bucket notifications.
"""

from __future__ import annotations

import logging
from typing import Iterator, Mapping, Sequence

from objstore.domain.models import ObjectMetadata, ObjectVersion, StorageUsage, Visibility
from objstore.infra.storage.client import BackendError, ObjectNotFoundError

from . import codecs
from .base import BaseService, ObjectMissingError, ServiceError

logger = logging.getLogger(__name__)

# Maximum number of keys S3 accepts in one DeleteObjects call
DELETE_BATCH_SIZE = 1000
DEFAULT_NOTIFICATION_EVENTS: tuple[str, ...] = (
    "s3:ObjectCreated:*",
    "s3:ObjectRemoved:*",
)
ENCRYPTION_METADATA_KEY = "encryption"
COMPRESSION_METADATA_KEY = "compression"


class PartialMoveError(ServiceError):
    """Raised when a move copied the object but could not delete the source.

    Both keys exist afterwards; the destination holds the moved content.
    """

    def __init__(self, source: str, destination: str, reason: str):
        super().__init__(
            f"Moved {source} to {destination} but the source could not be deleted: {reason}"
        )
        self.source = source
        self.destination = destination


def _directory_prefix(path: str) -> str:
    cleaned = (path or "").strip().lstrip("/")
    if cleaned and not cleaned.endswith("/"):
        cleaned += "/"
    return cleaned


def _stringify(values: Mapping[str, object]) -> dict[str, str]:
    return {str(k): str(v) for k, v in values.items()}


class StorageService(BaseService):
    """Application service for object storage operations.

    Read paths that look up a single object (``get``, ``metadata``,
    ``exists``, ``decrypt``, ``decompress``) report an absent key as ``None``
    or ``False``; operations that need existing content raise
    ``ObjectMissingError``. Every other backend failure propagates as
    ``BackendError``.
    """

    # ------------------------------------------------------------------
    # Object CRUD
    # ------------------------------------------------------------------

    def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, object] | None = None,
    ) -> str | None:
        """Store ``data`` under ``key``, replacing any existing object.

        Returns:
            The version id assigned by the backend, if versioning is on.
        """
        head = self._client.put_object(
            object_key=key,
            body=bytes(data),
            content_type=content_type,
            metadata=_stringify(metadata) if metadata else None,
        )
        logger.info("Uploaded object key=%s size=%d", key, len(data))
        return head.version_id

    def get(self, key: str, *, version_id: str | None = None) -> bytes | None:
        """Download an object.

        Returns:
            Object content, or None if the key (or version) does not exist.
        """
        try:
            return self._client.get_object(object_key=key, version_id=version_id).body
        except ObjectNotFoundError:
            logger.debug("Object not found: key=%s version=%s", key, version_id)
            return None

    def stream(self, key: str, *, chunk_size: int = 65536) -> Iterator[bytes]:
        """Yield the object content in chunks without buffering it whole.

        Raises:
            ObjectMissingError: If the key does not exist.
        """
        try:
            yield from self._client.iter_object(object_key=key, chunk_size=chunk_size)
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(object_key=key)
        except ObjectNotFoundError:
            return False
        return True

    def delete(self, key: str) -> None:
        """Delete an object. Deleting an absent key succeeds."""
        self._client.delete_object(object_key=key)
        logger.info("Deleted object key=%s", key)

    # ------------------------------------------------------------------
    # Listing and directories
    # ------------------------------------------------------------------

    def list_files(self, prefix: str = "") -> list[str]:
        """List object keys directly under ``prefix`` (one level, no directories)."""
        listing = self._client.list_objects(prefix=_directory_prefix(prefix), recursive=False)
        return [entry.key for entry in listing.entries if not entry.key.endswith("/")]

    def list_directories(self, prefix: str = "") -> list[str]:
        listing = self._client.list_objects(prefix=_directory_prefix(prefix), recursive=False)
        return list(listing.prefixes)

    def create_directory(self, path: str) -> str:
        """Create an empty ``path/`` marker object and return its key."""
        marker = _directory_prefix(path)
        if not marker:
            raise ValueError("directory path must not be empty")
        self._client.put_object(object_key=marker, body=b"")
        logger.info("Created directory marker key=%s", marker)
        return marker

    def delete_directory(self, path: str) -> int:
        """Delete every object under ``path/``, including the marker.

        Returns:
            Number of keys deleted.

        Raises:
            BackendError: If the backend refused to delete some keys.
        """
        prefix = _directory_prefix(path)
        if not prefix:
            raise ValueError("directory path must not be empty")
        keys = [e.key for e in self._client.list_objects(prefix=prefix, recursive=True).entries]
        failed: list[str] = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            failed.extend(
                self._client.delete_objects(object_keys=keys[start : start + DELETE_BATCH_SIZE])
            )
        if failed:
            raise BackendError(
                "delete_directory",
                f"{len(failed)} of {len(keys)} keys under {prefix} were not deleted",
            )
        logger.info("Deleted directory prefix=%s keys=%d", prefix, len(keys))
        return len(keys)

    # ------------------------------------------------------------------
    # Copy and move
    # ------------------------------------------------------------------

    def copy(self, source: str, destination: str) -> str | None:
        """Server-side copy. Returns the destination version id, if any.

        Raises:
            ObjectMissingError: If the source does not exist.
        """
        try:
            version_id = self._client.copy_object(source_key=source, dest_key=destination)
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(source) from exc
        logger.info("Copied object %s -> %s", source, destination)
        return version_id

    def move(self, source: str, destination: str) -> None:
        """Copy then delete the source.

        Not atomic. If the copy fails nothing changed; if the delete fails
        both keys exist and ``PartialMoveError`` is raised.
        """
        self.copy(source, destination)
        try:
            self._client.delete_object(object_key=source)
        except BackendError as exc:
            logger.error(
                "Move left source in place: %s -> %s (%s)", source, destination, exc.message
            )
            raise PartialMoveError(source, destination, exc.message) from exc
        logger.info("Moved object %s -> %s", source, destination)

    # ------------------------------------------------------------------
    # Metadata, tags and visibility
    # ------------------------------------------------------------------

    def metadata(self, key: str) -> ObjectMetadata | None:
        """Aggregate HEAD, ACL and tag reads for one object.

        Each read is attempted independently. A failed read leaves its fields
        unset and is recorded in ``ObjectMetadata.errors``.

        Returns:
            The aggregated metadata, or None if the object does not exist.
        """
        result = ObjectMetadata(key=key)
        try:
            head = self._client.head_object(object_key=key)
        except ObjectNotFoundError:
            return None
        except BackendError as exc:
            result.errors["head"] = exc.message
        else:
            result.mime_type = head.content_type
            result.size_bytes = head.size_bytes
            result.last_modified = head.last_modified
            result.etag = head.etag
            result.user_metadata = dict(head.metadata)

        try:
            public = self._client.get_object_acl(object_key=key)
        except BackendError as exc:
            result.errors["visibility"] = exc.message
        else:
            result.visibility = Visibility.PUBLIC if public else Visibility.PRIVATE

        try:
            result.tags = self._client.get_object_tagging(object_key=key)
        except BackendError as exc:
            result.errors["tags"] = exc.message

        if result.partial:
            logger.warning("Partial metadata for key=%s: %s", key, ", ".join(result.errors))
        return result

    def set_metadata(self, key: str, metadata: Mapping[str, object]) -> None:
        """Replace the custom metadata of an object.

        S3 metadata is immutable, so the object is downloaded and written
        back with the new metadata. Cost is proportional to object size. The
        content type and tag set are carried over, as is public visibility.

        Raises:
            ObjectMissingError: If the object does not exist.
        """
        try:
            stored = self._client.get_object(object_key=key)
            tags = self._client.get_object_tagging(object_key=key)
            public = self._client.get_object_acl(object_key=key)
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc
        self._client.put_object(
            object_key=key,
            body=stored.body,
            content_type=stored.head.content_type,
            metadata=_stringify(metadata),
        )
        if tags:
            self._client.put_object_tagging(object_key=key, tags=tags)
        if public:
            self._client.put_object_acl(object_key=key, public=True)
        logger.info("Rewrote object metadata key=%s size=%d", key, len(stored.body))

    def tag(self, key: str, tags: Mapping[str, object]) -> None:
        """Replace the tag set of an object."""
        try:
            self._client.put_object_tagging(object_key=key, tags=_stringify(tags))
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc

    def tags(self, key: str) -> dict[str, str]:
        try:
            return self._client.get_object_tagging(object_key=key)
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc

    def set_visibility(self, key: str, visibility: Visibility | str) -> None:
        level = Visibility.parse(visibility)
        try:
            self._client.put_object_acl(object_key=key, public=level is Visibility.PUBLIC)
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc
        logger.info("Set visibility key=%s visibility=%s", key, level.value)

    def visibility(self, key: str) -> Visibility:
        try:
            public = self._client.get_object_acl(object_key=key)
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc
        return Visibility.PUBLIC if public else Visibility.PRIVATE

    # ------------------------------------------------------------------
    # Checksums
    # ------------------------------------------------------------------

    def checksum(self, key: str, algorithm: str = "sha256") -> str:
        """Hash the stored content. Hex digest, computed while streaming.

        Raises:
            UnsupportedChecksumError: If the algorithm is unknown.
            ObjectMissingError: If the object does not exist.
        """
        digest = codecs.new_digest(algorithm)
        try:
            for chunk in self._client.iter_object(object_key=key):
                digest.update(chunk)
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc
        return codecs.hexdigest(digest)

    def verify_checksum(self, key: str, expected: str, algorithm: str = "sha256") -> bool:
        return codecs.checksums_match(self.checksum(key, algorithm), expected)

    # ------------------------------------------------------------------
    # Encrypted and compressed payloads
    # ------------------------------------------------------------------

    def encrypt_and_upload(
        self,
        key: str,
        data: bytes,
        key_material: bytes,
        *,
        content_type: str | None = None,
    ) -> str | None:
        blob = codecs.encrypt_payload(bytes(data), key_material)
        return self.upload(
            key,
            blob,
            content_type=content_type,
            metadata={ENCRYPTION_METADATA_KEY: "aes-gcm"},
        )

    def decrypt(self, key: str, key_material: bytes) -> bytes | None:
        """Download and decrypt an object written by ``encrypt_and_upload``.

        Returns:
            Plaintext, or None if the object does not exist.

        Raises:
            DecryptionError: On a wrong key or a modified payload.
        """
        blob = self.get(key)
        if blob is None:
            return None
        return codecs.decrypt_payload(blob, key_material)

    def compress_and_upload(
        self,
        key: str,
        data: bytes,
        algorithm: str = "gzip",
        *,
        content_type: str | None = None,
    ) -> str | None:
        compressed = codecs.compress_payload(bytes(data), algorithm)
        return self.upload(
            key,
            compressed,
            content_type=content_type,
            metadata={COMPRESSION_METADATA_KEY: algorithm.strip().lower()},
        )

    def decompress(self, key: str, algorithm: str = "gzip") -> bytes | None:
        codecs.get_codec(algorithm)
        payload = self.get(key)
        if payload is None:
            return None
        return codecs.decompress_payload(payload, algorithm)

    # ------------------------------------------------------------------
    # Presigned URLs
    # ------------------------------------------------------------------

    def presign_download(
        self,
        key: str,
        *,
        expires_in: int | None = None,
        filename: str | None = None,
    ) -> str:
        """Generate a time-limited GET URL.

        Args:
            key: Object key.
            expires_in: Lifetime in seconds; defaults to the configured expiry.
            filename: Suggested download name for Content-Disposition.
        """
        return self._client.presign_download(
            object_key=key, expires_in=self._expires_in(expires_in), filename=filename
        )

    def presign_upload(
        self,
        key: str,
        *,
        expires_in: int | None = None,
        content_type: str | None = None,
    ) -> str:
        return self._client.presign_upload(
            object_key=key,
            expires_in=self._expires_in(expires_in),
            content_type=content_type,
        )

    def generate_presigned_url(self, key: str, expires_in: int | None = None) -> str:
        return self.presign_download(key, expires_in=expires_in)

    # ------------------------------------------------------------------
    # Versioning
    # ------------------------------------------------------------------

    def list_versions(self, key: str) -> list[ObjectVersion]:
        """List stored versions of exactly ``key``, newest first."""
        return [
            ObjectVersion(
                key=v.key,
                version_id=v.version_id,
                last_modified=v.last_modified,
                size_bytes=v.size_bytes,
                is_latest=v.is_latest,
            )
            for v in self._client.list_object_versions(object_key=key)
        ]

    def restore_version(self, key: str, version_id: str) -> str | None:
        """Make an earlier version current by copying it over the key.

        Returns:
            The id of the new current version.

        Raises:
            ObjectMissingError: If the key or version does not exist.
        """
        if not version_id:
            raise ValueError("version_id must not be empty")
        try:
            new_version = self._client.copy_object(
                source_key=key, dest_key=key, source_version_id=version_id
            )
        except ObjectNotFoundError as exc:
            raise ObjectMissingError(key) from exc
        logger.info("Restored version key=%s version=%s new=%s", key, version_id, new_version)
        return new_version

    def enable_versioning(self, enabled: bool = True) -> None:
        self._client.put_bucket_versioning(enabled=enabled)
        logger.info(
            "Bucket versioning %s bucket=%s",
            "enabled" if enabled else "suspended",
            self._client.bucket,
        )

    # ------------------------------------------------------------------
    # Bucket level
    # ------------------------------------------------------------------

    def storage_usage(self, prefix: str = "") -> StorageUsage:
        """Total size and object count under ``prefix``, across all pages."""
        entries = self._client.list_objects(prefix=prefix, recursive=True).entries
        return StorageUsage(
            total_size=sum(e.size_bytes for e in entries),
            object_count=len(entries),
        )

    def configure_notifications(
        self,
        queue_arn: str,
        *,
        events: Sequence[str] = DEFAULT_NOTIFICATION_EVENTS,
        prefix: str | None = None,
        suffix: str | None = None,
    ) -> None:
        """Send bucket change events to a queue."""
        if not (queue_arn or "").strip():
            raise ValueError("queue_arn must not be empty")
        if not events:
            raise ValueError("events must not be empty")
        self._client.put_bucket_notification(
            queue_arn=queue_arn.strip(), events=list(events), prefix=prefix, suffix=suffix
        )
        logger.info("Configured bucket notifications queue=%s events=%s", queue_arn, list(events))
