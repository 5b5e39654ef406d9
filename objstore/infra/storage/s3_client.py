"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, ConnectTimeoutError, ReadTimeoutError

from objstore.infra.observability.metrics import observe
from objstore.infra.storage.client import (
    BackendError,
    CompletedPart,
    ConnectionConfig,
    MultipartUpload,
    ObjectEntry,
    ObjectHead,
    ObjectListing,
    ObjectNotFoundError,
    StorageTimeoutError,
    StoredObject,
    VersionEntry,
)
from objstore.infra.storage.registry import register_backend

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset(
    {"NoSuchKey", "NoSuchVersion", "NoSuchUpload", "NotFound", "404"}
)
_ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
_PUBLIC_PERMISSIONS = frozenset({"READ", "FULL_CONTROL"})


@register_backend("s3", "minio")
class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations. The underlying boto3 client is
    built once from an immutable ``ConnectionConfig``; ``reconfigure``
    returns a fresh instance instead of touching this one.
    """

    def __init__(self, *, config: ConnectionConfig, metrics_enabled: bool = True) -> None:
        """Initialize the S3 client with a connection configuration.

        Args:
            config: Endpoint, credentials, bucket and transport policy.
            metrics_enabled: Record prometheus samples for each call.

        Raises:
            StorageConfigurationError: If a required field is empty.
        """
        self._config = config.validate()
        self._metrics_enabled = metrics_enabled
        self._client = self._build_client(self._config)

    @staticmethod
    def _build_client(config: ConnectionConfig) -> Any:
        """Create a boto3 S3 client from a connection configuration."""
        addressing_style = "path" if config.path_style else "virtual"
        boto_config = Config(
            s3={"addressing_style": addressing_style},
            signature_version=config.signature_version,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            retries={"total_max_attempts": int(config.max_attempts), "mode": "standard"},
        )

        return boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            verify=config.verify_tls,
            config=boto_config,
        )

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def bucket(self) -> str:
        return self._config.bucket

    def reconfigure(self, **changes: Any) -> "S3StorageClient":
        """Build a new client from this configuration with ``changes`` applied."""
        config = self._config.with_changes(**changes)
        logger.info(
            "Rebuilding S3 client: endpoint=%s bucket=%s changed=%s",
            config.endpoint_url,
            config.bucket,
            sorted(changes),
        )
        return type(self)(config=config, metrics_enabled=self._metrics_enabled)

    @contextmanager
    def _translate(self, operation: str) -> Iterator[None]:
        """Map boto3 failures onto the storage error taxonomy."""
        with observe(operation, enabled=self._metrics_enabled) as outcome:
            try:
                yield
            except ClientError as exc:
                error = exc.response.get("Error", {})
                code = str(error.get("Code") or "") or None
                message = str(error.get("Message") or exc)
                if code in _NOT_FOUND_CODES:
                    outcome.status = "not_found"
                    raise ObjectNotFoundError(operation, message, code=code) from exc
                logger.warning("S3 %s failed: code=%s %s", operation, code, message)
                raise BackendError(operation, message, code=code) from exc
            except (ConnectTimeoutError, ReadTimeoutError) as exc:
                outcome.status = "timeout"
                logger.warning("S3 %s timed out: %s", operation, exc)
                raise StorageTimeoutError(operation, str(exc), code="Timeout") from exc
            except BackendError:
                raise
            except Exception as exc:
                logger.error("S3 %s failed: %s", operation, exc)
                raise BackendError(operation, str(exc)) from exc

    def _call(self, operation: str, **params: Any) -> Any:
        with self._translate(operation):
            return getattr(self._client, operation)(Bucket=self.bucket, **params)

    @staticmethod
    def _head_from_response(response: dict[str, Any]) -> ObjectHead:
        content_length = response.get("ContentLength")
        return ObjectHead(
            size_bytes=int(content_length) if content_length is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
            version_id=response.get("VersionId"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def put_object(
        self,
        *,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> ObjectHead:
        """Store an object, replacing any object at the same key."""
        params: dict[str, Any] = {"Key": object_key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata

        response = self._call("put_object", **params)
        return ObjectHead(
            size_bytes=len(body),
            etag=response.get("ETag"),
            content_type=content_type,
            version_id=response.get("VersionId"),
            metadata=dict(metadata or {}),
        )

    def get_object(
        self, *, object_key: str, version_id: str | None = None
    ) -> StoredObject:
        """Download an object."""
        params: dict[str, Any] = {"Key": object_key}
        if version_id:
            params["VersionId"] = version_id

        with self._translate("get_object"):
            response = self._client.get_object(Bucket=self.bucket, **params)
            body = response["Body"].read()
        return StoredObject(head=self._head_from_response(response), body=body)

    def iter_object(
        self, *, object_key: str, chunk_size: int = 65536
    ) -> Iterator[bytes]:
        """Stream an object body in chunks."""
        with self._translate("iter_object"):
            response = self._client.get_object(Bucket=self.bucket, Key=object_key)
            body = response["Body"]
            try:
                yield from body.iter_chunks(chunk_size)
            finally:
                body.close()

    def head_object(
        self, *, object_key: str, version_id: str | None = None
    ) -> ObjectHead:
        """Get object metadata without downloading the content."""
        params: dict[str, Any] = {"Key": object_key}
        if version_id:
            params["VersionId"] = version_id
        response = self._call("head_object", **params)
        return self._head_from_response(response)

    def delete_object(self, *, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            self._call("delete_object", Key=object_key)
        except ObjectNotFoundError:
            logger.debug("S3 delete of absent key treated as success: %s", object_key)

    def delete_objects(self, *, object_keys: Sequence[str]) -> list[str]:
        """Delete a batch of objects, returning the keys that failed."""
        if not object_keys:
            return []
        response = self._call(
            "delete_objects",
            Delete={
                "Objects": [{"Key": key} for key in object_keys],
                "Quiet": True,
            },
        )
        return [str(error.get("Key")) for error in response.get("Errors") or []]

    def list_objects(
        self, *, prefix: str = "", recursive: bool = False
    ) -> ObjectListing:
        """List objects under a prefix, following continuation tokens."""
        params: dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        if not recursive:
            params["Delimiter"] = "/"

        entries: list[ObjectEntry] = []
        prefixes: list[str] = []
        with self._translate("list_objects"):
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**params):
                for item in page.get("Contents") or []:
                    entries.append(
                        ObjectEntry(
                            key=item["Key"],
                            size_bytes=int(item.get("Size") or 0),
                            last_modified=item.get("LastModified"),
                            etag=item.get("ETag"),
                        )
                    )
                for common in page.get("CommonPrefixes") or []:
                    prefixes.append(common["Prefix"])
        return ObjectListing(entries=entries, prefixes=prefixes)

    def copy_object(
        self,
        *,
        source_key: str,
        dest_key: str,
        source_version_id: str | None = None,
    ) -> str | None:
        """Server-side copy within the bucket, returning the new version id."""
        source: dict[str, str] = {"Bucket": self.bucket, "Key": source_key}
        if source_version_id:
            source["VersionId"] = source_version_id

        response = self._call("copy_object", Key=dest_key, CopySource=source)
        return response.get("VersionId")

    def put_object_tagging(self, *, object_key: str, tags: dict[str, str]) -> None:
        """Replace the tag set of an object."""
        tag_set = [{"Key": str(k), "Value": str(v)} for k, v in tags.items()]
        self._call(
            "put_object_tagging",
            Key=object_key,
            Tagging={"TagSet": tag_set},
        )

    def get_object_tagging(self, *, object_key: str) -> dict[str, str]:
        """Return the tag set of an object."""
        response = self._call("get_object_tagging", Key=object_key)
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet") or []}

    def put_object_acl(self, *, object_key: str, public: bool) -> None:
        """Make an object publicly readable or private."""
        acl = "public-read" if public else "private"
        self._call("put_object_acl", Key=object_key, ACL=acl)

    def get_object_acl(self, *, object_key: str) -> bool:
        """Return True if the object grants read access to everyone."""
        response = self._call("get_object_acl", Key=object_key)
        for grant in response.get("Grants") or []:
            grantee = grant.get("Grantee") or {}
            if (
                grantee.get("URI") == _ALL_USERS_URI
                and grant.get("Permission") in _PUBLIC_PERMISSIONS
            ):
                return True
        return False

    def list_object_versions(self, *, object_key: str) -> list[VersionEntry]:
        """List every version stored for exactly this key, newest first."""
        versions: list[VersionEntry] = []
        with self._translate("list_object_versions"):
            paginator = self._client.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=object_key):
                for item in page.get("Versions") or []:
                    # Prefix matching also returns longer keys sharing the prefix
                    if item.get("Key") != object_key:
                        continue
                    versions.append(
                        VersionEntry(
                            key=item["Key"],
                            version_id=str(item.get("VersionId")),
                            last_modified=item.get("LastModified"),
                            size_bytes=int(item.get("Size") or 0),
                            is_latest=bool(item.get("IsLatest")),
                            etag=item.get("ETag"),
                        )
                    )
        versions.sort(
            key=lambda v: (v.last_modified is not None, v.last_modified),
            reverse=True,
        )
        return versions

    def put_bucket_versioning(self, *, enabled: bool) -> None:
        """Enable or suspend versioning on the bucket."""
        status = "Enabled" if enabled else "Suspended"
        self._call(
            "put_bucket_versioning",
            VersioningConfiguration={"Status": status},
        )

    def put_bucket_notification(
        self,
        *,
        queue_arn: str,
        events: Sequence[str],
        prefix: str | None = None,
        suffix: str | None = None,
    ) -> None:
        """Route bucket change events to a queue."""
        queue_config: dict[str, Any] = {"QueueArn": queue_arn, "Events": list(events)}
        rules = [
            {"Name": name, "Value": value}
            for name, value in (("prefix", prefix), ("suffix", suffix))
            if value
        ]
        if rules:
            queue_config["Filter"] = {"Key": {"FilterRules": rules}}

        self._call(
            "put_bucket_notification_configuration",
            NotificationConfiguration={"QueueConfigurations": [queue_config]},
        )

    def init_multipart_upload(
        self,
        *,
        object_key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Key": object_key}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata

        response = self._call("create_multipart_upload", **params)

        upload_id = response.get("UploadId")
        if not upload_id:
            raise BackendError("create_multipart_upload", "S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=self.bucket,
            object_key=object_key,
        )

    def upload_part(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part of a multipart upload."""
        response = self._call(
            "upload_part",
            Key=object_key,
            UploadId=upload_id,
            PartNumber=int(part_number),
            Body=body,
        )
        etag = response.get("ETag")
        if not etag:
            raise BackendError("upload_part", "S3 response missing ETag")
        return CompletedPart(part_number=int(part_number), etag=str(etag))

    def complete_multipart_upload(
        self,
        *,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }
        self._call(
            "complete_multipart_upload",
            Key=object_key,
            UploadId=upload_id,
            MultipartUpload=multipart_payload,
        )

    def abort_multipart_upload(self, *, object_key: str, upload_id: str) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        self._call("abort_multipart_upload", Key=object_key, UploadId=upload_id)

    def list_multipart_uploads(self, *, prefix: str = "") -> list[MultipartUpload]:
        """List uploads that were initiated but neither completed nor aborted."""
        uploads: list[MultipartUpload] = []
        with self._translate("list_multipart_uploads"):
            paginator = self._client.get_paginator("list_multipart_uploads")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Uploads") or []:
                    uploads.append(
                        MultipartUpload(
                            upload_id=str(item["UploadId"]),
                            bucket=self.bucket,
                            object_key=item["Key"],
                            initiated_at=item.get("Initiated"),
                        )
                    )
        return uploads

    def _presign(self, operation: str, client_method: str, params: dict[str, Any], expires_in: int) -> str:
        with self._translate(operation):
            url = self._client.generate_presigned_url(
                client_method,
                Params={"Bucket": self.bucket, **params},
                ExpiresIn=int(expires_in),
            )
        if not url:
            raise BackendError(operation, "Generated presigned URL is empty")
        return str(url)

    def presign_upload_part(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for uploading a part."""
        return self._presign(
            "presign_upload_part",
            "upload_part",
            {
                "Key": object_key,
                "UploadId": upload_id,
                "PartNumber": int(part_number),
            },
            expires_in,
        )

    def presign_download(
        self,
        *,
        object_key: str,
        expires_in: int,
        filename: str | None = None,
    ) -> str:
        """Generate a presigned URL for downloading an object."""
        params: dict[str, Any] = {"Key": object_key}
        if filename:
            # Escape quotes in filename for Content-Disposition header
            safe_filename = filename.replace('"', '\\"')
            params["ResponseContentDisposition"] = (
                f'attachment; filename="{safe_filename}"'
            )
        return self._presign("presign_download", "get_object", params, expires_in)

    def presign_upload(
        self,
        *,
        object_key: str,
        expires_in: int,
        content_type: str | None = None,
    ) -> str:
        """Generate a presigned URL for a single PUT of an object."""
        params: dict[str, Any] = {"Key": object_key}
        if content_type:
            params["ContentType"] = content_type
        return self._presign("presign_upload", "put_object", params, expires_in)
