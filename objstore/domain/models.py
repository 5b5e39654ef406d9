"""Object storage domain models.

Plain dataclasses returned by the storage facade; they carry no client
references and are safe to hand to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def parse(cls, value: "str | Visibility") -> "Visibility":
        try:
            return cls(str(getattr(value, "value", value)).strip().lower())
        except ValueError:
            raise ValueError(f"visibility must be 'public' or 'private', got {value!r}") from None


@dataclass(slots=True)
class ObjectMetadata:
    """Aggregated view of one object.

    Built from several backend reads. A read that fails leaves its field as
    ``None`` and records the failure in ``errors`` keyed by the read that
    failed (``head``, ``visibility`` or ``tags``); fields fetched successfully
    are kept.

    Attributes:
        key: Object key.
        mime_type: Content type reported by the backend.
        size_bytes: Content length.
        last_modified: Last modification timestamp.
        visibility: Public or private, from the object ACL.
        tags: Tag set (keys unique, unordered).
        user_metadata: Custom metadata attached at upload.
        etag: Backend ETag. Not a content hash for multipart objects.
        errors: Read name -> failure message for reads that failed.
    """

    key: str
    mime_type: str | None = None
    size_bytes: int | None = None
    last_modified: datetime | None = None
    visibility: Visibility | None = None
    tags: dict[str, str] | None = None
    user_metadata: dict[str, str] = field(default_factory=dict)
    etag: str | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "mimeType": self.mime_type,
            "size": self.size_bytes,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
            "visibility": self.visibility.value if self.visibility else None,
            "tags": dict(self.tags) if self.tags is not None else None,
            "metadata": dict(self.user_metadata),
            "etag": self.etag,
            "errors": dict(self.errors),
        }


@dataclass(frozen=True, slots=True)
class ObjectVersion:
    """One stored version of an object. Read-only."""

    key: str
    version_id: str
    last_modified: datetime | None
    size_bytes: int
    is_latest: bool


@dataclass(frozen=True, slots=True)
class StorageUsage:
    total_size: int
    object_count: int
