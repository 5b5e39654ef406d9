"""Multipart upload session state machine.

A session moves ``INITIATED -> UPLOADING -> COMPLETED`` or ends in
``ABORTED`` from either of the first two states. Parts may arrive in any
order and concurrently; the session keys them by part number so a retried
part simply replaces the earlier ETag.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from objstore.infra.storage.client import MAX_PART_NUMBER, CompletedPart


class MultipartError(Exception):
    """Base class for multipart protocol violations."""


class UnknownSessionError(MultipartError):
    """Raised when no session is tracked under the given upload id."""

    def __init__(self, upload_id: str):
        super().__init__(f"Unknown multipart upload: {upload_id}")
        self.upload_id = upload_id


class InvalidPartError(MultipartError):
    """Raised for part numbers outside 1..MAX_PART_NUMBER."""


class IncompleteUploadError(MultipartError):
    """Raised when completion is requested with gaps in the part numbers."""

    def __init__(self, upload_id: str, missing: list[int]):
        shown = ", ".join(str(n) for n in missing[:20])
        if len(missing) > 20:
            shown += ", ..."
        super().__init__(f"Multipart upload {upload_id} is missing parts: {shown}")
        self.upload_id = upload_id
        self.missing = missing


class SessionClosedError(MultipartError):
    """Raised when a completed or aborted session is used again."""

    def __init__(self, upload_id: str, state: "SessionState"):
        super().__init__(f"Multipart upload {upload_id} is {state.value}")
        self.upload_id = upload_id
        self.state = state


class SessionState(str, Enum):
    INITIATED = "initiated"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)


def validate_part_number(part_number: int) -> int:
    if isinstance(part_number, bool) or not isinstance(part_number, int):
        raise InvalidPartError("part_number must be an integer")
    if part_number < 1 or part_number > MAX_PART_NUMBER:
        raise InvalidPartError(f"part_number must be between 1 and {MAX_PART_NUMBER}")
    return part_number


@dataclass(eq=False)
class MultipartSession:
    """In-progress multipart upload tracked by this process.

    ``transition_lock`` serialises completion and abort (held across the
    backend call); ``_guard`` protects state and parts for short updates.
    While a completion is in flight the session refuses new parts, so the
    part list sent to the backend is exactly what was recorded.
    """

    upload_id: str
    object_key: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    content_type: str | None = None
    state: SessionState = SessionState.INITIATED
    _parts: dict[int, str] = field(default_factory=dict, repr=False)
    _closing: bool = field(default=False, repr=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, repr=False)
    transition_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _ensure_open(self) -> None:
        if self.state.terminal:
            raise SessionClosedError(self.upload_id, self.state)

    def ensure_accepting_parts(self) -> None:
        with self._guard:
            self._ensure_open()
            if self._closing:
                raise SessionClosedError(self.upload_id, SessionState.COMPLETED)

    def record_part(self, part: CompletedPart) -> None:
        validate_part_number(part.part_number)
        with self._guard:
            self._ensure_open()
            if self._closing:
                raise SessionClosedError(self.upload_id, SessionState.COMPLETED)
            self._parts[part.part_number] = part.etag
            self.state = SessionState.UPLOADING

    @property
    def part_numbers(self) -> list[int]:
        with self._guard:
            return sorted(self._parts)

    def begin_completion(self) -> list[CompletedPart]:
        """Freeze the part list and return it in ascending order.

        Raises:
            SessionClosedError: If the session already finished.
            IncompleteUploadError: If no parts exist or numbers skip a value.
        """
        with self._guard:
            self._ensure_open()
            if not self._parts:
                raise IncompleteUploadError(self.upload_id, [1])
            highest = max(self._parts)
            missing = [n for n in range(1, highest + 1) if n not in self._parts]
            if missing:
                raise IncompleteUploadError(self.upload_id, missing)
            self._closing = True
            return [
                CompletedPart(part_number=n, etag=self._parts[n])
                for n in range(1, highest + 1)
            ]

    def cancel_completion(self) -> None:
        with self._guard:
            self._closing = False

    def mark_completed(self) -> None:
        with self._guard:
            self._ensure_open()
            self.state = SessionState.COMPLETED
            self._closing = False

    def mark_aborted(self) -> None:
        with self._guard:
            self._ensure_open()
            self.state = SessionState.ABORTED
            self._closing = False

    def is_expired(self, ttl_seconds: int, *, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now - self.created_at >= timedelta(seconds=ttl_seconds)
