"""Multipart upload orchestration.

Sessions are tracked in a ``SessionRepository`` so that parts can be
recorded, completion can check for gaps, and stale uploads can be swept.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Mapping

from objstore.common.config import Settings
from objstore.domain.multipart import (
    MultipartSession,
    SessionClosedError,
    SessionState,
    UnknownSessionError,
    validate_part_number,
)
from objstore.domain.repositories.session_repository import SessionRepository
from objstore.infra.storage.client import (
    BackendError,
    CompletedPart,
    ObjectNotFoundError,
    StorageClient,
)

from .base import BaseService

logger = logging.getLogger(__name__)


class MultipartUploadService(BaseService):
    """Application service for multipart uploads.

    Parts of one session may be uploaded concurrently and in any order.
    ``complete`` and ``abort`` are serialised per session: whichever runs
    first wins and the other raises ``SessionClosedError`` (or is a no-op for
    a repeated abort).
    """

    def __init__(
        self,
        client: StorageClient,
        *,
        repository: SessionRepository | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(client, settings=settings)
        self._repo = repository if repository is not None else SessionRepository()

    @property
    def repository(self) -> SessionRepository:
        return self._repo

    def init(
        self,
        key: str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, object] | None = None,
    ) -> str:
        """Start a multipart upload for ``key`` and return its upload id.

        Finished sessions older than the session TTL are dropped first.
        """
        purged = self._repo.purge_finished(self._cutoff(None))
        if purged:
            logger.debug("Dropped %d finished multipart sessions", purged)
        upload = self._client.init_multipart_upload(
            object_key=key,
            content_type=content_type,
            metadata={str(k): str(v) for k, v in metadata.items()} if metadata else None,
        )
        self._repo.add(
            MultipartSession(
                upload_id=upload.upload_id,
                object_key=key,
                content_type=content_type,
            )
        )
        logger.info("Initiated multipart upload key=%s upload_id=%s", key, upload.upload_id)
        return upload.upload_id

    def get_session(self, upload_id: str) -> MultipartSession:
        session = self._repo.get(upload_id)
        if session is None:
            raise UnknownSessionError(upload_id)
        return session

    def upload_part(self, upload_id: str, part_number: int, data: bytes) -> CompletedPart:
        """Upload one part. Re-uploading a part number replaces it.

        Raises:
            InvalidPartError: If ``part_number`` is outside 1..10000.
            UnknownSessionError: If the upload id is not tracked.
            SessionClosedError: If the session is completed, completing or aborted.
        """
        validate_part_number(part_number)
        session = self.get_session(upload_id)
        session.ensure_accepting_parts()
        part = self._client.upload_part(
            object_key=session.object_key,
            upload_id=upload_id,
            part_number=part_number,
            body=bytes(data),
        )
        session.record_part(part)
        logger.debug(
            "Uploaded part upload_id=%s part=%d size=%d", upload_id, part_number, len(data)
        )
        return part

    def complete(self, upload_id: str) -> None:
        """Assemble the recorded parts into the final object.

        Raises:
            IncompleteUploadError: If no parts were recorded or numbers skip a value.
            SessionClosedError: If the session already finished.
            BackendError: If the backend rejects completion; the session stays open.
        """
        session = self.get_session(upload_id)
        with session.transition_lock:
            parts = session.begin_completion()
            try:
                self._client.complete_multipart_upload(
                    object_key=session.object_key, upload_id=upload_id, parts=parts
                )
            except BackendError:
                session.cancel_completion()
                raise
            session.mark_completed()
        logger.info(
            "Completed multipart upload key=%s upload_id=%s parts=%d",
            session.object_key,
            upload_id,
            len(parts),
        )

    def abort(self, upload_id: str) -> None:
        """Discard the upload and its parts. Aborting twice is a no-op.

        Raises:
            SessionClosedError: If the session already completed.
        """
        session = self.get_session(upload_id)
        with session.transition_lock:
            if session.state is SessionState.ABORTED:
                return
            if session.state is SessionState.COMPLETED:
                raise SessionClosedError(upload_id, session.state)
            try:
                self._client.abort_multipart_upload(
                    object_key=session.object_key, upload_id=upload_id
                )
            except ObjectNotFoundError:
                logger.debug("Upload already gone on backend: upload_id=%s", upload_id)
            session.mark_aborted()
        logger.info("Aborted multipart upload key=%s upload_id=%s", session.object_key, upload_id)

    def presign_part(
        self, upload_id: str, part_number: int, *, expires_in: int | None = None
    ) -> str:
        """Presigned URL for uploading one part directly to the backend.

        Parts uploaded this way are not recorded here; the caller must report
        them with ``record_presigned_part`` before completing.
        """
        validate_part_number(part_number)
        session = self.get_session(upload_id)
        session.ensure_accepting_parts()
        return self._client.presign_upload_part(
            object_key=session.object_key,
            upload_id=upload_id,
            part_number=part_number,
            expires_in=self._expires_in(expires_in),
        )

    def record_presigned_part(self, upload_id: str, part_number: int, etag: str) -> None:
        if not (etag or "").strip():
            raise ValueError("etag must not be empty")
        self.get_session(upload_id).record_part(
            CompletedPart(part_number=validate_part_number(part_number), etag=etag.strip())
        )

    # ------------------------------------------------------------------
    # Sweeping
    # ------------------------------------------------------------------

    def _cutoff(self, now: datetime | None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return now - timedelta(seconds=int(self._settings.MULTIPART_SESSION_TTL_SECONDS))

    def abort_expired(self, *, now: datetime | None = None) -> list[str]:
        """Abort sessions older than the session TTL.

        Sessions that already finished and are past the TTL are dropped from
        the repository. A failed abort is logged and retried on the next sweep.

        Returns:
            Upload ids aborted by this sweep.
        """
        cutoff = self._cutoff(now)
        self._repo.purge_finished(cutoff)
        aborted: list[str] = []
        for session in self._repo.created_before(cutoff):
            if session.state.terminal:
                continue
            try:
                self.abort(session.upload_id)
            except (BackendError, SessionClosedError) as exc:
                logger.warning(
                    "Could not abort expired upload upload_id=%s: %s", session.upload_id, exc
                )
                continue
            aborted.append(session.upload_id)
        if aborted:
            logger.info("Aborted %d expired multipart uploads", len(aborted))
        return aborted

    def abort_orphaned(
        self, prefix: str = "", *, now: datetime | None = None, dry_run: bool = False
    ) -> list[str]:
        """Abort backend uploads older than the TTL that this process does not track.

        Returns:
            Upload ids aborted, or that would be aborted when ``dry_run`` is set.
        """
        cutoff = self._cutoff(now)
        aborted: list[str] = []
        for upload in self._client.list_multipart_uploads(prefix=prefix):
            if upload.upload_id in self._repo:
                continue
            if upload.initiated_at is not None and upload.initiated_at > cutoff:
                continue
            if dry_run:
                aborted.append(upload.upload_id)
                continue
            try:
                self._client.abort_multipart_upload(
                    object_key=upload.object_key, upload_id=upload.upload_id
                )
            except ObjectNotFoundError:
                continue
            aborted.append(upload.upload_id)
            logger.info(
                "Aborted orphaned upload key=%s upload_id=%s", upload.object_key, upload.upload_id
            )
        return aborted

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    @contextmanager
    def session(
        self,
        key: str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, object] | None = None,
    ) -> Iterator[str]:
        """Context manager around one upload.

        Yields the upload id. Completes on normal exit unless the body already
        finished the session; aborts if the body raises.

        Example:
            with service.session("videos/a.mp4") as upload_id:
                service.upload_part(upload_id, 1, chunk)
        """
        upload_id = self.init(key, content_type=content_type, metadata=metadata)
        try:
            yield upload_id
        except BaseException:
            try:
                self.abort(upload_id)
            except (BackendError, SessionClosedError) as abort_exc:
                logger.warning("Abort after failure did not succeed upload_id=%s: %s", upload_id, abort_exc)
            raise
        if not self.get_session(upload_id).state.terminal:
            self.complete(upload_id)

    def upload_stream(
        self,
        key: str,
        chunks: Iterable[bytes],
        *,
        content_type: str | None = None,
        metadata: Mapping[str, object] | None = None,
    ) -> str:
        """Upload an iterable of byte chunks as one multipart object.

        Chunks are re-cut to the configured part size; the last part may be
        smaller. An empty stream produces a single empty part.

        Returns:
            The upload id of the completed upload.
        """
        part_size = int(self._settings.STORAGE_PART_SIZE_BYTES)
        with self.session(key, content_type=content_type, metadata=metadata) as upload_id:
            buffer = bytearray()
            part_number = 0
            for chunk in chunks:
                buffer.extend(chunk)
                while len(buffer) >= part_size:
                    part_number += 1
                    self.upload_part(upload_id, part_number, bytes(buffer[:part_size]))
                    del buffer[:part_size]
            if buffer or part_number == 0:
                part_number += 1
                self.upload_part(upload_id, part_number, bytes(buffer))
        return upload_id
