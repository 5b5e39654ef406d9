"""Tests for multipart upload orchestration."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from objstore.app.services import (
    IncompleteUploadError,
    InvalidPartError,
    MultipartUploadService,
    SessionClosedError,
    UnknownSessionError,
)
from objstore.common.config import MIN_PART_SIZE_BYTES, Settings
from objstore.domain.multipart import SessionState
from objstore.domain.repositories.session_repository import SessionRepository
from objstore.infra.storage.client import BackendError
from tests.services.mock_storage import BASE_TIME


class TestLifecycle:
    def test_shares_the_repository_it_is_given(self, mock_storage, settings):
        sessions = SessionRepository()
        writer = MultipartUploadService(mock_storage, repository=sessions, settings=settings)
        reader = MultipartUploadService(mock_storage, repository=sessions, settings=settings)

        assert writer.repository is sessions
        upload_id = writer.init("shared.bin")
        reader.upload_part(upload_id, 1, b"data")
        reader.complete(upload_id)

        assert writer.get_session(upload_id).state is SessionState.COMPLETED
        assert mock_storage.body("shared.bin") == b"data"

    def test_parts_out_of_order_complete_in_order(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("videos/a.mp4", content_type="video/mp4")

        multipart_service.upload_part(upload_id, 3, b"ccc")
        multipart_service.upload_part(upload_id, 1, b"aaa")
        multipart_service.upload_part(upload_id, 2, b"bbb")
        multipart_service.complete(upload_id)

        assert mock_storage.body("videos/a.mp4") == b"aaabbbccc"
        assert mock_storage.completed[upload_id] == [1, 2, 3]
        assert multipart_service.get_session(upload_id).state is SessionState.COMPLETED

    def test_reupload_replaces_part(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("a.bin")

        multipart_service.upload_part(upload_id, 1, b"old")
        multipart_service.upload_part(upload_id, 1, b"new")
        multipart_service.complete(upload_id)

        assert mock_storage.body("a.bin") == b"new"

    def test_state_moves_to_uploading(self, multipart_service):
        upload_id = multipart_service.init("a.bin")
        session = multipart_service.get_session(upload_id)
        assert session.state is SessionState.INITIATED

        multipart_service.upload_part(upload_id, 1, b"x")

        assert session.state is SessionState.UPLOADING
        assert session.part_numbers == [1]

    def test_unknown_session(self, multipart_service):
        with pytest.raises(UnknownSessionError):
            multipart_service.upload_part("missing", 1, b"x")

    @pytest.mark.parametrize("part_number", [0, -1, 10001, True])
    def test_invalid_part_number(self, multipart_service, mock_storage, part_number):
        upload_id = multipart_service.init("a.bin")

        with pytest.raises(InvalidPartError):
            multipart_service.upload_part(upload_id, part_number, b"x")

        assert "upload_part" not in mock_storage.calls

    def test_complete_with_gap(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("a.bin")
        multipart_service.upload_part(upload_id, 1, b"a")
        multipart_service.upload_part(upload_id, 3, b"c")

        with pytest.raises(IncompleteUploadError) as excinfo:
            multipart_service.complete(upload_id)

        assert excinfo.value.missing == [2]
        assert "complete_multipart_upload" not in mock_storage.calls
        # the session stays usable
        multipart_service.upload_part(upload_id, 2, b"b")
        multipart_service.complete(upload_id)
        assert mock_storage.body("a.bin") == b"abc"

    def test_complete_without_parts(self, multipart_service):
        upload_id = multipart_service.init("a.bin")

        with pytest.raises(IncompleteUploadError):
            multipart_service.complete(upload_id)

    def test_backend_failure_keeps_session_open(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("a.bin")
        multipart_service.upload_part(upload_id, 1, b"a")
        mock_storage.failures["complete_multipart_upload"] = BackendError(
            "complete_multipart_upload", "InternalError"
        )

        with pytest.raises(BackendError):
            multipart_service.complete(upload_id)

        session = multipart_service.get_session(upload_id)
        assert session.state is SessionState.UPLOADING
        del mock_storage.failures["complete_multipart_upload"]
        multipart_service.upload_part(upload_id, 2, b"b")
        multipart_service.complete(upload_id)
        assert mock_storage.body("a.bin") == b"ab"

    def test_parts_rejected_after_completion(self, multipart_service):
        upload_id = multipart_service.init("a.bin")
        multipart_service.upload_part(upload_id, 1, b"a")
        multipart_service.complete(upload_id)

        with pytest.raises(SessionClosedError):
            multipart_service.upload_part(upload_id, 2, b"b")
        with pytest.raises(SessionClosedError):
            multipart_service.complete(upload_id)


class TestAbort:
    def test_abort_discards_parts(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("a.bin")
        multipart_service.upload_part(upload_id, 1, b"a")

        multipart_service.abort(upload_id)

        assert upload_id not in mock_storage.uploads
        assert "a.bin" not in mock_storage.objects
        assert multipart_service.get_session(upload_id).state is SessionState.ABORTED

    def test_abort_twice_is_noop(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("a.bin")

        multipart_service.abort(upload_id)
        multipart_service.abort(upload_id)

        assert mock_storage.calls.count("abort_multipart_upload") == 1

    def test_abort_after_complete(self, multipart_service):
        upload_id = multipart_service.init("a.bin")
        multipart_service.upload_part(upload_id, 1, b"a")
        multipart_service.complete(upload_id)

        with pytest.raises(SessionClosedError) as excinfo:
            multipart_service.abort(upload_id)

        assert excinfo.value.state is SessionState.COMPLETED

    def test_complete_after_abort(self, multipart_service):
        upload_id = multipart_service.init("a.bin")
        multipart_service.upload_part(upload_id, 1, b"a")
        multipart_service.abort(upload_id)

        with pytest.raises(SessionClosedError):
            multipart_service.complete(upload_id)

    def test_abort_when_backend_already_dropped_upload(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("a.bin")
        del mock_storage.uploads[upload_id]

        multipart_service.abort(upload_id)

        assert multipart_service.get_session(upload_id).state is SessionState.ABORTED


class TestConcurrency:
    def test_parallel_part_uploads(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("parallel.bin")
        chunks = {n: bytes([n]) * 10 for n in range(1, 21)}

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(
                pool.map(
                    lambda n: multipart_service.upload_part(upload_id, n, chunks[n]),
                    chunks,
                )
            )
        multipart_service.complete(upload_id)

        assert mock_storage.body("parallel.bin") == b"".join(chunks[n] for n in range(1, 21))

    def test_complete_and_abort_race_has_one_winner(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("race.bin")
        multipart_service.upload_part(upload_id, 1, b"a")
        barrier = threading.Barrier(2)
        outcomes: dict[str, object] = {}

        def run(name, action):
            barrier.wait()
            try:
                action(upload_id)
                outcomes[name] = "ok"
            except SessionClosedError as exc:
                outcomes[name] = exc

        threads = [
            threading.Thread(target=run, args=("complete", multipart_service.complete)),
            threading.Thread(target=run, args=("abort", multipart_service.abort)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        state = multipart_service.get_session(upload_id).state
        if state is SessionState.COMPLETED:
            assert outcomes["complete"] == "ok"
            assert isinstance(outcomes["abort"], SessionClosedError)
            assert mock_storage.body("race.bin") == b"a"
        else:
            assert state is SessionState.ABORTED
            assert outcomes["abort"] == "ok"
            assert isinstance(outcomes["complete"], SessionClosedError)
            assert "race.bin" not in mock_storage.objects


class TestPresign:
    def test_presign_part_and_record(self, multipart_service, mock_storage):
        upload_id = multipart_service.init("a.bin")

        url = multipart_service.presign_part(upload_id, 2)

        assert f"uploadId={upload_id}" in url
        assert "partNumber=2" in url
        assert "expires=900" in url

        multipart_service.record_presigned_part(upload_id, 1, '"etag-1"')
        assert multipart_service.get_session(upload_id).part_numbers == [1]

    def test_record_requires_etag(self, multipart_service):
        upload_id = multipart_service.init("a.bin")

        with pytest.raises(ValueError):
            multipart_service.record_presigned_part(upload_id, 1, " ")

    def test_presign_closed_session(self, multipart_service):
        upload_id = multipart_service.init("a.bin")
        multipart_service.abort(upload_id)

        with pytest.raises(SessionClosedError):
            multipart_service.presign_part(upload_id, 1)


class TestSweeping:
    def test_abort_expired(self, multipart_service, mock_storage, settings):
        stale = multipart_service.init("stale.bin")
        fresh = multipart_service.init("fresh.bin")
        multipart_service.get_session(stale).created_at = BASE_TIME
        now = BASE_TIME + timedelta(seconds=settings.MULTIPART_SESSION_TTL_SECONDS + 1)
        multipart_service.get_session(fresh).created_at = now

        aborted = multipart_service.abort_expired(now=now)

        assert aborted == [stale]
        assert stale not in mock_storage.uploads
        assert fresh in mock_storage.uploads

        # finished sessions past the TTL are dropped on the next sweep
        assert multipart_service.abort_expired(now=now) == []
        assert stale not in multipart_service.repository

    def test_init_drops_old_finished_sessions(self, multipart_service):
        done = multipart_service.init("done.bin")
        multipart_service.abort(done)
        multipart_service.get_session(done).created_at = BASE_TIME
        recent = multipart_service.init("recent.bin")
        multipart_service.abort(recent)

        multipart_service.init("next.bin")

        assert done not in multipart_service.repository
        assert multipart_service.get_session(recent).state is SessionState.ABORTED

    def test_abort_expired_continues_after_failure(self, multipart_service, mock_storage):
        first = multipart_service.init("a.bin")
        multipart_service.get_session(first).created_at = BASE_TIME
        mock_storage.failures["abort_multipart_upload"] = BackendError(
            "abort_multipart_upload", "InternalError"
        )
        now = BASE_TIME + timedelta(days=2)

        assert multipart_service.abort_expired(now=now) == []
        assert multipart_service.get_session(first).state is SessionState.INITIATED

    def test_abort_orphaned_skips_tracked_and_recent(self, multipart_service, mock_storage):
        tracked = multipart_service.init("tracked.bin")
        orphan = mock_storage.init_multipart_upload(object_key="orphan.bin").upload_id
        now = BASE_TIME + timedelta(days=2)

        aborted = multipart_service.abort_orphaned(now=now)

        assert aborted == [orphan]
        assert tracked in mock_storage.uploads
        assert multipart_service.abort_orphaned(now=BASE_TIME) == []

    def test_abort_orphaned_dry_run(self, multipart_service, mock_storage):
        orphan = mock_storage.init_multipart_upload(object_key="orphan.bin").upload_id
        now = BASE_TIME + timedelta(days=2)

        assert multipart_service.abort_orphaned(now=now, dry_run=True) == [orphan]
        assert orphan in mock_storage.uploads
        assert "abort_multipart_upload" not in mock_storage.calls


class TestConvenience:
    def test_session_completes_on_exit(self, multipart_service, mock_storage):
        with multipart_service.session("ctx.bin") as upload_id:
            multipart_service.upload_part(upload_id, 1, b"data")

        assert mock_storage.body("ctx.bin") == b"data"

    def test_session_aborts_on_error(self, multipart_service, mock_storage):
        with pytest.raises(RuntimeError):
            with multipart_service.session("ctx.bin") as upload_id:
                multipart_service.upload_part(upload_id, 1, b"data")
                raise RuntimeError("caller failed")

        assert multipart_service.get_session(upload_id).state is SessionState.ABORTED
        assert "ctx.bin" not in mock_storage.objects

    def test_upload_stream_recuts_parts(self, mock_storage):
        settings = Settings(STORAGE_PART_SIZE_BYTES=MIN_PART_SIZE_BYTES, ENABLE_METRICS=False)
        service = MultipartUploadService(mock_storage, settings=settings)
        half = b"x" * (MIN_PART_SIZE_BYTES // 2)

        upload_id = service.upload_stream("stream.bin", [half, half, half, b"tail"])

        assert mock_storage.completed[upload_id] == [1, 2]
        assert mock_storage.body("stream.bin") == half * 3 + b"tail"

    def test_upload_stream_empty(self, multipart_service, mock_storage):
        upload_id = multipart_service.upload_stream("empty.bin", [])

        assert mock_storage.completed[upload_id] == [1]
        assert mock_storage.body("empty.bin") == b""

    def test_upload_stream_failure_aborts(self, multipart_service, mock_storage):
        def chunks():
            yield b"start"
            raise OSError("source closed")

        with pytest.raises(OSError):
            multipart_service.upload_stream("broken.bin", chunks())

        assert mock_storage.uploads == {}
        assert "broken.bin" not in mock_storage.objects
