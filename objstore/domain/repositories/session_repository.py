"""Multipart session repository.

Keeps the sessions this process initiated, keyed by upload id. Finished
sessions stay until they are older than the session TTL so late calls get
``SessionClosedError`` rather than an unknown-session error.
"""

from __future__ import annotations

import threading
from datetime import datetime

from objstore.domain.multipart import MultipartSession


class SessionRepository:
    """Thread-safe in-memory store of multipart sessions."""

    def __init__(self) -> None:
        self._sessions: dict[str, MultipartSession] = {}
        self._lock = threading.Lock()

    def add(self, session: MultipartSession) -> None:
        with self._lock:
            self._sessions[session.upload_id] = session

    def get(self, upload_id: str) -> MultipartSession | None:
        """Get a session by upload id.

        Returns:
            The session if tracked, None otherwise.
        """
        with self._lock:
            return self._sessions.get(upload_id)

    def remove(self, upload_id: str) -> MultipartSession | None:
        with self._lock:
            return self._sessions.pop(upload_id, None)

    def list_sessions(self, *, include_finished: bool = False) -> list[MultipartSession]:
        with self._lock:
            sessions = list(self._sessions.values())
        if include_finished:
            return sessions
        return [s for s in sessions if not s.state.terminal]

    def created_before(self, cutoff: datetime) -> list[MultipartSession]:
        with self._lock:
            return [s for s in self._sessions.values() if s.created_at < cutoff]

    def purge_finished(self, cutoff: datetime) -> int:
        """Drop completed or aborted sessions created before ``cutoff``.

        Returns:
            Number of sessions removed.
        """
        with self._lock:
            stale = [
                upload_id
                for upload_id, s in self._sessions.items()
                if s.state.terminal and s.created_at < cutoff
            ]
            for upload_id in stale:
                del self._sessions[upload_id]
        return len(stale)

    def __contains__(self, upload_id: object) -> bool:
        with self._lock:
            return upload_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
