"""
app/services/upload_session_store.py

Process-wide holder for parsed uploads between the upload and ingest calls.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from app.domain.store_import import UploadSession

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 3600


def new_session_id(now: float) -> str:
    return f"upload-{int(now * 1000)}-{secrets.token_hex(5)}"


class UploadSessionStore:
    """
    Thread-safe map of session id -> UploadSession with age-based eviction.

    A session checked out by an in-flight ingest is never evicted; its removal
    is deferred until the last checkout is released.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, UploadSession] = {}
        self._leases: dict[str, int] = {}
        self._lock = threading.Lock()

    def create(self, *, headers: list[str], rows: list[list[Any]], filename: str = "") -> UploadSession:
        created_at = self._clock()
        session = UploadSession(
            id=new_session_id(created_at),
            headers=list(headers),
            rows=rows,
            created_at=created_at,
            filename=filename,
        )
        self.put(session)
        return session

    def put(self, session: UploadSession) -> None:
        with self._lock:
            self._sessions[session.id] = session
        logger.info("Upload session stored session_id=%s rows=%s", session.id, len(session.rows))

    def get(self, session_id: str) -> UploadSession | None:
        """Return a live session; expired sessions read as missing."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or self._is_expired(session, self._clock()):
                return None
            return session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("Upload session deleted session_id=%s", session_id)
        return removed

    def evict_expired(self, now: float | None = None) -> list[str]:
        """
        Drop sessions older than the TTL that nobody is currently using.
        """

        current = self._clock() if now is None else now
        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if self._is_expired(session, current) and not self._leases.get(session_id)
            ]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            logger.info("Evicted expired upload sessions count=%s", len(expired))
        return expired

    @contextmanager
    def checkout(self, session_id: str) -> Iterator[UploadSession | None]:
        """
        Hold a session for the duration of an ingest so eviction skips it.

        Yields None when the session is missing or already expired.
        """

        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and self._is_expired(session, self._clock()):
                session = None
            if session is not None:
                self._leases[session_id] = self._leases.get(session_id, 0) + 1

        try:
            yield session
        finally:
            if session is not None:
                with self._lock:
                    remaining = self._leases.get(session_id, 1) - 1
                    if remaining > 0:
                        self._leases[session_id] = remaining
                    else:
                        self._leases.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _is_expired(self, session: UploadSession, now: float) -> bool:
        return now - session.created_at >= self._ttl_seconds
