"""
Purpose: Durable storage of every chat session, so past conversations can be
listed in the sidebar and reopened.

What is inside:
SessionStore over any KeyValueBackend. All sessions live as one JSON array
under a single namespaced key; a save rewrites that key in one call.
Methods: create_session, save_session, list_sessions, get_session, clear_all.

Errors: a medium that cannot be read, decoded or written raises
PersistenceError. Nothing here falls back to an empty list on failure.

Testing:
In-memory backend: state and round-trip tests.
Broken backend: errors surface instead of an empty listing.
"""

from __future__ import annotations
import logging
import time
import uuid
from typing import Optional

from ..errors import PersistenceError
from ..interfaces import Clock, IdFactory, KeyValueBackend
from ..models import ChatSession
from ..prompts import NEW_SESSION_TITLE
from ..utils.session_json import dumps_sessions, loads_sessions

LOGGER = logging.getLogger(__name__)

SESSIONS_KEY = "dominus.sessions"


def new_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        id_factory: Optional[IdFactory] = None,
        clock: Optional[Clock] = None,
        key: str = SESSIONS_KEY,
    ) -> None:
        self.backend = backend
        self.id_factory: IdFactory = id_factory or new_id
        self.clock: Clock = clock or now_ms
        self.key = key

    def create_session(self) -> ChatSession:
        """Build a fresh, empty session. Nothing is written."""
        return ChatSession(
            id=self.id_factory(),
            title=NEW_SESSION_TITLE,
            created_at=self.clock(),
        )

    def _read(self) -> list[ChatSession]:
        try:
            raw = self.backend.get(self.key)
        except OSError as e:
            raise PersistenceError(f"Cannot read stored sessions: {e}") from e
        if raw is None:
            return []
        if not isinstance(raw, str):
            raise PersistenceError(
                f"Stored sessions are corrupt: expected JSON text, got {type(raw).__name__}"
            )
        try:
            return loads_sessions(raw)
        except ValueError as e:
            raise PersistenceError(f"Stored sessions are corrupt: {e}") from e

    def _write(self, sessions: list[ChatSession]) -> None:
        try:
            self.backend.set(self.key, dumps_sessions(sessions))
        except OSError as e:
            raise PersistenceError(f"Cannot write stored sessions: {e}") from e

    def list_sessions(self) -> list[ChatSession]:
        """All stored sessions, most recently started first."""
        return self._read()

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        return next((s for s in self._read() if s.id == session_id), None)

    def save_session(self, session: ChatSession) -> None:
        """Insert or overwrite `session` by id; every other session is kept as is."""
        sessions = self._read()
        for idx, existing in enumerate(sessions):
            if existing.id == session.id:
                sessions[idx] = session
                break
        else:
            sessions.insert(0, session)
        self._write(sessions)
        LOGGER.debug(
            "Saved session %s (%d messages, %d stored)",
            session.id,
            len(session.messages),
            len(sessions),
        )

    def clear_all(self) -> None:
        """Drop every stored session. Other keys in the medium are left alone."""
        try:
            self.backend.delete(self.key)
        except OSError as e:
            raise PersistenceError(f"Cannot clear stored sessions: {e}") from e
        LOGGER.info("Cleared all stored sessions")
