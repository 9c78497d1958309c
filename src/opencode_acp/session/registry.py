"""Registry of live sessions, keyed by upstream session id."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator

from opencode_acp.errors import SessionNotFoundError
from opencode_acp.session.state import SessionState


class SessionRegistry:
    """Owns every SessionState the bridge knows about.

    Reads are lock-free: the event loop looks sessions up on every event.
    Mutations go through the lock so concurrent new/load requests for the
    same id cannot race.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionState] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: SessionState) -> SessionState:
        """Register a session, returning the existing record if already present."""
        async with self._lock:
            existing = self._sessions.get(session.session_id)
            if existing is not None:
                return existing
            self._sessions[session.session_id] = session
            return session

    def get(self, session_id: str) -> SessionState:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def find(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> SessionState | None:
        async with self._lock:
            return self._sessions.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[SessionState]:
        return iter(list(self._sessions.values()))
