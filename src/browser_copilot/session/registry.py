"""Registry mapping live connections to their sessions."""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional

from ..events import EventSink
from .orchestrator import Session

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[str, EventSink], Session]


class SessionRegistry:
    """Create, look up and destroy sessions; one per transport connection."""

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, sink: EventSink, session_id: Optional[str] = None) -> Session:
        session_id = session_id or uuid.uuid4().hex
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session {session_id} already exists")
            session = self._factory(session_id, sink)
            self._sessions[session_id] = session
        LOGGER.info("Created session %s", session_id)
        return session

    def lookup(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def destroy(self, session_id: str) -> bool:
        """Close and forget a session. Returns ``False`` if it was unknown."""

        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        LOGGER.info("Destroyed session %s", session_id)
        return True

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def close_all(self) -> None:
        for session_id in self.session_ids():
            self.destroy(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
