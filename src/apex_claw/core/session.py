"""Session manager mapping owner ids to agent sessions."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable

from apex_claw.log import get_logger

if TYPE_CHECKING:
    from apex_claw.ai.session import AgentSession

logger = get_logger(__name__)

SessionFactory = Callable[[str], "AgentSession"]


class SessionManager:
    """Keeps one AgentSession per owner for the lifetime of the process."""

    def __init__(self, factory: SessionFactory):
        self._factory = factory
        self._lock = threading.Lock()
        self._sessions: dict[str, AgentSession] = {}

    def get_or_create(self, owner_id: str) -> AgentSession:
        with self._lock:
            session = self._sessions.get(owner_id)
            if session is None:
                session = self._factory(owner_id)
                self._sessions[owner_id] = session
                logger.info("session_created", owner_id=owner_id)
            return session

    def get(self, owner_id: str) -> AgentSession | None:
        with self._lock:
            return self._sessions.get(owner_id)

    def reset(self, owner_id: str) -> AgentSession:
        """Truncate the owner's history back to the system prompt."""
        session = self.get_or_create(owner_id)
        session.reset()
        return session

    def drop(self, owner_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(owner_id, None) is not None

    def all(self) -> list[AgentSession]:
        with self._lock:
            return list(self._sessions.values())
