"""
Session registry.

The registry is the sole owner of ChatSession objects and the only place
that creates or destroys session ids. Other components hold ids and look
sessions up here.
"""

import logging
from collections.abc import Callable, Iterator

from .adapters import Resolver
from .session import ChatSession
from .session_manager import generate_session_id
from .types import SessionNotFoundError

logger = logging.getLogger(__name__)

RemovalListener = Callable[[str], None]


class SessionRegistry:
    """Owns the active sessions, in creation order."""

    def __init__(
        self,
        resolver: Resolver,
        default_model: str,
        *,
        turn_timeout: float | None = None,
    ) -> None:
        self._resolver = resolver
        self.default_model = default_model
        self._turn_timeout = turn_timeout
        # dicts keep insertion order, which is creation order here
        self._sessions: dict[str, ChatSession] = {}
        self._removal_listeners: list[RemovalListener] = []

    def add_removal_listener(self, listener: RemovalListener) -> None:
        """Call ``listener(session_id)`` synchronously whenever a session is removed."""
        self._removal_listeners.append(listener)

    def create(self, model_id: str | None = None) -> ChatSession:
        """Create an idle session with empty history."""
        session_id = generate_session_id(set(self._sessions))
        session = ChatSession(
            session_id,
            model_id or self.default_model,
            self._resolver,
            turn_timeout=self._turn_timeout,
        )
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id} with model {session.model_id}")
        return session

    def remove(self, session_id: str) -> None:
        """
        Remove a session, cancelling its in-flight turn.

        Unknown ids are ignored.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return

        session.close()
        for listener in self._removal_listeners:
            listener(session_id)
        logger.info(f"Removed session {session_id}")

    def get(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> ChatSession:
        """Like ``get`` but raises SessionNotFoundError for unknown ids."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list(self) -> list[ChatSession]:
        return list(self._sessions.values())

    def clear(self) -> None:
        """Remove every session."""
        for session_id in list(self._sessions):
            self.remove(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[ChatSession]:
        return iter(self.list())
