"""
ChatOrchestrator: the conversation orchestration engine.

This module provides the composition root the presentation layer talks to.
It wires the model catalog, adapter resolver, session registry and sync
broadcast controller together and exposes the engine's operations.
"""

import asyncio
import logging
import threading
from typing import Any, cast

from ..config.model_catalog import ModelCatalog, ModelEntry, load_model_catalog
from ..config.settings import AppSettings, get_settings
from ..core.models import SessionSnapshot, SessionState, SyncSnapshot
from .adapters import AdapterResolver, Resolver
from .registry import SessionRegistry
from .sync import SyncBroadcastController

logger = logging.getLogger(__name__)

# Global orchestrator instance and lock for thread-safe singleton
_global_orchestrator: "ChatOrchestrator | None" = None
_orchestrator_lock = threading.Lock()


class ChatOrchestrator:
    """
    Side-by-side chat engine.

    All operations are synchronous except that ``send`` and ``broadcast``
    start asyncio tasks; they must therefore be called from a running event
    loop. State changes are observed through ``subscribe`` and
    ``subscribe_sync``.
    """

    def __init__(
        self,
        catalog: ModelCatalog | None = None,
        resolver: Resolver | None = None,
        settings: AppSettings | None = None,
    ):
        """
        Initialize the engine.

        Args:
            catalog: Model catalog. If None, loads ``settings.catalog_path``
                or the built-in catalog.
            resolver: Adapter resolver. If None, builds an AdapterResolver
                over the catalog using the configured provider clients.
            settings: Application settings. If None, uses global settings.
        """
        self.settings = settings or get_settings()
        self.catalog = catalog or load_model_catalog(self.settings.catalog_path)
        self.resolver = resolver or AdapterResolver(self.catalog, self.settings)

        default_model = self.settings.engine.default_model
        # Fail fast on a misconfigured default
        self.catalog.get(default_model)

        self.registry = SessionRegistry(
            self.resolver,
            default_model,
            turn_timeout=self.settings.engine.turn_timeout,
        )
        self.sync = SyncBroadcastController(self.registry)

        logger.debug("ChatOrchestrator initialized")

    # --- Session lifecycle -----------------------------------------------

    def create_session(self, model_id: str | None = None) -> SessionSnapshot:
        """
        Create a new idle session.

        Raises:
            UnknownModelError: If ``model_id`` is not in the catalog
        """
        if model_id is not None:
            self.catalog.get(model_id)
        return self.registry.create(model_id).snapshot()

    def remove_session(self, session_id: str) -> None:
        """Remove a session, cancelling any in-flight reply. Unknown ids are ignored."""
        self.registry.remove(session_id)

    def set_model(self, session_id: str, model_id: str) -> SessionSnapshot:
        """
        Switch a session's model, clearing its history.

        Callers must confirm with the user before calling this on a session
        with history; the engine does not ask.

        Raises:
            UnknownModelError: If ``model_id`` is not in the catalog
            SessionNotFoundError: If the session does not exist
        """
        self.catalog.get(model_id)
        session = self.registry.require(session_id)
        session.set_model(model_id)
        return session.snapshot()

    def get_session(self, session_id: str) -> SessionSnapshot | None:
        session = self.registry.get(session_id)
        return session.snapshot() if session else None

    def list_sessions(self) -> list[SessionSnapshot]:
        return [session.snapshot() for session in self.registry.list()]

    # --- Messaging -------------------------------------------------------

    def send(self, session_id: str, text: str) -> "asyncio.Task[SessionState]":
        """
        Send ``text`` to one session.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionBusyError: If the session is awaiting or streaming
            EmptyMessageError: If ``text`` is blank
        """
        return self.registry.require(session_id).send(text)

    def set_sync_member(self, session_id: str, member: bool) -> SyncSnapshot:
        self.sync.set_sync_member(session_id, member)
        return self.sync.snapshot()

    def set_shared_input(self, text: str) -> SyncSnapshot:
        self.sync.set_shared_input(text)
        return self.sync.snapshot()

    def broadcast(self) -> "dict[str, asyncio.Task[SessionState]]":
        """Send the shared input to every idle synced session."""
        return self.sync.broadcast()

    def sync_state(self) -> SyncSnapshot:
        return self.sync.snapshot()

    # --- Observation -----------------------------------------------------

    def subscribe(self, session_id: str) -> "asyncio.Queue[SessionSnapshot | None]":
        return self.registry.require(session_id).subscribe()

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        session = self.registry.get(session_id)
        if session is not None:
            session.unsubscribe(queue)

    def subscribe_sync(self) -> "asyncio.Queue[SyncSnapshot | None]":
        return self.sync.subscribe()

    def describe_model(self, model_id: str) -> ModelEntry:
        """Catalog metadata for the placeholder shown by an empty session."""
        return self.catalog.get(model_id)

    def available_models(self) -> list[ModelEntry]:
        return list(self.catalog.entries)

    async def wait_idle(self) -> None:
        """Wait until every in-flight turn has finished."""
        await asyncio.gather(*(session.wait() for session in self.registry.list()))

    def get_stats(self) -> dict[str, Any]:
        """Session counts for monitoring and debugging."""
        sessions = self.registry.list()
        return {
            "sessions": len(sessions),
            "busy_sessions": sum(1 for session in sessions if session.is_busy),
            "synced_sessions": len(self.sync.synced_session_ids),
            "sync_enabled": self.sync.is_sync_enabled,
        }

    # --- Shutdown --------------------------------------------------------

    async def aclose(self) -> None:
        """Remove every session and release provider clients."""
        self.registry.clear()
        self.sync.close()
        aclose = getattr(self.resolver, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.debug("ChatOrchestrator closed")

    async def __aenter__(self) -> "ChatOrchestrator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


def get_chat_orchestrator() -> ChatOrchestrator:
    """
    Get the global ChatOrchestrator instance.

    Uses a thread-safe, double-checked locking pattern for a consistent
    and performant singleton instance across the application.

    Returns:
        Global ChatOrchestrator instance
    """
    global _global_orchestrator
    if _global_orchestrator is None:
        with _orchestrator_lock:
            # Second check ensures that another thread didn't initialize
            # the instance while the current thread was waiting for the lock.
            if _global_orchestrator is None:
                _global_orchestrator = ChatOrchestrator()
                logger.debug("Created global ChatOrchestrator instance")
    return cast(ChatOrchestrator, _global_orchestrator)


def reset_chat_orchestrator() -> None:
    """
    Reset the global orchestrator instance.

    This is primarily used for testing to ensure clean state
    between test runs.
    """
    global _global_orchestrator
    with _orchestrator_lock:
        _global_orchestrator = None
        logger.debug("Reset global ChatOrchestrator instance")
