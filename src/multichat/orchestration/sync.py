"""
Sync broadcast controller.

Holds the shared composer text and the ids of sessions opted into sync.
Broadcasting fans the shared text out to every synced session that is idle;
busy sessions are skipped rather than queued, and one session's failure
never affects another's.
"""

import asyncio
import logging

from ..core.models import SessionState, SyncSnapshot
from .notifier import UpdateNotifier
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


class SyncBroadcastController:
    """Shared input plus the set of synced session ids."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry
        self.shared_input = ""
        self._synced_ids: set[str] = set()
        self._notifier: UpdateNotifier[SyncSnapshot] = UpdateNotifier("sync")
        registry.add_removal_listener(self._on_session_removed)

    @property
    def synced_session_ids(self) -> tuple[str, ...]:
        """Synced ids in session creation order."""
        return tuple(
            session.session_id
            for session in self._registry.list()
            if session.session_id in self._synced_ids
        )

    @property
    def is_sync_enabled(self) -> bool:
        return bool(self._synced_ids)

    def snapshot(self) -> SyncSnapshot:
        return SyncSnapshot(
            shared_input=self.shared_input,
            synced_session_ids=self.synced_session_ids,
        )

    def subscribe(self) -> "asyncio.Queue[SyncSnapshot | None]":
        return self._notifier.subscribe()

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._notifier.unsubscribe(queue)

    def set_sync_member(self, session_id: str, member: bool) -> None:
        """
        Opt a session into or out of sync.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = self._registry.require(session_id)
        session.set_sync_member(member)

        before = self.is_sync_enabled
        if member:
            self._synced_ids.add(session_id)
        else:
            self._synced_ids.discard(session_id)

        if before != self.is_sync_enabled:
            logger.info(f"Sync {'enabled' if self.is_sync_enabled else 'disabled'}")
        self._publish()

    def set_shared_input(self, text: str) -> None:
        self.shared_input = text
        self._publish()

    def broadcast(self) -> "dict[str, asyncio.Task[SessionState]]":
        """
        Send the shared input to every idle synced session.

        Returns the started turns keyed by session id. With no synced
        sessions or a blank shared input nothing is sent and the input is
        kept; otherwise the input is cleared once all sends are issued.
        """
        text = self.shared_input
        if not self._synced_ids or not text.strip():
            logger.debug("Broadcast skipped: nothing to send")
            return {}

        turns: dict[str, asyncio.Task[SessionState]] = {}
        skipped: list[str] = []
        for session_id in self.synced_session_ids:
            session = self._registry.get(session_id)
            if session is None or session.state != SessionState.IDLE:
                skipped.append(session_id)
                continue
            turns[session_id] = session.send(text)

        self.shared_input = ""
        logger.info(
            f"Broadcast to {len(turns)} session(s)"
            + (f", skipped busy: {', '.join(skipped)}" if skipped else "")
        )
        self._publish()
        return turns

    def close(self) -> None:
        self._notifier.close()

    def _on_session_removed(self, session_id: str) -> None:
        if session_id in self._synced_ids:
            self._synced_ids.discard(session_id)
            self._publish()

    def _publish(self) -> None:
        self._notifier.publish(self.snapshot())
