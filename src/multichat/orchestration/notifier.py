"""
Update fan-out for session and sync-state observers.

Each subscriber owns an unbounded queue, so updates are delivered to every
observer in exactly the order they were published.
"""

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpdateNotifier(Generic[T]):
    """Publishes snapshots to any number of queue subscribers."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: set[asyncio.Queue] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> "asyncio.Queue[T | None]":
        """
        Register a new observer.

        The queue receives every subsequent update; ``None`` marks the end
        of the stream once the notifier is closed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(None)
        else:
            self._listeners.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._listeners.discard(queue)

    def publish(self, update: T) -> None:
        if self._closed:
            return
        for queue in self._listeners:
            queue.put_nowait(update)

    def close(self) -> None:
        """Stop publishing and signal end-of-stream to every observer."""
        if self._closed:
            return
        self._closed = True
        listeners, self._listeners = self._listeners, set()
        for queue in listeners:
            queue.put_nowait(None)
        logger.debug(f"Closed notifier {self.name} ({len(listeners)} listeners)")

    def __len__(self) -> int:
        return len(self._listeners)
