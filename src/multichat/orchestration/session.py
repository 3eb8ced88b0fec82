"""
Chat session and its request/response state machine.

A session owns one conversation: its history, selected model and lifecycle
state. Each send starts a turn, an asyncio task that streams the model's
reply through a fresh ResponseAssembler and applies the resulting events.

State transitions::

    idle --send--> awaiting --Progress--> streaming --Progress--> streaming
    awaiting/streaming --Done--> completed --> idle
    awaiting/streaming --Fault--> failed --> idle

Every transition publishes a SessionSnapshot to subscribers.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from ..core.models import Message, SessionSnapshot, SessionState
from .adapters import Resolver
from .assembler import ResponseAssembler, close_fragments, fault_reason, with_deadline
from .notifier import UpdateNotifier
from .types import (
    AssemblerEvent,
    Done,
    EmptyMessageError,
    Fault,
    Progress,
    SessionBusyError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)


class ChatSession:
    """One independent conversation thread."""

    def __init__(
        self,
        session_id: str,
        model_id: str,
        resolver: Resolver,
        *,
        turn_timeout: float | None = None,
    ) -> None:
        self.session_id = session_id
        self.model_id = model_id
        self.history: list[Message] = []
        self.state = SessionState.IDLE
        self.draft: str | None = None
        self.last_fault: str | None = None
        self.sync_member = False

        self._resolver = resolver
        self._turn_timeout = turn_timeout
        self._task: asyncio.Task | None = None
        self._notifier: UpdateNotifier[SessionSnapshot] = UpdateNotifier(
            f"session {session_id}"
        )
        self._closed = False

    # --- Observation -----------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self.state.is_busy

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            model_id=self.model_id,
            history=tuple(self.history),
            state=self.state,
            draft=self.draft,
            last_fault=self.last_fault,
            sync_member=self.sync_member,
        )

    def subscribe(self) -> "asyncio.Queue[SessionSnapshot | None]":
        """Receive a snapshot after every state change; ``None`` ends the stream."""
        return self._notifier.subscribe()

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._notifier.unsubscribe(queue)

    # --- Commands --------------------------------------------------------

    def send(self, text: str) -> "asyncio.Task[SessionState]":
        """
        Start a turn with ``text`` as the user's message.

        Must be called from within a running event loop. The returned task
        resolves to the turn outcome (``completed`` or ``failed``); provider
        faults never propagate through it.

        Raises:
            SessionBusyError: A turn is already in flight
            EmptyMessageError: ``text`` is blank
            SessionNotFoundError: The session has been removed
        """
        if self._closed:
            raise SessionNotFoundError(self.session_id)
        if self.state.is_busy:
            raise SessionBusyError(self.session_id, self.state.value)
        if not text or not text.strip():
            raise EmptyMessageError(self.session_id)

        loop = asyncio.get_running_loop()

        self.history.append(Message.user(text))
        self.draft = None
        self.last_fault = None
        self._transition(SessionState.AWAITING)

        self._task = loop.create_task(
            self._run_turn(tuple(self.history)), name=f"turn-{self.session_id}"
        )
        return self._task

    def set_model(self, model_id: str) -> None:
        """
        Switch to ``model_id``, discarding the conversation.

        Any in-flight turn is cancelled. Callers are responsible for
        confirming with the user when history is non-empty.
        """
        self._cancel_turn()
        previous = self.model_id
        self.model_id = model_id
        self.history.clear()
        self.draft = None
        self.last_fault = None
        logger.info(f"Session {self.session_id}: model {previous} -> {model_id}")
        self._transition(SessionState.IDLE)

    def set_sync_member(self, member: bool) -> None:
        if self.sync_member == member:
            return
        self.sync_member = member
        self._publish()

    def close(self) -> None:
        """Cancel in-flight work and end every subscriber's stream."""
        if self._closed:
            return
        self._closed = True
        self._cancel_turn()
        self._notifier.close()
        logger.debug(f"Session {self.session_id} closed")

    async def wait(self) -> None:
        """Wait for the in-flight turn, if any, to finish."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # --- Turn pipeline ---------------------------------------------------

    async def _run_turn(self, history: tuple[Message, ...]) -> SessionState:
        outcome = SessionState.FAILED
        fragments: AsyncIterator[str] = self._fragments(history)
        if self._turn_timeout is not None:
            fragments = with_deadline(fragments, self._turn_timeout)

        try:
            async for event in ResponseAssembler().run(fragments):
                outcome = self._apply(event) or outcome
        except asyncio.CancelledError:
            logger.debug(f"Session {self.session_id}: turn cancelled")
            raise
        except Exception as e:
            logger.exception(f"Session {self.session_id}: turn crashed")
            self._apply(Fault(fault_reason(e)))
        finally:
            if self._task is asyncio.current_task():
                self._task = None

        return outcome

    async def _fragments(self, history: tuple[Message, ...]) -> AsyncIterator[str]:
        # Resolution happens inside the pipeline so configuration problems
        # found at call time surface as a fault on this session only.
        capability = self._resolver.adapt(self.model_id)
        stream = capability.stream(history)
        try:
            async for fragment in stream:
                yield fragment
        finally:
            await close_fragments(stream)

    def _apply(self, event: AssemblerEvent) -> SessionState | None:
        if self._closed:
            return None

        if isinstance(event, Progress):
            self.draft = event.text
            self._transition(SessionState.STREAMING)
            return None

        if isinstance(event, Done):
            self.history.append(Message.assistant(event.text))
            self.draft = None
            self._transition(SessionState.COMPLETED)
            self._transition(SessionState.IDLE)
            return SessionState.COMPLETED

        self.draft = None
        self.last_fault = event.reason
        logger.warning(f"Session {self.session_id} ({self.model_id}) failed: {event.reason}")
        self._transition(SessionState.FAILED)
        self._transition(SessionState.IDLE)
        return SessionState.FAILED

    def _transition(self, state: SessionState) -> None:
        if state != self.state:
            logger.debug(f"Session {self.session_id}: {self.state.value} -> {state.value}")
        self.state = state
        self._publish()

    def _publish(self) -> None:
        self._notifier.publish(self.snapshot())

    def _cancel_turn(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug(f"Session {self.session_id}: cancelled in-flight turn")

    def __repr__(self) -> str:
        return (
            f"ChatSession(id='{self.session_id}', model='{self.model_id}', "
            f"state='{self.state.value}', messages={len(self.history)})"
        )
