"""
Type definitions for conversation orchestration.

This module defines the events produced by the response assembler and the
exceptions raised synchronously by engine operations.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Progress:
    """The assistant message has grown; ``text`` is everything so far."""

    text: str


@dataclass(frozen=True)
class Done:
    """The fragment sequence ended normally; ``text`` is the full reply."""

    text: str


@dataclass(frozen=True)
class Fault:
    """The fragment sequence failed; ``reason`` is human readable."""

    reason: str


AssemblerEvent = Progress | Done | Fault


class OrchestrationError(Exception):
    """Base exception for protocol-usage faults raised by the engine."""

    def __init__(self, message: str, session_id: str | None = None):
        self.message = message
        self.session_id = session_id
        super().__init__(message)


class SessionBusyError(OrchestrationError):
    """A send was issued while the session still has a request in flight."""

    def __init__(self, session_id: str, state: str):
        super().__init__(
            f"Session {session_id} is busy ({state}); wait for the reply to finish",
            session_id=session_id,
        )
        self.state = state


class EmptyMessageError(OrchestrationError):
    """A send carried no text."""

    def __init__(self, session_id: str):
        super().__init__("Cannot send an empty message", session_id=session_id)


class SessionNotFoundError(OrchestrationError):
    """No session with the given id exists."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", session_id=session_id)


class TurnTimeoutError(Exception):
    """A turn did not finish within its deadline."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__(f"No complete reply within {seconds:g}s")
