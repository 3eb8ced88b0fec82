"""
Core models for Multi Chat.

This module contains the value types shared by the provider clients and the
orchestration engine: chat messages, session lifecycle states and the
immutable snapshots handed to observers.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class SessionState(str, Enum):
    """Lifecycle state of a chat session."""
    IDLE = "idle"
    AWAITING = "awaiting"
    STREAMING = "streaming"
    FAILED = "failed"
    COMPLETED = "completed"

    @property
    def is_busy(self) -> bool:
        """Whether a request is currently in flight."""
        return self in (SessionState.AWAITING, SessionState.STREAMING)


class Message(BaseModel):
    """Immutable chat message exchanged with a model."""
    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="Message role (user or assistant)")
    content: str = Field(..., description="Message content")

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    def to_dict(self) -> dict[str, str]:
        """Plain role/content mapping used by OpenAI-style payloads."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Observable state of one session at a point in time.

    Snapshots are what subscribers receive; they never share mutable state
    with the session that produced them.
    """

    session_id: str
    model_id: str
    history: tuple[Message, ...]
    state: SessionState
    draft: str | None = None
    last_fault: str | None = None
    sync_member: bool = False


@dataclass(frozen=True)
class SyncSnapshot:
    """Observable state of the shared broadcast composer."""

    shared_input: str
    synced_session_ids: tuple[str, ...]

    @property
    def is_sync_enabled(self) -> bool:
        return bool(self.synced_session_ids)
