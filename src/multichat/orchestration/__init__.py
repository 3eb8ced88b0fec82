"""
Conversation orchestration engine.

This module provides the ChatOrchestrator and the components it composes:
model adapters, the response assembler, chat sessions, the session registry
and the sync broadcast controller.
"""

from .adapters import AdapterResolver, ModelAdapter
from .assembler import ResponseAssembler, fault_reason, with_deadline
from .orchestrator import (
    ChatOrchestrator,
    get_chat_orchestrator,
    reset_chat_orchestrator,
)
from .registry import SessionRegistry
from .session import ChatSession
from .session_manager import generate_session_id
from .sync import SyncBroadcastController
from .types import (
    Done,
    EmptyMessageError,
    Fault,
    OrchestrationError,
    Progress,
    SessionBusyError,
    SessionNotFoundError,
    TurnTimeoutError,
)

__all__ = [
    "ChatOrchestrator",
    "get_chat_orchestrator",
    "reset_chat_orchestrator",
    "AdapterResolver",
    "ModelAdapter",
    "ResponseAssembler",
    "fault_reason",
    "with_deadline",
    "SessionRegistry",
    "ChatSession",
    "SyncBroadcastController",
    "generate_session_id",
    "Progress",
    "Done",
    "Fault",
    "OrchestrationError",
    "SessionBusyError",
    "EmptyMessageError",
    "SessionNotFoundError",
    "TurnTimeoutError",
]
