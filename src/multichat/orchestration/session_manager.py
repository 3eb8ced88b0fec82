"""
Session id utilities for conversation orchestration.

Session ids are opaque to the presentation layer and unique within a registry.
"""

import logging
from uuid import uuid4

logger = logging.getLogger(__name__)

SESSION_ID_PREFIX = "chat-"


def generate_session_id(taken: set[str] | frozenset[str] = frozenset()) -> str:
    """
    Generate a unique session id.

    Format: chat-{uuid8}
    Example: chat-a1b2c3d4

    Args:
        taken: Ids already in use; the result is guaranteed not to be one

    Returns:
        Unique session identifier
    """
    while True:
        session_id = f"{SESSION_ID_PREFIX}{uuid4().hex[:8]}"
        if session_id not in taken:
            break

    logger.debug(f"Generated session ID: {session_id}")
    return session_id

