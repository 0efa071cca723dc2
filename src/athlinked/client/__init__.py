# src/athlinked/client/__init__.py
"""Client-side session controller."""

from .session import (
    ClientSession,
    ClientTransport,
    LocalConversation,
    LocalMessage,
    SessionState,
    SessionStateError,
)

__all__ = [
    "ClientSession",
    "ClientTransport",
    "LocalConversation",
    "LocalMessage",
    "SessionState",
    "SessionStateError",
]
