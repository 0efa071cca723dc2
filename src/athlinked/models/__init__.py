# src/athlinked/models/__init__.py
"""SQLAlchemy models for the messaging core."""

from .conversation import Conversation, ConversationParticipant
from .message import Message, MessageType

__all__ = [
    "Conversation", "ConversationParticipant",
    "Message", "MessageType",
]
