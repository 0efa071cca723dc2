# src/athlinked/services/__init__.py
"""Realtime messaging services."""

from .delivery import DeliveryEngine
from .emitter import EventEmitter, Transport
from .hub import MessagingHub
from .message_store import MessageStore, conversation_id_for, total_unread
from .registry import Connection, ConnectionRegistry
from .sync import ConversationSync

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "ConversationSync",
    "DeliveryEngine",
    "EventEmitter",
    "MessageStore",
    "MessagingHub",
    "Transport",
    "conversation_id_for",
    "total_unread",
]
