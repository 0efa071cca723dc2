# src/athlinked/schemas/events.py
"""Realtime event names and the JSON envelope carried over the WebSocket."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field


class Event(str, enum.Enum):
    """Event names shared by server and clients."""

    # client -> server
    USER_ID = "userId"
    SEND_MESSAGE = "send_message"
    MARK_READ = "mark_read"

    # server -> client
    RECEIVE_MESSAGE = "receive_message"
    MESSAGE_DELIVERED = "message_delivered"
    MESSAGES_READ = "messages_read"
    CONVERSATION_UPDATED = "conversation_updated"
    MESSAGE_COUNT_UPDATE = "message_count_update"
    ERROR = "error"
    ACK = "ack"


class WsInbound(BaseModel):
    """Client -> server frame."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    ack: str | None = None


class WsOutbound(BaseModel):
    """Server -> client frame."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
