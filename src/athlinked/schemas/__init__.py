# src/athlinked/schemas/__init__.py
"""
Pydantic schemas for realtime events and REST request/response models.
"""

from .conversation import (
    ConversationCreate,
    ConversationSummary,
    MarkReadResponse,
    UnreadCountResponse,
)
from .events import Event, WsInbound, WsOutbound
from .message import (
    MediaMessage,
    MessagePayload,
    MessageView,
    OutboundMessage,
    PostShareMessage,
    SendMessageRequest,
    TextMessage,
    parse_send_request,
)

__all__ = [
    "ConversationCreate", "ConversationSummary", "MarkReadResponse", "UnreadCountResponse",
    "Event", "WsInbound", "WsOutbound",
    "MediaMessage", "MessagePayload", "MessageView", "OutboundMessage",
    "PostShareMessage", "SendMessageRequest", "TextMessage", "parse_send_request",
]
