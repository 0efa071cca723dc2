# src/athlinked/schemas/conversation.py
"""Conversation-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ConversationSummary(BaseModel):
    """One row of a user's conversation list."""

    conversation_id: str
    other_user_id: str
    last_message: str | None = None
    last_message_time: datetime | None = None
    unread_count: int = 0


class ConversationCreate(BaseModel):
    """Schema for opening (or re-opening) a conversation with another user."""

    other_user_id: str = Field(..., min_length=1, description="User to talk to")


class UnreadCountResponse(BaseModel):
    """Total unread messages across all of a user's conversations."""

    unread_count: int
    count: int


class MarkReadResponse(BaseModel):
    """Result of a read-acknowledgement."""

    success: bool = True
    conversation_id: str
    sender_id: str
