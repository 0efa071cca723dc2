# src/athlinked/api/v1/endpoints/messages.py
"""Conversation and message history endpoints for the AthLinked API.

Sending happens over the realtime socket; these endpoints serve the read
side and the read-acknowledgement.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query

from athlinked.core.settings import settings
from athlinked.schemas.conversation import (
    ConversationCreate,
    ConversationSummary,
    MarkReadResponse,
    UnreadCountResponse,
)
from athlinked.schemas.message import MessageView
from athlinked.services.message_store import total_unread

from ..dependencies import CurrentUserIdDep, HubDep

router = APIRouter(prefix="/messages", tags=["messages"])

MAX_PAGE_SIZE = 100


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    current_user_id: CurrentUserIdDep,
    hub: HubDep,
) -> list[ConversationSummary]:
    """List the current user's conversations, most recently active first."""
    return await asyncio.to_thread(hub.store.get_conversations, current_user_id)


@router.post("/conversations", response_model=ConversationSummary)
async def open_conversation(
    payload: ConversationCreate,
    current_user_id: CurrentUserIdDep,
    hub: HubDep,
) -> ConversationSummary:
    """Get or create the conversation with another user."""
    return await asyncio.to_thread(
        hub.store.get_or_create_conversation, current_user_id, payload.other_user_id
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user_id: CurrentUserIdDep,
    hub: HubDep,
) -> UnreadCountResponse:
    """Return the total unread count across all conversations."""
    summaries = await asyncio.to_thread(hub.store.get_conversations, current_user_id)
    count = total_unread(summaries)
    return UnreadCountResponse(unread_count=count, count=count)


@router.get("/{conversation_id}", response_model=list[MessageView])
async def list_messages(
    conversation_id: str,
    current_user_id: CurrentUserIdDep,
    hub: HubDep,
    limit: int = Query(default=settings.history_page_size, ge=1, le=MAX_PAGE_SIZE),
    before: int | None = Query(default=None, ge=1, description="Exclusive upper sequence bound"),
) -> list[MessageView]:
    """Return one page of conversation history in ascending order."""
    return await asyncio.to_thread(
        hub.store.get_messages,
        conversation_id,
        current_user_id,
        limit=limit,
        before=before,
    )


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: str,
    current_user_id: CurrentUserIdDep,
    hub: HubDep,
) -> MarkReadResponse:
    """Mark every message in the conversation as read by the current user."""
    other_user_id = await hub.delivery.acknowledge_read(current_user_id, conversation_id)
    return MarkReadResponse(conversation_id=conversation_id, sender_id=other_user_id)
