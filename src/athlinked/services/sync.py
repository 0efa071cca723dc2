"""Conversation-state synchronization across a user's live connections.

After any change to a conversation, every open tab and device of each
participant is brought back in line with durable state: the changed
conversation summary and the user's total unread count are recomputed from
the store and pushed to each connection.
"""

from __future__ import annotations

import asyncio
import logging

from athlinked.schemas.events import Event
from athlinked.services.emitter import EventEmitter
from athlinked.services.message_store import MessageStore, total_unread
from athlinked.services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class ConversationSync:
    """Recomputes and pushes conversation summaries and unread totals."""

    def __init__(
        self,
        store: MessageStore,
        registry: ConnectionRegistry,
        emitter: EventEmitter,
    ) -> None:
        self.store = store
        self.registry = registry
        self.emitter = emitter

    async def sync_participant(self, user_id: str, conversation_id: str | None = None) -> int | None:
        """Push fresh conversation state to every live connection of ``user_id``.

        Args:
            user_id: Participant to synchronize.
            conversation_id: Conversation that changed. When given and present
                in the user's list, a ``conversation_updated`` event is sent
                for it before the unread total.

        Returns:
            The user's total unread count, or None if the user is offline and
            nothing was fetched.
        """
        if not self.registry.is_online(user_id):
            return None

        summaries = await asyncio.to_thread(self.store.get_conversations, user_id)
        by_id = {summary.conversation_id: summary for summary in summaries}
        count = total_unread(summaries)

        # The store call suspended this handler; connections may have changed.
        connections = self.registry.connections_for(user_id)
        if not connections:
            return count

        summary = by_id.get(conversation_id) if conversation_id is not None else None
        if summary is not None:
            await self.emitter.emit_to_connections(
                connections,
                Event.CONVERSATION_UPDATED,
                {"conversation": summary.model_dump(mode="json")},
            )
        elif conversation_id is not None:
            logger.debug("Conversation %s not in list of user %s", conversation_id, user_id)

        await self.emitter.emit_to_connections(
            connections,
            Event.MESSAGE_COUNT_UPDATE,
            {"count": count},
        )
        return count
