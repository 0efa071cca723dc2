"""Delivery engine: validates, persists and fans out direct messages.

Each public handler is an error boundary for one client event. Any failure is
reported to the originating connection as a single ``error`` event and then
re-raised as a :class:`MessagingError` so the transport layer can answer an
acknowledgement. Internal details never reach the client.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from athlinked.core.errors import (
    InvalidRequestError,
    MessagingError,
    StoreFailureError,
    UnauthenticatedError,
)
from athlinked.core.security import decode_subject
from athlinked.schemas.events import Event
from athlinked.schemas.message import MessagePayload, parse_send_request
from athlinked.services.emitter import EventEmitter
from athlinked.services.message_store import MessageStore
from athlinked.services.registry import ConnectionRegistry
from athlinked.services.sync import ConversationSync

logger = logging.getLogger(__name__)

SEND_FAILED = "Failed to send message"
READ_FAILED = "Failed to mark messages as read"
ANNOUNCE_FAILED = "Failed to register connection"

T = TypeVar("T")


class DeliveryEngine:
    """Handles ``userId``, ``send_message`` and ``mark_read`` for one process."""

    def __init__(
        self,
        store: MessageStore,
        registry: ConnectionRegistry,
        emitter: EventEmitter,
        sync: ConversationSync,
        *,
        require_token: bool = False,
        max_length: int = 5000,
    ) -> None:
        self.store = store
        self.registry = registry
        self.emitter = emitter
        self.sync = sync
        self.require_token = require_token
        self.max_length = max_length

    async def announce(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Bind ``connection_id`` to the announced user id.

        Re-announcing as a different user moves the connection; the last
        announcement wins.
        """
        return await self._guard(connection_id, ANNOUNCE_FAILED, self._announce(connection_id, data))

    async def send_message(self, connection_id: str, data: dict[str, Any]) -> MessagePayload:
        """Persist a message from ``connection_id`` and deliver it to both parties."""
        return await self._guard(connection_id, SEND_FAILED, self._send(connection_id, data))

    async def mark_read(self, connection_id: str, data: dict[str, Any]) -> str:
        """Acknowledge that the announced user has read a conversation."""
        return await self._guard(connection_id, READ_FAILED, self._mark_read(connection_id, data))

    async def acknowledge_read(self, reader_id: str, conversation_id: str) -> str:
        """Reset ``reader_id``'s unread count and notify both participants.

        Shared by the ``mark_read`` event and the REST read endpoint.

        Returns:
            The id of the other participant.
        """
        other_user_id = await asyncio.to_thread(self.store.mark_as_read, conversation_id, reader_id)

        await self.emitter.emit_to_connections(
            self.registry.connections_for(other_user_id),
            Event.MESSAGES_READ,
            {"conversationId": conversation_id, "readerId": reader_id},
        )
        await self._sync_quietly(reader_id, conversation_id)
        return other_user_id

    async def _announce(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        user_id = data.get("userId")
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidRequestError("Missing userId")

        if self.require_token:
            token = data.get("token")
            if not isinstance(token, str) or not token:
                raise UnauthenticatedError("Missing token")
            if decode_subject(token) != user_id:
                raise UnauthenticatedError("Token does not match userId")

        previous = self.registry.bind(connection_id, user_id)
        if previous is not None and previous != user_id:
            logger.warning(
                "Connection %s re-announced as %s (was %s)", connection_id, user_id, previous
            )
        else:
            logger.info("User %s connected on %s", user_id, connection_id)
        return {"userId": user_id}

    async def _send(self, connection_id: str, data: dict[str, Any]) -> MessagePayload:
        outbound = parse_send_request(data, max_length=self.max_length)
        sender_id = self._require_user(connection_id)
        receiver_id = outbound.receiver_id
        if receiver_id == sender_id:
            raise InvalidRequestError("Cannot send a message to yourself")

        payload = await asyncio.to_thread(self.store.send_message, sender_id, outbound)

        receiver_connections = self.registry.connections_for(receiver_id)
        receiver_online = bool(receiver_connections)

        await self.emitter.emit_to_connections(
            receiver_connections, Event.RECEIVE_MESSAGE, payload.to_event()
        )
        await self.emitter.emit_to_connections(
            self.registry.connections_for(sender_id),
            Event.RECEIVE_MESSAGE,
            payload.to_event(is_delivered=receiver_online),
        )

        await self._sync_quietly(receiver_id, payload.conversation_id)
        await self._sync_quietly(sender_id, payload.conversation_id)

        if receiver_online:
            await self.emitter.emit(
                connection_id,
                Event.MESSAGE_DELIVERED,
                {"message_id": payload.message_id, "conversation_id": payload.conversation_id},
            )
        return payload

    async def _mark_read(self, connection_id: str, data: dict[str, Any]) -> str:
        reader_id = self._require_user(connection_id)
        conversation_id = data.get("conversationId") or data.get("conversation_id")
        if not isinstance(conversation_id, str) or not conversation_id:
            raise InvalidRequestError("Missing conversationId")
        return await self.acknowledge_read(reader_id, conversation_id)

    def _require_user(self, connection_id: str) -> str:
        user_id = self.registry.user_for(connection_id)
        if user_id is None:
            raise UnauthenticatedError("Connection has not announced a user id")
        return user_id

    async def _sync_quietly(self, user_id: str, conversation_id: str) -> None:
        # The change is already committed; a failed refresh must not undo it.
        try:
            await self.sync.sync_participant(user_id, conversation_id)
        except StoreFailureError as exc:
            logger.warning("Could not sync user %s: %s", user_id, exc)

    async def _guard(self, connection_id: str, fallback: str, action: Awaitable[T]) -> T:
        try:
            return await action
        except StoreFailureError as exc:
            await self._report(connection_id, fallback)
            raise StoreFailureError(fallback) from exc
        except MessagingError as exc:
            logger.info("Rejected event from %s: %s", connection_id, exc.message)
            await self._report(connection_id, exc.message)
            raise
        except Exception as exc:
            logger.exception("Unexpected failure handling event from %s", connection_id)
            await self._report(connection_id, fallback)
            raise MessagingError(fallback) from exc

    async def _report(self, connection_id: str, message: str) -> None:
        await self.emitter.emit(connection_id, Event.ERROR, {"message": message})

