"""Composition root for the realtime messaging components.

One :class:`MessagingHub` is built at application startup, kept on
``app.state`` and closed at shutdown. Transport endpoints only ever talk to
the hub: they hand it new connections, raw frames and disconnects.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from athlinked.core.errors import MessagingError
from athlinked.schemas.events import Event, WsInbound
from athlinked.services.delivery import DeliveryEngine
from athlinked.services.emitter import EventEmitter, Transport
from athlinked.services.message_store import MessageStore
from athlinked.services.registry import ConnectionRegistry
from athlinked.services.sync import ConversationSync

logger = logging.getLogger(__name__)


class MessagingHub:
    """Owns the registry, emitter, store, sync and delivery engine."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        require_token: bool = False,
        max_length: int = 5000,
    ) -> None:
        self.registry = ConnectionRegistry()
        self.emitter = EventEmitter()
        self.store = MessageStore(session_factory)
        self.sync = ConversationSync(self.store, self.registry, self.emitter)
        self.delivery = DeliveryEngine(
            self.store,
            self.registry,
            self.emitter,
            self.sync,
            require_token=require_token,
            max_length=max_length,
        )

    def connect(self, transport: Transport) -> str:
        """Register a newly accepted transport and return its connection id."""
        connection_id = uuid.uuid4().hex
        self.registry.connect(connection_id)
        self.emitter.attach(connection_id, transport)
        logger.debug("Connection %s opened", connection_id)
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """Forget a connection. Its user goes offline with its last connection."""
        connection = self.registry.unbind(connection_id)
        self.emitter.detach(connection_id)
        if connection is not None and connection.user_id is not None:
            logger.info("User %s disconnected from %s", connection.user_id, connection_id)

    async def dispatch(self, connection_id: str, frame: Any) -> None:
        """Route one raw client frame to its handler."""
        try:
            inbound = WsInbound.model_validate(frame)
        except ValidationError:
            await self.emitter.emit(connection_id, Event.ERROR, {"message": "Malformed frame"})
            return

        try:
            result = await self._route(connection_id, inbound)
        except MessagingError as exc:
            await self._ack(connection_id, inbound.ack, {"success": False, "error": exc.message})
            return
        await self._ack(connection_id, inbound.ack, {"success": True, **result})

    async def close(self) -> None:
        """Drop every connection; the transports are closed by their endpoints."""
        count = len(self.registry)
        self.registry.clear()
        self.emitter.clear()
        logger.info("Messaging hub closed (%d connections dropped)", count)

    async def _route(self, connection_id: str, inbound: WsInbound) -> dict[str, Any]:
        if inbound.event == Event.USER_ID.value:
            return await self.delivery.announce(connection_id, inbound.data)

        if inbound.event == Event.SEND_MESSAGE.value:
            payload = await self.delivery.send_message(connection_id, inbound.data)
            return {"message_id": payload.message_id, "conversation_id": payload.conversation_id}

        if inbound.event == Event.MARK_READ.value:
            await self.delivery.mark_read(connection_id, inbound.data)
            return {}

        logger.debug("Unknown event %r from %s", inbound.event, connection_id)
        message = f"Unknown event: {inbound.event}"
        await self.emitter.emit(connection_id, Event.ERROR, {"message": message})
        raise MessagingError(message)

    async def _ack(self, connection_id: str, token: str | None, data: dict[str, Any]) -> None:
        if token is None:
            return
        await self.emitter.emit(connection_id, Event.ACK, {"ack": token, **data})
