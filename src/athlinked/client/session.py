# src/athlinked/client/session.py
"""Client-side session controller for the realtime messaging socket.

Drives the connection lifecycle of one signed-in user and reconciles server
events into local view state: the conversation list, the open conversation's
messages and the total unread badge.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any, Protocol

from athlinked.core.errors import InvalidRequestError
from athlinked.schemas.events import Event

logger = logging.getLogger(__name__)

TEMP_PREFIX = "temp-"


class SessionState(str, enum.Enum):
    """Connection lifecycle of a client session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ANNOUNCED = "announced"


class SessionStateError(RuntimeError):
    """Raised when an action needs an announced session and there is none."""


class ClientTransport(Protocol):
    """Socket used by the client; ``receive`` returns None once closed."""

    async def open(self) -> None: ...

    async def send(self, frame: dict[str, Any]) -> None: ...

    async def receive(self) -> dict[str, Any] | None: ...

    async def close(self) -> None: ...


@dataclass
class LocalMessage:
    """A message as held in the open conversation view."""

    message_id: str
    conversation_id: str | None
    sender_id: str
    receiver_id: str
    message: str | None = None
    media_url: str | None = None
    message_type: str = "text"
    post_data: dict[str, Any] | None = None
    created_at: str | None = None
    pending: bool = False
    failed: bool = False
    is_delivered: bool = False
    is_read_by_recipient: bool = False

    @property
    def is_temporary(self) -> bool:
        return self.message_id.startswith(TEMP_PREFIX)

    @classmethod
    def from_event(cls, data: dict[str, Any]) -> LocalMessage:
        return cls(
            message_id=data["message_id"],
            conversation_id=data.get("conversation_id"),
            sender_id=data["sender_id"],
            receiver_id=data["receiver_id"],
            message=data.get("message"),
            media_url=data.get("media_url"),
            message_type=data.get("message_type") or "text",
            post_data=data.get("post_data"),
            created_at=data.get("created_at"),
            is_delivered=bool(data.get("is_delivered")),
            is_read_by_recipient=bool(data.get("is_read_by_recipient")),
        )


@dataclass
class LocalConversation:
    """One entry of the local conversation list."""

    conversation_id: str
    other_user_id: str
    last_message: str | None = None
    last_message_time: str | None = None
    unread_count: int = 0

    @classmethod
    def from_event(cls, data: dict[str, Any]) -> LocalConversation:
        return cls(
            conversation_id=data["conversation_id"],
            other_user_id=data["other_user_id"],
            last_message=data.get("last_message"),
            last_message_time=data.get("last_message_time"),
            unread_count=int(data.get("unread_count") or 0),
        )


def preview_text(message: LocalMessage) -> str:
    """Return the conversation-list preview for ``message``."""
    if message.message:
        return message.message
    if message.post_data is not None:
        return "Shared a post"
    return "GIF" if message.message_type == "gif" else "Media"


class ClientSession:
    """State machine and view-state reconciler for one user's socket.

    States move ``DISCONNECTED -> CONNECTING -> CONNECTED -> ANNOUNCED``. The
    identity is announced as soon as the transport opens; after a disconnect
    the next :meth:`connect` announces again, since the server keeps no
    session to resume.
    """

    def __init__(self, user_id: str, transport: ClientTransport, token: str | None = None) -> None:
        self.user_id = user_id
        self.transport = transport
        self.token = token
        self.state = SessionState.DISCONNECTED

        self.conversations: list[LocalConversation] = []
        self.active_conversation_id: str | None = None
        self.active_other_user_id: str | None = None
        self.messages: list[LocalMessage] = []
        self.total_unread = 0
        self.last_error: str | None = None
        # Set when an event mentions a conversation not in the local list.
        self.needs_refresh = False
        # Unacknowledged sends by ack token, and server copies of own messages
        # that arrived before their ack.
        self._pending: dict[str, LocalMessage] = {}
        self._held: list[LocalMessage] = []

    async def connect(self) -> None:
        """Open the transport and announce the user id."""
        if self.state is not SessionState.DISCONNECTED:
            return

        self.state = SessionState.CONNECTING
        try:
            await self.transport.open()
        except Exception:
            self.state = SessionState.DISCONNECTED
            raise
        self.state = SessionState.CONNECTED

        announcement: dict[str, Any] = {"userId": self.user_id}
        if self.token:
            announcement["token"] = self.token
        await self.transport.send({"event": Event.USER_ID.value, "data": announcement})
        self.state = SessionState.ANNOUNCED
        logger.debug("Announced as %s", self.user_id)

    def handle_disconnect(self) -> None:
        """Drop to DISCONNECTED; unacknowledged sends can no longer be confirmed."""
        self.state = SessionState.DISCONNECTED
        for temp in self._pending.values():
            temp.pending = False
            temp.failed = True
        self._pending.clear()
        self._flush_held()

    async def close(self) -> None:
        await self.transport.close()
        self.handle_disconnect()

    async def send_message(
        self,
        receiver_id: str,
        body: str | None = None,
        media_url: str | None = None,
        message_type: str | None = None,
        post_data: dict[str, Any] | None = None,
    ) -> LocalMessage:
        """Emit ``send_message`` and show an optimistic copy in the open view.

        The temp id doubles as the frame's ack token, so the server's ack
        resolves exactly this send. Failed sends are not retried; the caller
        keeps the composer content.
        """
        self._require_announced()
        if not receiver_id:
            raise InvalidRequestError("Missing required fields")
        if not (body and body.strip()) and not media_url and post_data is None:
            raise InvalidRequestError("Missing required fields")

        conversation_id = (
            self.active_conversation_id if self.active_other_user_id == receiver_id else None
        )
        temp = LocalMessage(
            message_id=f"{TEMP_PREFIX}{uuid.uuid4()}",
            conversation_id=conversation_id,
            sender_id=self.user_id,
            receiver_id=receiver_id,
            message=body,
            media_url=media_url,
            message_type=message_type or "text",
            post_data=post_data,
            pending=True,
        )
        if conversation_id is not None:
            self.messages.append(temp)

        data: dict[str, Any] = {"receiverId": receiver_id}
        if conversation_id is not None:
            data["conversationId"] = conversation_id
        if body is not None:
            data["message"] = body
        if media_url is not None:
            data["media_url"] = media_url
        if message_type is not None:
            data["message_type"] = message_type
        if post_data is not None:
            data["post_data"] = post_data
        self._pending[temp.message_id] = temp
        await self.transport.send(
            {"event": Event.SEND_MESSAGE.value, "data": data, "ack": temp.message_id}
        )
        return temp

    async def mark_read(self, conversation_id: str) -> None:
        """Acknowledge a conversation as read and clear its local badge."""
        self._require_announced()
        await self.transport.send(
            {"event": Event.MARK_READ.value, "data": {"conversationId": conversation_id}}
        )
        summary = self._find_conversation(conversation_id)
        if summary is not None:
            summary.unread_count = 0

    def open_conversation(
        self,
        conversation_id: str,
        other_user_id: str,
        messages: Iterable[dict[str, Any] | LocalMessage] = (),
    ) -> None:
        """Switch the view to a conversation, seeding it with loaded history."""
        self.active_conversation_id = conversation_id
        self.active_other_user_id = other_user_id
        self.messages = [
            item if isinstance(item, LocalMessage) else LocalMessage.from_event(item)
            for item in messages
        ]

    def close_conversation(self) -> None:
        self.active_conversation_id = None
        self.active_other_user_id = None
        self.messages = []

    def set_conversations(self, conversations: Iterable[dict[str, Any]]) -> None:
        """Replace the local list with one fetched from the server."""
        self.conversations = [LocalConversation.from_event(item) for item in conversations]
        self.needs_refresh = False

    def handle_event(self, event: str, data: dict[str, Any]) -> None:
        """Apply one server event to local state."""
        if event == Event.RECEIVE_MESSAGE.value:
            self._on_receive_message(LocalMessage.from_event(data))
        elif event == Event.CONVERSATION_UPDATED.value:
            self._upsert_conversation(LocalConversation.from_event(data["conversation"]))
        elif event == Event.MESSAGE_COUNT_UPDATE.value:
            self.total_unread = int(data.get("count") or 0)
        elif event == Event.MESSAGE_DELIVERED.value:
            message = self._find_message(data.get("message_id"))
            if message is not None:
                message.is_delivered = True
        elif event == Event.MESSAGES_READ.value:
            if data.get("conversationId") == self.active_conversation_id:
                for message in self.messages:
                    if message.sender_id == self.user_id:
                        message.is_read_by_recipient = True
        elif event == Event.ERROR.value:
            self.last_error = data.get("message")
        elif event == Event.ACK.value:
            self._on_ack(data)
        else:
            logger.debug("Ignoring unknown event %r", event)

    async def run(self) -> None:
        """Pump transport frames into :meth:`handle_event` until disconnect."""
        while self.state is not SessionState.DISCONNECTED:
            frame = await self.transport.receive()
            if frame is None:
                self.handle_disconnect()
                break
            self.handle_event(frame.get("event", ""), frame.get("data") or {})

    def _on_receive_message(self, message: LocalMessage) -> None:
        own = message.sender_id == self.user_id
        if message.conversation_id == self.active_conversation_id:
            self._append_to_view(message, own)
            self._bump_conversation(message, count_unread=False)
        else:
            self._bump_conversation(message, count_unread=not own)

    def _append_to_view(self, message: LocalMessage, own: bool) -> None:
        existing = self._find_message(message.message_id)
        if existing is not None:
            existing.is_delivered = existing.is_delivered or message.is_delivered
            return

        if own and self._pending:
            # Claimed by the ack of our own send, or flushed if another tab sent it.
            if all(held.message_id != message.message_id for held in self._held):
                self._held.append(message)
            return
        self.messages.append(message)

    def _on_ack(self, data: dict[str, Any]) -> None:
        temp = self._pending.pop(data.get("ack") or "", None)
        if temp is None:
            return

        if not data.get("success"):
            temp.pending = False
            temp.failed = True
            self.last_error = data.get("error") or self.last_error
        else:
            self._confirm(temp, data.get("message_id"), data.get("conversation_id"))
        self._flush_held()

    def _confirm(
        self, temp: LocalMessage, message_id: str | None, conversation_id: str | None
    ) -> None:
        server_copy = next((held for held in self._held if held.message_id == message_id), None)
        if server_copy is not None:
            self._held.remove(server_copy)

        index = next((i for i, local in enumerate(self.messages) if local is temp), None)
        if index is None:
            if server_copy is not None:
                self.messages.append(server_copy)
            return
        if server_copy is not None:
            self.messages[index] = replace(server_copy, pending=False)
        else:
            temp.message_id = message_id or temp.message_id
            temp.conversation_id = conversation_id or temp.conversation_id
            temp.pending = False

    def _flush_held(self) -> None:
        for held in self._held:
            if self._find_message(held.message_id) is None:
                self.messages.append(held)
        self._held.clear()

    def _bump_conversation(self, message: LocalMessage, *, count_unread: bool) -> None:
        summary = self._find_conversation(message.conversation_id)
        if summary is None:
            self.needs_refresh = True
            return
        summary.last_message = preview_text(message)
        summary.last_message_time = message.created_at
        if count_unread:
            summary.unread_count += 1
        self._move_to_top(summary)

    def _upsert_conversation(self, conversation: LocalConversation) -> None:
        existing = self._find_conversation(conversation.conversation_id)
        if existing is not None:
            self.conversations.remove(existing)
        self.conversations.insert(0, conversation)

    def _move_to_top(self, summary: LocalConversation) -> None:
        self.conversations.remove(summary)
        self.conversations.insert(0, summary)

    def _find_conversation(self, conversation_id: str | None) -> LocalConversation | None:
        for summary in self.conversations:
            if summary.conversation_id == conversation_id:
                return summary
        return None

    def _find_message(self, message_id: str | None) -> LocalMessage | None:
        for message in self.messages:
            if message.message_id == message_id:
                return message
        return None

    def _require_announced(self) -> None:
        if self.state is not SessionState.ANNOUNCED:
            raise SessionStateError(f"Session is {self.state.value}, not announced")
