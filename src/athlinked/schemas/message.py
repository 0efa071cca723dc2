# src/athlinked/schemas/message.py
"""Message payload schemas.

Inbound ``send_message`` payloads arrive with several optional fields. They
are parsed once at the boundary into one of three content variants, each
carrying only what that kind of message needs, so nothing downstream has to
re-check which combination of fields was supplied.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from athlinked.core.errors import InvalidRequestError
from athlinked.db.time import as_utc
from athlinked.models.message import MEDIA_TYPES, Message, MessageType

_IMAGE_RE = re.compile(r"\.(jpg|jpeg|png|webp)(\?.*)?$", re.IGNORECASE)
_GIF_RE = re.compile(r"\.gif(\?.*)?$", re.IGNORECASE)
_VIDEO_RE = re.compile(r"\.(mp4|mov|webm|ogg)(\?.*)?$", re.IGNORECASE)


def infer_media_type(media_url: str) -> MessageType:
    """Guess the media kind of ``media_url`` from its host and extension."""
    if "giphy.com" in media_url.lower() or _GIF_RE.search(media_url):
        return MessageType.GIF
    if _IMAGE_RE.search(media_url):
        return MessageType.IMAGE
    if _VIDEO_RE.search(media_url):
        return MessageType.VIDEO
    return MessageType.FILE


class TextMessage(BaseModel):
    """Plain text message."""

    kind: Literal["text"] = "text"
    body: str

    @property
    def message_type(self) -> MessageType:
        return MessageType.TEXT

    def preview(self) -> str:
        return self.body

    def columns(self) -> dict[str, Any]:
        return {
            "body": self.body,
            "media_url": None,
            "message_type": self.message_type.value,
            "post_data": None,
        }


class MediaMessage(BaseModel):
    """Image, video, file or GIF, optionally captioned."""

    kind: Literal["media"] = "media"
    media_url: str
    media_type: MessageType
    caption: str | None = None

    @property
    def message_type(self) -> MessageType:
        return self.media_type

    def preview(self) -> str:
        if self.caption:
            return self.caption
        return "GIF" if self.media_type is MessageType.GIF else "Media"

    def columns(self) -> dict[str, Any]:
        return {
            "body": self.caption,
            "media_url": self.media_url,
            "message_type": self.media_type.value,
            "post_data": None,
        }


class PostShareMessage(BaseModel):
    """A shared feed post, optionally with a note."""

    kind: Literal["post"] = "post"
    post_data: dict[str, Any]
    caption: str | None = None

    @property
    def message_type(self) -> MessageType:
        return MessageType.POST

    def preview(self) -> str:
        return self.caption or "Shared a post"

    def columns(self) -> dict[str, Any]:
        return {
            "body": self.caption,
            "media_url": None,
            "message_type": self.message_type.value,
            "post_data": self.post_data,
        }


MessageContent = Annotated[
    TextMessage | MediaMessage | PostShareMessage,
    Field(discriminator="kind"),
]


class SendMessageRequest(BaseModel):
    """Raw ``send_message`` payload as sent by clients."""

    conversation_id: str | None = Field(None, alias="conversationId")
    receiver_id: str | None = Field(None, alias="receiverId")
    message: str | None = None
    media_url: str | None = None
    message_type: MessageType | None = None
    post_data: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("post_data", mode="before")
    @classmethod
    def _decode_post_data(cls, value: object) -> object:
        # Older clients send the shared post as a JSON string.
        if isinstance(value, str):
            if not value.strip():
                return None
            return json.loads(value)
        return value

    @field_validator("conversation_id", "receiver_id", "message", "media_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class OutboundMessage(BaseModel):
    """A validated send request, ready for the delivery engine."""

    receiver_id: str
    conversation_id: str | None = None
    content: MessageContent


def parse_send_request(data: Any, *, max_length: int) -> OutboundMessage:
    """Validate a raw ``send_message`` payload into an :class:`OutboundMessage`.

    Raises:
        InvalidRequestError: If the receiver is missing, no content was
            supplied, or a field has the wrong shape.
    """
    try:
        request = SendMessageRequest.model_validate(data or {})
    except (ValidationError, ValueError) as exc:
        raise InvalidRequestError("Invalid message payload") from exc

    if request.receiver_id is None:
        raise InvalidRequestError("Missing required fields")

    body = request.message
    if body is not None and len(body) > max_length:
        raise InvalidRequestError(f"Message exceeds {max_length} characters")

    content: TextMessage | MediaMessage | PostShareMessage
    if request.post_data is not None:
        content = PostShareMessage(post_data=request.post_data, caption=body)
    elif request.media_url is not None:
        media_type = request.message_type
        if media_type not in MEDIA_TYPES:
            media_type = infer_media_type(request.media_url)
        content = MediaMessage(media_url=request.media_url, media_type=media_type, caption=body)
    elif body is not None:
        content = TextMessage(body=body)
    else:
        raise InvalidRequestError("Missing required fields")

    return OutboundMessage(
        receiver_id=request.receiver_id,
        conversation_id=request.conversation_id,
        content=content,
    )


class MessagePayload(BaseModel):
    """Body of the ``receive_message`` event."""

    message_id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    message: str | None
    media_url: str | None
    message_type: str
    post_data: dict[str, Any] | None
    created_at: datetime
    sequence: int
    is_delivered: bool | None = None

    @classmethod
    def from_message(cls, message: Message) -> MessagePayload:
        """Build a payload from a persisted :class:`Message` row."""
        return cls(
            message_id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            message=message.body,
            media_url=message.media_url,
            message_type=message.message_type,
            post_data=message.post_data,
            created_at=as_utc(message.created_at),
            sequence=message.sequence,
        )

    def to_event(self, *, is_delivered: bool | None = None) -> dict[str, Any]:
        """Serialize for the wire; ``is_delivered`` is only sent to the sender's side."""
        data = self.model_dump(mode="json", exclude={"is_delivered"})
        if is_delivered is not None:
            data["is_delivered"] = is_delivered
        return data


class MessageView(BaseModel):
    """A message in conversation history as seen by one participant."""

    message_id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    message: str | None
    media_url: str | None
    message_type: str
    post_data: dict[str, Any] | None
    created_at: datetime
    sequence: int
    # For received messages: the viewer has read it.
    is_read: bool
    # For sent messages: the other participant has read it.
    is_read_by_recipient: bool
