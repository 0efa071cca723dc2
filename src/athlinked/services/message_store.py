# src/athlinked/services/message_store.py
"""Durable persistence of conversations, messages and unread counters.

All methods are synchronous and open their own short-lived session; async
callers run them through ``asyncio.to_thread``. Every SQLAlchemy failure is
rolled back and re-raised as :class:`StoreFailureError`, so a message is
either fully committed (row, preview, unread increment) or not at all.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from athlinked.core.errors import ConversationNotFoundError, InvalidRequestError, StoreFailureError
from athlinked.db.session import SessionLocal
from athlinked.db.time import as_utc, utcnow
from athlinked.models import Conversation, ConversationParticipant, Message
from athlinked.schemas.conversation import ConversationSummary
from athlinked.schemas.message import MessagePayload, MessageView, OutboundMessage
from athlinked.utils.hash import blake3_hexdigest

logger = logging.getLogger(__name__)

# Unit separator: cannot appear in user ids issued by the auth service.
_PAIR_SEPARATOR = "\x1f"


def conversation_id_for(user_a: str, user_b: str) -> str:
    """Return the conversation id for an unordered pair of distinct users."""
    if user_a == user_b:
        raise InvalidRequestError("Cannot start a conversation with yourself")
    low, high = sorted((user_a, user_b))
    return blake3_hexdigest(f"{low}{_PAIR_SEPARATOR}{high}".encode())


def total_unread(summaries: list[ConversationSummary]) -> int:
    """Sum the unread counters of a user's conversation list."""
    return sum(summary.unread_count for summary in summaries)


class MessageStore:
    """Conversation and message persistence over SQLAlchemy sessions."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    @contextmanager
    def _session(self, failure_message: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("%s: %s", failure_message, exc, exc_info=True)
            raise StoreFailureError(failure_message) from exc
        finally:
            db.close()

    def ensure_conversation(self, user_a: str, user_b: str) -> str:
        """Create the conversation for the pair if it does not exist yet."""
        conversation_id = conversation_id_for(user_a, user_b)
        low, high = sorted((user_a, user_b))

        with self._session("Failed to open conversation") as db:
            if db.get(Conversation, conversation_id) is not None:
                return conversation_id

            db.add(
                Conversation(
                    id=conversation_id,
                    user_low=low,
                    user_high=high,
                    participants=[
                        ConversationParticipant(user_id=low),
                        ConversationParticipant(user_id=high),
                    ],
                )
            )
            try:
                db.commit()
            except IntegrityError:
                # Both participants raced to create the row; theirs is ours.
                db.rollback()
                logger.debug("Conversation %s created concurrently", conversation_id)
            else:
                logger.info("Opened conversation %s", conversation_id)

        return conversation_id

    def send_message(self, sender_id: str, outbound: OutboundMessage) -> MessagePayload:
        """Persist one message and bump the receiver's unread counter.

        The sequence number is allocated by an in-database increment on the
        conversation row, which also holds the row lock until commit, so
        concurrent sends to the same conversation serialize here.
        """
        receiver_id = outbound.receiver_id
        conversation_id = conversation_id_for(sender_id, receiver_id)
        if outbound.conversation_id is not None and outbound.conversation_id != conversation_id:
            raise InvalidRequestError("Conversation does not match participants")

        self.ensure_conversation(sender_id, receiver_id)

        content = outbound.content
        with self._session("Failed to send message") as db:
            now = utcnow()
            sequence = db.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(
                    message_seq=Conversation.message_seq + 1,
                    last_message=content.preview(),
                    last_message_at=now,
                )
                .returning(Conversation.message_seq)
            ).scalar_one()

            message = Message(
                id=str(uuid.uuid4()),
                conversation_id=conversation_id,
                sequence=sequence,
                sender_id=sender_id,
                receiver_id=receiver_id,
                created_at=now,
                **content.columns(),
            )
            db.add(message)

            db.execute(
                update(ConversationParticipant)
                .where(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == receiver_id,
                )
                .values(unread_count=ConversationParticipant.unread_count + 1)
            )
            db.flush()
            payload = MessagePayload.from_message(message)
            db.commit()

        logger.info(
            "Stored message %s (#%d) in conversation %s",
            payload.message_id,
            payload.sequence,
            conversation_id,
        )
        return payload

    def get_conversations(self, user_id: str) -> list[ConversationSummary]:
        """Return ``user_id``'s conversation list, most recently active first."""
        with self._session("Failed to load conversations") as db:
            rows = db.execute(
                select(Conversation, ConversationParticipant)
                .join(
                    ConversationParticipant,
                    ConversationParticipant.conversation_id == Conversation.id,
                )
                .where(ConversationParticipant.user_id == user_id)
                .order_by(
                    Conversation.last_message_at.desc().nulls_last(),
                    Conversation.created_at.desc(),
                )
            ).all()
            return [_summary(conversation, participant) for conversation, participant in rows]

    def get_conversation(self, user_id: str, conversation_id: str) -> ConversationSummary:
        """Return one summary of a conversation ``user_id`` takes part in."""
        with self._session("Failed to load conversation") as db:
            row = db.execute(
                select(Conversation, ConversationParticipant)
                .join(
                    ConversationParticipant,
                    ConversationParticipant.conversation_id == Conversation.id,
                )
                .where(
                    Conversation.id == conversation_id,
                    ConversationParticipant.user_id == user_id,
                )
            ).first()
            if row is None:
                raise ConversationNotFoundError("Conversation not found")
            return _summary(*row)

    def get_or_create_conversation(self, user_id: str, other_user_id: str) -> ConversationSummary:
        conversation_id = self.ensure_conversation(user_id, other_user_id)
        return self.get_conversation(user_id, conversation_id)

    def get_messages(
        self,
        conversation_id: str,
        user_id: str,
        *,
        limit: int = 50,
        before: int | None = None,
    ) -> list[MessageView]:
        """Return up to ``limit`` messages in ascending order, newest page first.

        ``before`` is an exclusive upper bound on the sequence number, used to
        page backwards through history.
        """
        with self._session("Failed to load messages") as db:
            me = db.get(ConversationParticipant, (conversation_id, user_id))
            if me is None:
                raise ConversationNotFoundError("Conversation not found")

            other = aliased(ConversationParticipant)
            other_read_seq = db.execute(
                select(other.last_read_seq).where(
                    and_(other.conversation_id == conversation_id, other.user_id != user_id)
                )
            ).scalar_one_or_none() or 0

            query = select(Message).where(Message.conversation_id == conversation_id)
            if before is not None:
                query = query.where(Message.sequence < before)
            messages = db.execute(query.order_by(Message.sequence.desc()).limit(limit)).scalars().all()

            views = []
            for message in reversed(messages):
                own = message.sender_id == user_id
                payload = MessagePayload.from_message(message)
                views.append(
                    MessageView(
                        **payload.model_dump(exclude={"is_delivered"}),
                        is_read=not own and message.sequence <= me.last_read_seq,
                        is_read_by_recipient=own and message.sequence <= other_read_seq,
                    )
                )
            return views

    def mark_as_read(self, conversation_id: str, reader_id: str) -> str:
        """Reset ``reader_id``'s unread counter and return the other participant."""
        with self._session("Failed to mark messages as read") as db:
            conversation = db.get(Conversation, conversation_id)
            if conversation is None or not conversation.includes(reader_id):
                raise ConversationNotFoundError("Conversation not found")

            db.execute(
                update(ConversationParticipant)
                .where(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == reader_id,
                )
                .values(unread_count=0, last_read_seq=conversation.message_seq)
            )
            other_user_id = conversation.other_participant(reader_id)
            db.commit()

        logger.debug("User %s read conversation %s", reader_id, conversation_id)
        return other_user_id

    def unread_count(self, user_id: str, conversation_id: str) -> int:
        """Return one participant's unread counter for one conversation."""
        with self._session("Failed to load unread count") as db:
            participant = db.get(ConversationParticipant, (conversation_id, user_id))
            if participant is None:
                raise ConversationNotFoundError("Conversation not found")
            return participant.unread_count


def _summary(conversation: Conversation, participant: ConversationParticipant) -> ConversationSummary:
    return ConversationSummary(
        conversation_id=conversation.id,
        other_user_id=conversation.other_participant(participant.user_id),
        last_message=conversation.last_message,
        last_message_time=as_utc(conversation.last_message_at),
        unread_count=participant.unread_count,
    )
