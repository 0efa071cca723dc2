"""messaging tables

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-18 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e9a7d2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create conversation, participant and message tables."""
    op.create_table(
        "conversation",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_low", sa.String(length=128), nullable=False),
        sa.Column("user_high", sa.String(length=128), nullable=False),
        sa.Column("last_message", sa.Text(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("message_seq", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_low", "user_high", name="uq_conversation_pair"),
        sa.CheckConstraint("user_low < user_high", name="ck_conversation_pair_sorted"),
    )

    op.create_table(
        "conversation_participant",
        sa.Column("conversation_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_read_seq", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversation.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("conversation_id", "user_id"),
        sa.CheckConstraint("unread_count >= 0", name="ck_participant_unread_non_negative"),
    )
    op.create_index(
        "ix_conversation_participant_user_id",
        "conversation_participant",
        ["user_id"],
    )

    op.create_table(
        "message",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("conversation_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.BigInteger(), nullable=False),
        sa.Column("sender_id", sa.String(length=128), nullable=False),
        sa.Column("receiver_id", sa.String(length=128), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("media_url", sa.Text(), nullable=True),
        sa.Column("message_type", sa.String(length=16), nullable=False),
        sa.Column("post_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversation.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "conversation_id", "sequence", name="uq_message_conversation_sequence"
        ),
        sa.CheckConstraint(
            "body IS NOT NULL OR media_url IS NOT NULL OR post_data IS NOT NULL",
            name="ck_message_has_content",
        ),
    )
    op.create_index(
        "ix_message_conversation_created",
        "message",
        ["conversation_id", "created_at"],
    )


def downgrade() -> None:
    """Drop the messaging tables."""
    op.drop_index("ix_message_conversation_created", table_name="message")
    op.drop_table("message")
    op.drop_index("ix_conversation_participant_user_id", table_name="conversation_participant")
    op.drop_table("conversation_participant")
    op.drop_table("conversation")
