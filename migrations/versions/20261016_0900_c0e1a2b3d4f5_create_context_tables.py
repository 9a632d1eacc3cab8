"""Create transcript, checkpoint and memory tables

Revision ID: c0e1a2b3d4f5
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "c0e1a2b3d4f5"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create chat_messages, chat_checkpoints, compacted_sessions, memory_embeddings."""
    if op.get_bind().dialect.name == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("session_id", sa.VARCHAR(length=255), nullable=False),
        sa.Column("sequence", sa.INTEGER(), nullable=False),
        sa.Column("position", sa.FLOAT(), nullable=False),
        sa.Column("role", sa.VARCHAR(length=20), nullable=False),
        sa.Column("content", sa.TEXT(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("token_count", sa.INTEGER(), nullable=True),
        sa.Column("state", sa.VARCHAR(length=20), nullable=False),
        sa.Column("replaced_by", sa.UUID(), nullable=True),
        sa.Column("condense_id", sa.UUID(), nullable=True),
        sa.Column("is_pruned", sa.BOOLEAN(), nullable=False),
        sa.Column("original_token_count", sa.INTEGER(), nullable=True),
        sa.Column("checkpoint_id", sa.UUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(state = 'active' AND replaced_by IS NULL) "
            "OR (state != 'active' AND replaced_by IS NOT NULL)",
            name="ck_chat_messages_state_link",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("condense_id"),
        sa.UniqueConstraint("session_id", "sequence", name="uq_chat_messages_session_sequence"),
    )
    op.create_index(
        op.f("ix_chat_messages_session_id"), "chat_messages", ["session_id"], unique=False
    )
    op.create_index(op.f("ix_chat_messages_state"), "chat_messages", ["state"], unique=False)
    op.create_index(
        op.f("ix_chat_messages_replaced_by"), "chat_messages", ["replaced_by"], unique=False
    )
    op.create_index(
        "ix_chat_messages_session_position",
        "chat_messages",
        ["session_id", "position"],
        unique=False,
    )

    op.create_table(
        "chat_checkpoints",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("session_id", sa.VARCHAR(length=255), nullable=False),
        sa.Column("name", sa.VARCHAR(length=255), nullable=False),
        sa.Column("message_count", sa.INTEGER(), nullable=False),
        sa.Column("token_count", sa.INTEGER(), nullable=False),
        sa.Column("summary", sa.TEXT(), nullable=False),
        sa.Column("messages_snapshot", JSON_TYPE, nullable=False),
        sa.Column("last_sequence", sa.INTEGER(), nullable=False),
        sa.Column("is_auto", sa.BOOLEAN(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_chat_checkpoints_session_id"), "chat_checkpoints", ["session_id"], unique=False
    )
    op.create_index(
        op.f("ix_chat_checkpoints_created_at"), "chat_checkpoints", ["created_at"], unique=False
    )

    op.create_table(
        "compacted_sessions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("session_id", sa.VARCHAR(length=255), nullable=False),
        sa.Column("summary", sa.TEXT(), nullable=False),
        sa.Column("key_topics", JSON_TYPE, nullable=False),
        sa.Column("decisions", JSON_TYPE, nullable=False),
        sa.Column("message_start", sa.INTEGER(), nullable=False),
        sa.Column("message_end", sa.INTEGER(), nullable=False),
        sa.Column("condense_id", sa.UUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("access_count", sa.INTEGER(), nullable=False),
        sa.Column("tier", sa.VARCHAR(length=20), nullable=False),
        sa.Column("tier_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promotion_history", JSON_TYPE, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_compacted_sessions_session_id"),
        "compacted_sessions",
        ["session_id"],
        unique=False,
    )
    op.create_index(op.f("ix_compacted_sessions_tier"), "compacted_sessions", ["tier"], unique=False)
    op.create_index(
        "ix_compacted_sessions_promotion",
        "compacted_sessions",
        ["tier", "access_count", "last_accessed_at"],
        unique=False,
    )

    op.create_table(
        "memory_embeddings",
        sa.Column("memory_id", sa.UUID(), nullable=False),
        sa.Column("content", sa.TEXT(), nullable=False),
        sa.Column("embedding", Vector(1536), nullable=False),
        sa.Column("model", sa.VARCHAR(length=100), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("memory_id"),
    )


def downgrade() -> None:
    """Drop all context engine tables."""
    op.drop_table("memory_embeddings")
    op.drop_index("ix_compacted_sessions_promotion", table_name="compacted_sessions")
    op.drop_index(op.f("ix_compacted_sessions_tier"), table_name="compacted_sessions")
    op.drop_index(op.f("ix_compacted_sessions_session_id"), table_name="compacted_sessions")
    op.drop_table("compacted_sessions")
    op.drop_index(op.f("ix_chat_checkpoints_created_at"), table_name="chat_checkpoints")
    op.drop_index(op.f("ix_chat_checkpoints_session_id"), table_name="chat_checkpoints")
    op.drop_table("chat_checkpoints")
    op.drop_index("ix_chat_messages_session_position", table_name="chat_messages")
    op.drop_index(op.f("ix_chat_messages_replaced_by"), table_name="chat_messages")
    op.drop_index(op.f("ix_chat_messages_state"), table_name="chat_messages")
    op.drop_index(op.f("ix_chat_messages_session_id"), table_name="chat_messages")
    op.drop_table("chat_messages")
