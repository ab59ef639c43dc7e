"""Initial schema: config, authorization sets, sessions and turns.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "config_entries",
        sa.Column("key", sa.String(length=100), primary_key=True),
        sa.Column("value", sa.Text()),
    )
    op.create_table(
        "authorized_users",
        sa.Column("user_id", sa.String(length=255), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "authorized_groups",
        sa.Column("group_id", sa.String(length=255), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "chat_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("conversation_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("summary", sa.Text()),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "conversation_id",
            "name",
            name="uq_chat_sessions_conversation_name",
        ),
    )
    op.create_index(
        "ix_chat_sessions_conversation_active",
        "chat_sessions",
        ["conversation_id", "is_active"],
    )
    op.create_table(
        "chat_turns",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("chat_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_chat_turns_session_order",
        "chat_turns",
        ["session_id", "created_at", "id"],
    )


def downgrade() -> None:
    op.drop_index("ix_chat_turns_session_order", table_name="chat_turns")
    op.drop_table("chat_turns")
    op.drop_index("ix_chat_sessions_conversation_active", table_name="chat_sessions")
    op.drop_table("chat_sessions")
    op.drop_table("authorized_groups")
    op.drop_table("authorized_users")
    op.drop_table("config_entries")
