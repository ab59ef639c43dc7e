"""Add per-conversation bot bindings.

Revision ID: 0003_bot_bindings
Revises: 0002_linked_identities
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0003_bot_bindings"
down_revision = "0002_linked_identities"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "bot_bindings",
        sa.Column("conversation_id", sa.String(length=255), primary_key=True),
        sa.Column("bot_id", sa.String(length=255), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )


def downgrade() -> None:
    op.drop_table("bot_bindings")
